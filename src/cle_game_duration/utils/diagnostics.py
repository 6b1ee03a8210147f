"""
Residual diagnostics for fitted trend models.

Reports numbers and flags only; deciding whether to re-specify the model is
left to the caller.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import List, Mapping, Optional, Tuple

import numpy as np
import pandas as pd
from scipy import stats

from cle_game_duration.config import DiagnosticsConfig, config
from cle_game_duration.models.trend import FittedModel, read_only_array

logger = logging.getLogger(__name__)


def default_acf_lags(n_obs: int) -> int:
    return min(config.MAX_ACF_LAGS, n_obs // 4)


def autocorrelation(residuals: np.ndarray, n_lags: int) -> np.ndarray:
    """
    Sample autocorrelation at lags 1..n_lags.

    ``r_k = sum((e_t - e_bar)(e_{t-k} - e_bar)) / sum((e_t - e_bar)^2)``.
    Returns NaN for every lag when the residuals have zero variance.
    """
    e = np.asarray(residuals, dtype=float)
    if e.size == 0:
        raise ValueError("Cannot compute autocorrelation of an empty residual series")
    n_lags = max(0, min(int(n_lags), e.size - 1))
    centred = e - e.mean()
    denom = float(np.dot(centred, centred))
    if denom == 0.0:
        return np.full(n_lags, np.nan)
    return np.array([np.dot(centred[k:], centred[:-k]) / denom for k in range(1, n_lags + 1)])


def ljung_box(acf: np.ndarray, n_obs: int) -> tuple:
    """Ljung-Box Q over the supplied lags with its chi-squared p-value."""
    if acf.size == 0 or np.isnan(acf).any():
        return float("nan"), float("nan")
    lags = np.arange(1, acf.size + 1)
    q_stat = n_obs * (n_obs + 2) * np.sum(acf ** 2 / (n_obs - lags))
    return float(q_stat), float(stats.chi2.sf(q_stat, df=acf.size))


def _pairwise_correlation(x: np.ndarray, y: np.ndarray, method: str = "pearson") -> float:
    """Correlation over pairwise-complete entries; NaN when undefined."""
    ok = ~(np.isnan(x) | np.isnan(y))
    x, y = x[ok], y[ok]
    if x.size < 3 or np.ptp(x) == 0 or np.ptp(y) == 0:
        return float("nan")
    if method == "spearman":
        return float(stats.spearmanr(x, y)[0])
    return float(stats.pearsonr(x, y)[0])


def _exceeds(value: float, threshold: float) -> bool:
    return bool(np.isfinite(value) and abs(value) > threshold)


def _is_exact_fit(residuals: np.ndarray, observed: np.ndarray) -> bool:
    """True when every residual is within floating-point rounding of zero."""
    if residuals.size == 0:
        return False
    scale = max(1.0, float(np.nanmax(np.abs(observed))))
    return bool(np.max(np.abs(residuals)) <= config.EXACT_FIT_TOLERANCE * scale)


@dataclass(frozen=True, eq=False)
class DiagnosticsReport:
    """Numeric residual diagnostics plus the boolean flags derived from them."""
    n_obs: int
    acf: np.ndarray
    acf_bound: float
    significant_lags: Tuple[int, ...]
    ljung_box_stat: float
    ljung_box_pvalue: float
    heteroscedasticity_corr: float
    heteroscedastic: bool
    skewness: float
    skewed: bool
    nonlinearity_corr: float
    nonlinear: bool
    omitted_correlations: Mapping[str, float] = field(default_factory=dict)
    omitted_flags: Mapping[str, bool] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "acf", read_only_array(self.acf))
        object.__setattr__(self, "significant_lags", tuple(int(lag) for lag in self.significant_lags))
        object.__setattr__(self, "omitted_correlations", MappingProxyType(dict(self.omitted_correlations)))
        object.__setattr__(self, "omitted_flags", MappingProxyType(dict(self.omitted_flags)))

    @property
    def autocorrelated(self) -> bool:
        return bool(self.significant_lags)

    @property
    def flagged_regressors(self) -> List[str]:
        return [name for name, flagged in self.omitted_flags.items() if flagged]

    def acf_frame(self) -> pd.DataFrame:
        lags = np.arange(1, self.acf.size + 1)
        return pd.DataFrame({
            "lag": lags,
            "acf": self.acf,
            "significant": [int(lag) in self.significant_lags for lag in lags],
        })

    def to_dict(self) -> dict:
        """Flat mapping suitable for logging or JSON export."""
        out = {
            "n_obs": self.n_obs,
            "acf_bound": self.acf_bound,
            "significant_lags": list(self.significant_lags),
            "ljung_box_stat": self.ljung_box_stat,
            "ljung_box_pvalue": self.ljung_box_pvalue,
            "heteroscedasticity_corr": self.heteroscedasticity_corr,
            "heteroscedastic": self.heteroscedastic,
            "skewness": self.skewness,
            "skewed": self.skewed,
            "nonlinearity_corr": self.nonlinearity_corr,
            "nonlinear": self.nonlinear,
        }
        out.update({f"acf_lag_{i}": float(v) for i, v in enumerate(self.acf, start=1)})
        out.update({f"omitted_corr_{k}": v for k, v in self.omitted_correlations.items()})
        out.update({f"omitted_{k}": v for k, v in self.omitted_flags.items()})
        return out


class ResidualDiagnostics:
    """Computes residual diagnostics for a FittedModel."""

    def __init__(self, diagnostics_config: Optional[DiagnosticsConfig] = None):
        self.config = diagnostics_config or DiagnosticsConfig()

    def diagnose(self, model: FittedModel) -> DiagnosticsReport:
        residuals = np.asarray(model.residuals, dtype=float)
        fitted = np.asarray(model.fitted, dtype=float)
        n_obs = residuals.size
        if n_obs == 0:
            raise ValueError("Fitted model has no residuals to diagnose")

        n_lags = self.config.acf_lags if self.config.acf_lags is not None else default_acf_lags(n_obs)
        n_lags = max(0, min(int(n_lags), n_obs - 1))
        bound = self.config.significance_z / np.sqrt(n_obs)
        unused = [name for name in model.auxiliary if name not in model.specification.regressors]

        if _is_exact_fit(residuals, model.observed):
            # Whatever is left is rounding noise; statistics on it would be spurious
            logger.warning(
                "%s fits exactly (max |residual| %.3g); residual diagnostics are undefined",
                model.specification.label, float(np.max(np.abs(residuals))),
            )
            nan = float("nan")
            acf = np.full(n_lags, nan)
            q_stat = q_pvalue = hetero = skewness = nonlinearity = nan
            omitted_corr = {name: nan for name in unused}
        else:
            # ── autocorrelation ────────────────────────────────────────
            acf = autocorrelation(residuals, n_lags)
            if acf.size and np.isnan(acf).all():
                logger.warning("Residuals have zero variance; autocorrelation is undefined")
            q_stat, q_pvalue = ljung_box(acf, n_obs)

            # ── spread vs level ────────────────────────────────────────
            hetero = _pairwise_correlation(np.abs(residuals), fitted, method="spearman")

            # ── shape ──────────────────────────────────────────────────
            skewness = float(stats.skew(residuals)) if n_obs > 2 and np.ptp(residuals) > 0 else float("nan")

            # Residuals are orthogonal to the fitted values, so curvature shows up against their square
            curvature = (fitted - fitted.mean()) ** 2
            nonlinearity = _pairwise_correlation(residuals, curvature)

            # ── regressors left out of the specification ───────────────
            omitted_corr = {
                name: _pairwise_correlation(residuals, np.asarray(model.auxiliary[name], dtype=float))
                for name in unused
            }

        significant = [lag for lag, r in enumerate(acf, start=1) if _exceeds(r, bound)]
        omitted_flags = {
            name: _exceeds(r, self.config.omitted_variable_threshold)
            for name, r in omitted_corr.items()
        }

        report = DiagnosticsReport(
            n_obs=n_obs,
            acf=acf,
            acf_bound=float(bound),
            significant_lags=significant,
            ljung_box_stat=q_stat,
            ljung_box_pvalue=q_pvalue,
            heteroscedasticity_corr=hetero,
            heteroscedastic=_exceeds(hetero, self.config.heteroscedasticity_threshold),
            skewness=skewness,
            skewed=_exceeds(skewness, self.config.skewness_threshold),
            nonlinearity_corr=nonlinearity,
            nonlinear=_exceeds(nonlinearity, self.config.nonlinearity_threshold),
            omitted_correlations=omitted_corr,
            omitted_flags=omitted_flags,
        )
        logger.info(
            "Diagnostics for %s: significant lags=%s, skew=%.3f, flagged regressors=%s",
            model.specification.label, significant, skewness, report.flagged_regressors,
        )
        return report


def diagnose(model: FittedModel, diagnostics_config: Optional[DiagnosticsConfig] = None) -> DiagnosticsReport:
    return ResidualDiagnostics(diagnostics_config).diagnose(model)
