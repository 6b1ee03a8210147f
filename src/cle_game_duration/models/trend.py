"""
Trend models for annual game duration.

Provides the linear and piecewise-linear (hinge basis) trend specifications
and an ordinary-least-squares fitter built on an explicit QR decomposition.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy import linalg, stats

from cle_game_duration.config import config
from cle_game_duration.data.series import ObservationSeries
from cle_game_duration.exceptions import (
    InsufficientDataError,
    InvalidKnotError,
    MissingRegressorError,
    SingularDesignError,
)

logger = logging.getLogger(__name__)


def read_only_array(values, dtype=float) -> np.ndarray:
    """Copy of *values* with the writeable flag cleared."""
    values = np.array(values, dtype=dtype)
    values.setflags(write=False)
    return values


# ─────────────────────────── specifications ─────────────────────────────
@dataclass(frozen=True)
class TrendSpecification:
    """
    Functional form of duration against year.

    The trend part is ``b0 + b1*year + sum_i c_i * max(0, year - k_i)`` so each
    knot adds one slope change and the line stays continuous at the knot.
    Named auxiliary regressors enter as extra linear terms.
    """
    knots: Tuple[float, ...] = ()
    regressors: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "knots", tuple(float(k) for k in self.knots))
        object.__setattr__(self, "regressors", tuple(str(r) for r in self.regressors))

    @property
    def n_params(self) -> int:
        return 2 + len(self.knots) + len(self.regressors)

    @property
    def column_names(self) -> List[str]:
        return (
            ["intercept", "year"]
            + [f"knot_{k:g}" for k in self.knots]
            + list(self.regressors)
        )

    @property
    def label(self) -> str:
        base = "linear" if not self.knots else "piecewise(" + ",".join(f"{k:g}" for k in self.knots) + ")"
        if self.regressors:
            base += " + " + " + ".join(self.regressors)
        return base

    def trend_basis(self, years: Sequence[float]) -> np.ndarray:
        """Columns [1, year, hinge_1, ...] evaluated at *years*."""
        years = np.asarray(years, dtype=float)
        cols = [np.ones_like(years), years]
        cols += [np.maximum(0.0, years - k) for k in self.knots]
        return np.column_stack(cols)

    def design_matrix(
        self,
        years: Sequence[float],
        regressors: Optional[Mapping[str, Sequence[float]]] = None,
    ) -> np.ndarray:
        """Full design matrix: trend basis followed by the included regressors."""
        basis = self.trend_basis(years)
        if not self.regressors:
            return basis
        regressors = regressors or {}
        missing = [name for name in self.regressors if name not in regressors]
        if missing:
            raise MissingRegressorError(f"No values supplied for regressors {missing}")
        extra = [np.asarray(regressors[name], dtype=float) for name in self.regressors]
        for name, values in zip(self.regressors, extra):
            if values.shape != (basis.shape[0],):
                raise MissingRegressorError(
                    f"Regressor '{name}' has {values.size} values for {basis.shape[0]} years"
                )
        return np.column_stack([basis] + extra)


class Linear(TrendSpecification):
    """Single slope over year."""

    def __init__(self, regressors: Sequence[str] = ()):
        super().__init__(knots=(), regressors=tuple(regressors))


class PiecewiseLinear(TrendSpecification):
    """Broken-line trend with a slope change at each knot year."""

    def __init__(self, knots: Sequence[float], regressors: Sequence[str] = ()):
        super().__init__(knots=tuple(knots), regressors=tuple(regressors))


# ─────────────────────────── fitted model ───────────────────────────────
@dataclass(frozen=True, eq=False)
class FittedModel:
    """
    Result of an OLS trend fit. Immutable once created.

    Attributes:
        specification: Trend specification that was fitted
        params: Coefficients in ``specification.column_names`` order
        years: Years of the rows used in the fit
        observed: Observed durations on those rows
        fitted: In-sample fitted values
        residuals: observed - fitted
        residual_variance: SSR / (n - p); NaN when n == p
        auxiliary: Every series regressor restricted to the fitted rows
        r_factor: Upper-triangular R of the design's QR decomposition
        year_range: First and last year of the input series
    """
    specification: TrendSpecification
    params: np.ndarray
    years: np.ndarray
    observed: np.ndarray
    fitted: np.ndarray
    residuals: np.ndarray
    residual_variance: float
    auxiliary: Mapping[str, np.ndarray]
    r_factor: np.ndarray
    year_range: Tuple[int, int]

    @property
    def n_obs(self) -> int:
        return int(self.residuals.size)

    @property
    def n_params(self) -> int:
        return int(self.params.size)

    @property
    def df_resid(self) -> int:
        return self.n_obs - self.n_params

    @property
    def sigma(self) -> float:
        return float(np.sqrt(self.residual_variance))

    @property
    def ssr(self) -> float:
        return float(np.sum(self.residuals ** 2))

    @property
    def last_year(self) -> int:
        return int(self.years[-1])

    @property
    def coefficients(self) -> Dict[str, float]:
        return dict(zip(self.specification.column_names, self.params.tolist()))

    @property
    def intercept(self) -> float:
        return float(self.params[0])

    @property
    def slope(self) -> float:
        """Slope of the first trend segment (hours per year)."""
        return float(self.params[1])

    @property
    def segment_slopes(self) -> List[float]:
        """Slope of each trend segment, left to right; one more than the knot count."""
        n_knots = len(self.specification.knots)
        return np.cumsum(self.params[1:2 + n_knots]).tolist()

    def design(
        self,
        years: Sequence[float],
        regressors: Optional[Mapping[str, Sequence[float]]] = None,
    ) -> np.ndarray:
        return self.specification.design_matrix(years, regressors)

    def predict(
        self,
        years: Sequence[float],
        regressors: Optional[Mapping[str, Sequence[float]]] = None,
    ) -> np.ndarray:
        """Evaluate the fitted function at *years* (regressor values required if the specification has any)."""
        return self.design(years, regressors) @ self.params

    def trend(self, years: Sequence[float]) -> np.ndarray:
        """Trend component only (intercept, slope and hinge terms)."""
        n_trend = 2 + len(self.specification.knots)
        return self.specification.trend_basis(years) @ self.params[:n_trend]

    def leverage(self, design_rows: np.ndarray) -> np.ndarray:
        """``x0' (X'X)^-1 x0`` for each row of *design_rows*, via the stored R factor."""
        solved = linalg.solve_triangular(self.r_factor, np.atleast_2d(design_rows).T, trans="T")
        return np.sum(solved ** 2, axis=0)

    def coefficient_table(self) -> pd.DataFrame:
        """Estimates with standard errors, t statistics and two-sided p-values."""
        r_inv = linalg.solve_triangular(self.r_factor, np.eye(self.n_params))
        std_err = self.sigma * np.sqrt(np.sum(r_inv ** 2, axis=1))
        with np.errstate(divide="ignore", invalid="ignore"):
            t_stat = self.params / std_err
        if self.df_resid > 0:
            p_value = 2 * stats.t.sf(np.abs(t_stat), self.df_resid)
        else:
            p_value = np.full(self.n_params, np.nan)
        return pd.DataFrame(
            {"estimate": self.params, "std_error": std_err, "t_stat": t_stat, "p_value": p_value},
            index=pd.Index(self.specification.column_names, name="term"),
        )

    def to_frame(self) -> pd.DataFrame:
        """In-sample rows: year, observed, fitted and residual."""
        return pd.DataFrame({
            config.YEAR_COLUMN: self.years.astype(int),
            "observed": self.observed,
            "fitted": self.fitted,
            "residual": self.residuals,
        })


# ─────────────────────────── fitter ─────────────────────────────────────
class TrendModelFitter:
    """Fits trend specifications to an annual series by least squares."""

    def __init__(self, rank_tolerance: float = config.RANK_TOLERANCE):
        self.rank_tolerance = rank_tolerance

    def fit(self, series: ObservationSeries, specification: TrendSpecification) -> FittedModel:
        """
        Fit *specification* to the non-missing rows of *series*.

        Args:
            series: Annual observations
            specification: Linear or PiecewiseLinear trend, optionally with regressors

        Returns:
            FittedModel

        Raises:
            InvalidKnotError: knots unordered, outside the year range, or absent
                from a piecewise specification
            MissingRegressorError: a requested regressor is not in the series
            InsufficientDataError: fewer usable rows than parameters
            SingularDesignError: rank-deficient design matrix
        """
        if len(series) == 0:
            raise InsufficientDataError(0, specification.n_params)
        self._validate_knots(series, specification)

        included = {}
        for name in specification.regressors:
            if name not in series.regressor_names:
                raise MissingRegressorError(
                    f"Regressor '{name}' not in series; available: {series.regressor_names}"
                )
            included[name] = series.regressor(name)

        mask = ~np.isnan(series.duration_hours_9)
        for values in included.values():
            mask &= ~np.isnan(values)

        n_obs = int(mask.sum())
        n_params = specification.n_params
        if n_obs < n_params:
            raise InsufficientDataError(n_obs, n_params)

        years = series.years[mask]
        y = series.duration_hours_9[mask]
        X = specification.design_matrix(years, {k: v[mask] for k, v in included.items()})
        self._check_rank(X, specification)

        q, r = np.linalg.qr(X)
        params = linalg.solve_triangular(r, q.T @ y)
        fitted = X @ params
        residuals = y - fitted

        df_resid = n_obs - n_params
        if df_resid > 0:
            residual_variance = float(np.sum(residuals ** 2) / df_resid)
        else:
            logger.warning(
                "%s: %d observations for %d parameters leaves no residual degrees of freedom",
                specification.label, n_obs, n_params,
            )
            residual_variance = float("nan")

        model = FittedModel(
            specification=specification,
            params=read_only_array(params),
            years=read_only_array(years),
            observed=read_only_array(y),
            fitted=read_only_array(fitted),
            residuals=read_only_array(residuals),
            residual_variance=residual_variance,
            auxiliary=MappingProxyType({
                name: read_only_array(values[mask]) for name, values in series.regressors.items()
            }),
            r_factor=read_only_array(r),
            year_range=series.year_range,
        )
        logger.info(
            "Fitted %s on %d years (%d-%d): sigma=%.4f",
            specification.label, n_obs, model.years[0], model.last_year, model.sigma,
        )
        return model

    @staticmethod
    def _validate_knots(series: ObservationSeries, specification: TrendSpecification) -> None:
        knots = np.asarray(specification.knots, dtype=float)
        if isinstance(specification, PiecewiseLinear) and knots.size == 0:
            raise InvalidKnotError("Piecewise specification needs at least one knot")
        if knots.size == 0:
            return
        if np.any(~np.isfinite(knots)):
            raise InvalidKnotError(f"Knots must be finite: {specification.knots}")
        if np.any(np.diff(knots) <= 0):
            raise InvalidKnotError(f"Knots must be strictly increasing: {specification.knots}")
        first, last = series.year_range
        outside = [k for k in specification.knots if k < first or k > last]
        if outside:
            raise InvalidKnotError(f"Knots {outside} outside observed years [{first}, {last}]")

    def _check_rank(self, X: np.ndarray, specification: TrendSpecification) -> None:
        # Columns are normalised first; years and attendance differ by orders of magnitude
        norms = np.linalg.norm(X, axis=0)
        zero = [name for name, norm in zip(specification.column_names, norms) if norm == 0]
        if zero:
            raise SingularDesignError(f"Design columns {zero} are identically zero for {specification.label}")
        singular_values = np.linalg.svd(X / norms, compute_uv=False)
        if singular_values[-1] <= self.rank_tolerance * singular_values[0]:
            raise SingularDesignError(
                f"Design matrix for {specification.label} is rank-deficient "
                f"(condition number {singular_values[0] / max(singular_values[-1], np.finfo(float).tiny):.3g})"
            )


def fit_trend(series: ObservationSeries, specification: TrendSpecification) -> FittedModel:
    """Convenience wrapper around ``TrendModelFitter().fit``."""
    return TrendModelFitter().fit(series, specification)
