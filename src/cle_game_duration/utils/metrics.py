"""
Metrics utilities for comparing and back-testing trend specifications.
"""
from __future__ import annotations

import logging
from typing import Dict, Optional, Sequence

import numpy as np
import pandas as pd
from sklearn.metrics import mean_absolute_error, mean_squared_error, r2_score

from cle_game_duration.config import ForecastConfig
from cle_game_duration.data.series import ObservationSeries
from cle_game_duration.exceptions import DurationModelError, InsufficientDataError
from cle_game_duration.models.forecast import Forecaster
from cle_game_duration.models.trend import FittedModel, TrendModelFitter, TrendSpecification

logger = logging.getLogger(__name__)


def fit_metrics(model: FittedModel) -> Dict[str, float]:
    """
    In-sample goodness of fit.

    AIC/BIC use the Gaussian log-likelihood at the ML variance estimate
    SSR/n, counting the variance as a parameter.

    Args:
        model: Fitted trend model

    Returns:
        Dictionary with r2, adj_r2, rmse, mae, aic, bic, sigma, n_obs, n_params
    """
    n, p = model.n_obs, model.n_params
    y, y_hat = model.observed, model.fitted

    r2 = r2_score(y, y_hat) if n > 1 and np.ptp(y) > 0 else float("nan")
    adj_r2 = 1 - (1 - r2) * (n - 1) / (n - p) if n > p else float("nan")

    ssr = model.ssr
    if ssr > 0:
        log_lik = -0.5 * n * (np.log(2 * np.pi) + np.log(ssr / n) + 1)
        aic = -2 * log_lik + 2 * (p + 1)
        bic = -2 * log_lik + np.log(n) * (p + 1)
    else:
        aic = bic = float("-inf")

    return {
        "r2": float(r2),
        "adj_r2": float(adj_r2),
        "rmse": float(np.sqrt(mean_squared_error(y, y_hat))),
        "mae": float(mean_absolute_error(y, y_hat)),
        "aic": float(aic),
        "bic": float(bic),
        "sigma": model.sigma,
        "n_obs": n,
        "n_params": p,
    }


def compare_specifications(
    series: ObservationSeries,
    specifications: Sequence[TrendSpecification],
    fitter: Optional[TrendModelFitter] = None,
) -> pd.DataFrame:
    """
    Fit each specification and tabulate fit metrics, best AIC first.

    Specifications that cannot be fitted are kept with their error message
    so a bad knot choice is visible in the table rather than silently dropped.
    """
    fitter = fitter or TrendModelFitter()
    rows = []
    for spec in specifications:
        try:
            model = fitter.fit(series, spec)
        except DurationModelError as exc:
            logger.warning("Skipping %s: %s", spec.label, exc)
            rows.append({"specification": spec.label, "error": str(exc)})
            continue
        rows.append({"specification": spec.label, "error": None, **fit_metrics(model)})

    table = pd.DataFrame(rows)
    if "aic" in table.columns:
        table = table.sort_values("aic", na_position="last", kind="mergesort")
    return table.reset_index(drop=True)


def holdout_evaluation(
    series: ObservationSeries,
    specification: TrendSpecification,
    holdout: int,
    forecast_config: Optional[ForecastConfig] = None,
    fitter: Optional[TrendModelFitter] = None,
) -> Dict[str, object]:
    """
    Refit without the last *holdout* usable years and score their forecasts.

    Args:
        series: Full annual series
        specification: Trend specification to evaluate
        holdout: Number of trailing non-missing years to hold out
        forecast_config: Interval settings; the horizon is derived from the holdout
        fitter: Optional fitter (defaults to TrendModelFitter())

    Returns:
        Dictionary with mae, rmse, per-level interval coverage and the
        year-by-year comparison frame
    """
    if holdout <= 0:
        raise ValueError(f"holdout must be positive, got {holdout}")
    observed_years = series.years[~np.isnan(series.duration_hours_9)]
    if observed_years.size <= holdout:
        raise InsufficientDataError(int(observed_years.size) - holdout, specification.n_params)

    cutoff = int(observed_years[-holdout - 1])
    train = series.slice_years(end=cutoff)
    test_years = observed_years[-holdout:]

    model = (fitter or TrendModelFitter()).fit(train, specification)
    horizon = int(test_years[-1]) - model.last_year
    base = forecast_config or ForecastConfig()
    forecaster = Forecaster(ForecastConfig(
        horizon=horizon,
        confidence_levels=base.confidence_levels,
        interval_method=base.interval_method,
    ))

    future = None
    if specification.regressors:
        window = (
            series.to_frame()
            .set_index("year")
            .reindex(range(model.last_year + 1, int(test_years[-1]) + 1))
        )
        future = {name: window[name].to_numpy(dtype=float) for name in specification.regressors}
    result = forecaster.forecast(model, horizon, future_regressors=future)

    frame = result.to_frame().set_index("year")
    actual = pd.Series(
        series.duration_hours_9[np.isin(series.years, test_years)],
        index=pd.Index(test_years, name="year"),
        name="actual",
    )
    frame = frame.loc[test_years].assign(actual=actual)

    coverage = {
        level: float(np.mean((frame["actual"] >= lower[np.isin(result.years, test_years)])
                             & (frame["actual"] <= upper[np.isin(result.years, test_years)])))
        for level, (lower, upper) in result.bounds.items()
    }
    metrics = {
        "specification": specification.label,
        "train_end": model.last_year,
        "mae": float(mean_absolute_error(frame["actual"], frame["mean"])),
        "rmse": float(np.sqrt(mean_squared_error(frame["actual"], frame["mean"]))),
        "coverage": coverage,
        "comparison": frame.reset_index(),
    }
    logger.info(
        "Holdout %s (%d years after %d): MAE=%.4f RMSE=%.4f",
        specification.label, holdout, model.last_year, metrics["mae"], metrics["rmse"],
    )
    return metrics
