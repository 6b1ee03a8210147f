"""
MLflow logging helpers for trend-model runs.
"""
from __future__ import annotations

import math
from typing import Any, Dict, Optional

import mlflow

from cle_game_duration.models.forecast import ForecastResult
from cle_game_duration.models.trend import FittedModel
from cle_game_duration.pipeline import PipelineResult
from cle_game_duration.utils.diagnostics import DiagnosticsReport
from cle_game_duration.utils.metrics import fit_metrics
from mlops import config as mlops_config
from mlops.experiment_utils import setup_mlflow_experiment


def _finite(metrics: Dict[str, Any]) -> Dict[str, float]:
    """Keep numeric, finite entries; MLflow metrics are floats only."""
    out = {}
    for k, v in metrics.items():
        if isinstance(v, bool):
            out[k] = float(v)
        elif isinstance(v, (int, float)) and math.isfinite(v):
            out[k] = float(v)
    return out


def log_parameters(params: Dict[str, Any]) -> None:
    """
    Log parameters to MLflow.

    Args:
        params: Dictionary of parameter names and values
    """
    mlflow.log_params(params)


def log_fitted_model(model: FittedModel, prefix: str = "") -> Dict[str, float]:
    """
    Log specification params, coefficients and fit metrics.

    Returns a flat dict so callers can unit-test easily.
    """
    spec = model.specification
    log_parameters({
        "specification": spec.label,
        "knots": ",".join(f"{k:g}" for k in spec.knots) or "none",
        "regressors": ",".join(spec.regressors) or "none",
        "first_year": int(model.years[0]),
        "last_year": model.last_year,
    })

    metrics = dict(fit_metrics(model))
    metrics["residual_variance"] = model.residual_variance
    metrics.update({f"coef_{name}": value for name, value in model.coefficients.items()})
    if prefix:
        metrics = {f"{prefix}_{k}": v for k, v in metrics.items()}

    metrics = _finite(metrics)
    mlflow.log_metrics(metrics)
    mlflow.log_dict(
        model.to_frame().to_dict(orient="list"),
        artifact_file=mlops_config.FITTED_ARTIFACT,
    )
    return metrics


def log_diagnostics(report: DiagnosticsReport) -> Dict[str, float]:
    """Numeric diagnostics as metrics, the full report as a JSON artifact."""
    payload = report.to_dict()
    metrics = _finite({f"diag_{k}": v for k, v in payload.items()})
    mlflow.log_metrics(metrics)
    mlflow.log_dict(
        {k: (v if not isinstance(v, float) or math.isfinite(v) else None) for k, v in payload.items()},
        artifact_file=mlops_config.DIAGNOSTICS_ARTIFACT,
    )
    return metrics


def log_forecast(result: ForecastResult) -> None:
    """Forecast table as a JSON artifact plus the interval method as a param."""
    log_parameters({
        "interval_method": result.interval_method,
        "horizon": result.horizon,
        "confidence_levels": ",".join(f"{c:g}" for c in result.confidence_levels),
    })
    mlflow.log_dict(
        result.to_frame().to_dict(orient="list"),
        artifact_file=mlops_config.FORECAST_ARTIFACT,
    )


def track_pipeline(
    result: PipelineResult,
    run_name: Optional[str] = None,
    experiment_name: Optional[str] = None,
    tracking_uri: Optional[str] = None,
) -> str:
    """
    Log a complete pipeline result in a fresh MLflow run.

    Returns:
        The run id
    """
    setup_mlflow_experiment(experiment_name, tracking_uri)
    with mlflow.start_run(run_name=run_name or result.label) as run:
        log_fitted_model(result.fitted)
        log_diagnostics(result.diagnostics)
        log_forecast(result.forecast)
        return run.info.run_id
