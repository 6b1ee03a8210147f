"""MLflow experiment utilities."""
import logging
import pathlib
import re
import shutil
from typing import Any, Dict, Optional

import mlflow
import mlflow.tracking
import requests

from mlops import config as mlops_config

_HEALTH_ENDPOINTS = ("/health", "/version")
_hex32 = re.compile(r"^[0-9a-f]{32}$", re.I)
logger = logging.getLogger(__name__)


def _ping_tracking_server(uri: str, timeout: float = 2.0) -> bool:
    """Return True iff an HTTP MLflow server is reachable at *uri*."""
    try:
        for ep in _HEALTH_ENDPOINTS:
            response = requests.get(uri.rstrip("/") + ep, timeout=timeout)
            response.raise_for_status()
        return True
    except requests.RequestException as exc:
        logger.debug("MLflow server ping failed: %s", exc)
        return False


def _sanitize_mlruns_dir(root: pathlib.Path) -> None:
    """
    Remove directories inside *root* that cannot possibly be valid
    MLflow experiments (file-store experiments MUST be numeric).
    """
    for p in root.iterdir():
        if p.is_dir() and _hex32.match(p.name) and not (p / "meta.yaml").exists():
            logger.warning("🧹 Removing orphan MLflow dir %s", p)
            shutil.rmtree(p, ignore_errors=True)


def _fallback_uri() -> str:
    """Local file-store *outside* the default ./mlruns to avoid collisions."""
    local = pathlib.Path.cwd() / "mlruns_local"
    local.mkdir(exist_ok=True)
    _sanitize_mlruns_dir(local)
    return f"file:{local}"


def resolve_tracking_uri(uri: Optional[str] = None) -> str:
    """
    Pick the tracking URI to use.

    HTTP servers are pinged and replaced by a local file store when
    unreachable; any other URI (file:, sqlite:) is used as given.
    """
    uri = uri or mlops_config.TRACKING_URI
    if uri.startswith("http") and not _ping_tracking_server(uri):
        fallback = _fallback_uri()
        logger.warning("⚠️  MLflow server %s unreachable – using local store %s", uri, fallback)
        return fallback
    return uri


def setup_mlflow_experiment(
    experiment_name: Optional[str] = None,
    tracking_uri: Optional[str] = None,
) -> str:
    """
    Resolve a reachable MLflow tracking URI and make sure the experiment exists.

    Returns:
        The experiment id
    """
    exp_name = experiment_name or mlops_config.EXPERIMENT_NAME
    uri = resolve_tracking_uri(tracking_uri)
    mlflow.set_tracking_uri(uri)

    experiment = mlflow.get_experiment_by_name(exp_name)
    if experiment is None:
        experiment_id = mlflow.create_experiment(exp_name)
    else:
        experiment_id = experiment.experiment_id

    mlflow.set_experiment(exp_name)
    logger.info("🗂  Using MLflow experiment '%s' @ %s", exp_name, uri)
    return experiment_id


def get_best_run(
    experiment_name: Optional[str] = None,
    metric_key: str = "aic",
    maximize: bool = False,
    tracking_uri: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Return a *shallow* dict with run_id, metrics.*, params.* and tags.* keys
    for the best run of the experiment (lowest AIC by default).
    """
    exp_name = experiment_name or mlops_config.EXPERIMENT_NAME
    setup_mlflow_experiment(exp_name, tracking_uri)

    client = mlflow.tracking.MlflowClient()
    exp = mlflow.get_experiment_by_name(exp_name)
    if exp is None:
        raise ValueError(f"Experiment '{exp_name}' not found")

    order = "DESC" if maximize else "ASC"
    runs = client.search_runs(
        [exp.experiment_id],
        order_by=[f"metrics.{metric_key} {order}"],
        max_results=1,
    )
    if not runs:
        raise ValueError(f"Experiment '{exp_name}' has no runs")
    run = runs[0]

    flat: Dict[str, Any] = {"run_id": run.info.run_id}
    for k, v in run.data.metrics.items():
        flat[f"metrics.{k}"] = v
    for k, v in run.data.params.items():
        flat[f"params.{k}"] = v
    for k, v in run.data.tags.items():
        flat[f"tags.{k}"] = v
    return flat
