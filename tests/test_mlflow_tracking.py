"""Tests for MLflow tracking of pipeline runs."""
import mlflow
import pytest

from cle_game_duration.models.trend import Linear, PiecewiseLinear
from cle_game_duration.pipeline import run_pipeline
from mlops import experiment_utils
from mlops.experiment_utils import get_best_run, resolve_tracking_uri, setup_mlflow_experiment
from mlops.logging import track_pipeline

from conftest import make_kinked_series


@pytest.fixture
def tracking_uri(tmp_path, monkeypatch):
    # Artifacts land relative to the working directory for database-backed stores
    monkeypatch.chdir(tmp_path)
    return f"sqlite:///{tmp_path / 'mlflow.db'}"


def test_unreachable_server_falls_back_to_local_store(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(experiment_utils, "_ping_tracking_server", lambda uri, timeout=2.0: False)

    uri = resolve_tracking_uri("http://mlflow:5000")
    assert uri.startswith("file:")
    assert (tmp_path / "mlruns_local").is_dir()


def test_non_http_uri_used_as_given():
    assert resolve_tracking_uri("sqlite:///tmp/x.db") == "sqlite:///tmp/x.db"


def test_experiment_setup(tracking_uri):
    experiment_id = setup_mlflow_experiment("test_experiment", tracking_uri)
    assert experiment_id
    assert mlflow.get_experiment_by_name("test_experiment") is not None


def test_track_pipeline_logs_fit_and_forecast(tracking_uri, noisy_linear_series):
    result = run_pipeline(noisy_linear_series, Linear())
    run_id = track_pipeline(result, experiment_name="duration_tests", tracking_uri=tracking_uri)

    run = mlflow.get_run(run_id)
    assert run.data.params["specification"] == "linear"
    assert run.data.params["interval_method"] == "constant"
    assert run.data.metrics["coef_year"] == pytest.approx(result.fitted.slope)
    assert "diag_skewness" in run.data.metrics

    artifacts = {a.path for a in mlflow.MlflowClient().list_artifacts(run_id)}
    assert {"forecast.json", "diagnostics.json", "fitted_values.json"} <= artifacts


def test_best_run_has_lowest_aic(tracking_uri):
    series = make_kinked_series(noise=0.02, n_years=30)
    for spec in (Linear(), PiecewiseLinear([10])):
        track_pipeline(run_pipeline(series, spec), experiment_name="aic_race",
                       tracking_uri=tracking_uri)

    best = get_best_run("aic_race", tracking_uri=tracking_uri)
    assert best["params.specification"] == "piecewise(10)"
