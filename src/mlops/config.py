"""Central MLflow configuration for consistent experiment tracking."""
import os

# ─── MLflow configuration ──────────────────────────────────────────────────
# Use Docker service-name so this works inside the compose network
# Falls back to local file store for standalone usage
TRACKING_URI = os.getenv("MLFLOW_TRACKING_URI", "http://mlflow:5000")
EXPERIMENT_NAME = "cle_game_duration"

# ─── Artifact names ────────────────────────────────────────────────────────
FORECAST_ARTIFACT = "forecast.json"
DIAGNOSTICS_ARTIFACT = "diagnostics.json"
FITTED_ARTIFACT = "fitted_values.json"
