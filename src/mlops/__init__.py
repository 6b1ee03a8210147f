"""MLflow experiment tracking for game-duration trend runs."""
