"""
Configuration module for the Cleveland game-duration package.
Contains all constants, paths, and default modelling parameters.
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple


class Config:
    """Main configuration class for the game-duration trend analysis."""
    # Base paths - resolved relative to the project root
    _CONFIG_DIR = Path(__file__).parent.parent.parent  # Go up to project root
    PROJECT_ROOT = _CONFIG_DIR.resolve()

    DATA_DIR = PROJECT_ROOT / "data"
    RAW_DATA_DIR = DATA_DIR / "raw"
    PROCESSED_DATA_DIR = DATA_DIR / "processed"
    OUTPUT_DIR = PROJECT_ROOT / "output"

    # Raw game log scraped upstream, and the cached annual aggregate
    GAME_LOG_FILE = RAW_DATA_DIR / "cle_game_log.csv"
    ANNUAL_SERIES_FILE = PROCESSED_DATA_DIR / "cle_annual_duration.csv"
    FORECAST_FILE = OUTPUT_DIR / "duration_forecast.csv"

    # Column names of the annual series
    YEAR_COLUMN = "year"
    DURATION_COLUMN = "duration_hours_9"
    REGRESSOR_COLUMNS = ["runs_per_9", "wins", "losses", "attendance"]

    # Regulation game length used when scaling durations to 9 innings
    REGULATION_INNINGS = 9

    # Forecasting defaults
    FORECAST_HORIZON = 5
    CONFIDENCE_LEVELS = (0.80, 0.95)
    INTERVAL_METHOD = "constant"  # "constant" | "prediction"

    # Residual diagnostics defaults
    MAX_ACF_LAGS = 10
    ACF_SIGNIFICANCE_Z = 1.96
    HETEROSCEDASTICITY_THRESHOLD = 0.3
    SKEWNESS_THRESHOLD = 0.5
    OMITTED_VARIABLE_THRESHOLD = 0.3
    NONLINEARITY_THRESHOLD = 0.3

    # Relative tolerance for declaring the design matrix rank-deficient
    RANK_TOLERANCE = 1e-10

    # Residuals below this fraction of the data scale are treated as an exact fit
    EXACT_FIT_TOLERANCE = 1.5e-8

    @classmethod
    def ensure_directories(cls):
        """Create all required directories if they don't exist."""
        for dir_path in [cls.RAW_DATA_DIR, cls.PROCESSED_DATA_DIR, cls.OUTPUT_DIR]:
            dir_path.mkdir(parents=True, exist_ok=True)


# Create global config instance
config = Config()


@dataclass(frozen=True)
class DiagnosticsConfig:
    """
    Thresholds for residual diagnostics.

    Attributes:
        acf_lags: Number of ACF lags; None means min(MAX_ACF_LAGS, n // 4)
        significance_z: Multiplier on 1/sqrt(n) for the ACF significance bound
        heteroscedasticity_threshold: |Spearman rho| between |residual| and fitted value
        skewness_threshold: |skewness| above which residuals are flagged non-normal
        omitted_variable_threshold: |Pearson r| between residuals and an unused regressor
        nonlinearity_threshold: |Pearson r| between residuals and squared centred fitted values
    """
    acf_lags: Optional[int] = None
    significance_z: float = Config.ACF_SIGNIFICANCE_Z
    heteroscedasticity_threshold: float = Config.HETEROSCEDASTICITY_THRESHOLD
    skewness_threshold: float = Config.SKEWNESS_THRESHOLD
    omitted_variable_threshold: float = Config.OMITTED_VARIABLE_THRESHOLD
    nonlinearity_threshold: float = Config.NONLINEARITY_THRESHOLD


@dataclass(frozen=True)
class ForecastConfig:
    """
    Forecast horizon and interval construction.

    Attributes:
        horizon: Number of years to project past the last fitted year
        confidence_levels: Interval coverage levels, each in (0, 1)
        interval_method: "constant" keeps the in-sample sigma at every step,
            "prediction" widens it with the regression prediction variance
    """
    horizon: int = Config.FORECAST_HORIZON
    confidence_levels: Tuple[float, ...] = field(default=Config.CONFIDENCE_LEVELS)
    interval_method: str = Config.INTERVAL_METHOD


if __name__ == "__main__":
    # Test the configuration
    print("Cleveland Game Duration Configuration")
    print("=" * 40)
    print(f"Data directory: {config.DATA_DIR}")
    print(f"Annual series: {config.ANNUAL_SERIES_FILE}")
    print(f"Forecast horizon: {config.FORECAST_HORIZON}")
    print(f"Confidence levels: {config.CONFIDENCE_LEVELS}")
    print(f"Diagnostics defaults: {DiagnosticsConfig()}")

    config.ensure_directories()
    print("******* Configuration loaded and directories created!")
