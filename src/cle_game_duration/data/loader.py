"""
Data loading module for Cleveland game-duration analysis.
Supplies the annual ObservationSeries consumed by the trend models.
"""
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional

import pandas as pd

from cle_game_duration.config import config
from cle_game_duration.data.series import ObservationSeries
from cle_game_duration.exceptions import SeriesValidationError

logger = logging.getLogger(__name__)


class SeriesLoader(ABC):
    """Data-access interface handing an annual series to the modelling core."""

    @abstractmethod
    def load(self) -> ObservationSeries:
        """Return the annual series, with gaps kept as explicit missing years."""


class FrameSeriesLoader(SeriesLoader):
    """Wraps an in-memory annual DataFrame (e.g. a cached notebook frame)."""

    def __init__(self, df: pd.DataFrame, regressor_cols: Optional[List[str]] = None,
                 fill_gaps: bool = True):
        self.df = df
        self.regressor_cols = regressor_cols
        self.fill_gaps = fill_gaps

    def load(self) -> ObservationSeries:
        series = ObservationSeries.from_frame(self.df, regressor_cols=self.regressor_cols)
        return series.complete() if self.fill_gaps else series


class CsvSeriesLoader(SeriesLoader):
    """Loads the cached annual series from CSV."""

    def __init__(self, filepath: Optional[Path] = None,
                 regressor_cols: Optional[List[str]] = None,
                 fill_gaps: bool = True):
        """
        Initialize the loader.

        Args:
            filepath: Optional path to the annual CSV; defaults to config.ANNUAL_SERIES_FILE
            regressor_cols: Auxiliary columns to keep; defaults to config.REGRESSOR_COLUMNS
                that are present in the file
            fill_gaps: Insert explicit NaN rows for years absent from the file
        """
        self.filepath = Path(filepath) if filepath is not None else config.ANNUAL_SERIES_FILE
        self.regressor_cols = regressor_cols
        self.fill_gaps = fill_gaps
        self.annual_df: Optional[pd.DataFrame] = None

    def load(self) -> ObservationSeries:
        try:
            self.annual_df = pd.read_csv(self.filepath)
        except FileNotFoundError:
            raise FileNotFoundError(f"Annual series file not found: {self.filepath}")
        logger.info("Loaded %d annual rows from %s", len(self.annual_df), self.filepath)

        regressor_cols = self.regressor_cols
        if regressor_cols is None:
            regressor_cols = [c for c in config.REGRESSOR_COLUMNS if c in self.annual_df.columns]

        series = ObservationSeries.from_frame(self.annual_df, regressor_cols=regressor_cols)
        if self.fill_gaps:
            series = series.complete()
        gaps = series.missing_years()
        if gaps:
            logger.info("%d years without a duration: %s", len(gaps), gaps)
        return series


def aggregate_games(games: pd.DataFrame, fill_gaps: bool = True) -> pd.DataFrame:
    """
    Collapse a game-level log into the annual per-9-inning series.

    Expected columns: ``year``, ``duration_minutes``, ``innings``. Optional
    ``runs`` (both teams), ``result`` ('W'/'L') and ``attendance`` add the
    auxiliary regressors runs_per_9, wins, losses and attendance.

    Games without a recorded duration or innings count are ignored; a year
    whose games all lack a duration keeps its row with a NaN duration.

    Args:
        games: One row per game
        fill_gaps: Reindex to every year in range so absent seasons stay visible

    Returns:
        DataFrame with one row per year
    """
    required = ["year", "duration_minutes", "innings"]
    missing = [c for c in required if c not in games.columns]
    if missing:
        raise SeriesValidationError(f"Game log missing required columns: {missing}")

    df = games.copy()
    df["innings"] = pd.to_numeric(df["innings"], errors="coerce")
    df["duration_minutes"] = pd.to_numeric(df["duration_minutes"], errors="coerce")
    # NaN innings propagate, so games without a usable innings count drop out of the means
    innings = df["innings"].where(df["innings"].gt(0))
    df["duration_hours_9"] = df["duration_minutes"] / 60.0 * config.REGULATION_INNINGS / innings
    if "runs" in df.columns:
        df["runs_per_9"] = pd.to_numeric(df["runs"], errors="coerce") * config.REGULATION_INNINGS / innings

    grouped = df.groupby("year")
    annual = pd.DataFrame({config.DURATION_COLUMN: grouped["duration_hours_9"].mean()})

    if "runs" in df.columns:
        annual["runs_per_9"] = grouped["runs_per_9"].mean()
    if "result" in df.columns:
        result = df["result"].astype(str).str.upper().str[0]
        annual["wins"] = result.eq("W").groupby(df["year"]).sum().astype(float)
        annual["losses"] = result.eq("L").groupby(df["year"]).sum().astype(float)
    if "attendance" in df.columns:
        annual["attendance"] = pd.to_numeric(df["attendance"], errors="coerce").groupby(df["year"]).sum(min_count=1)

    annual.index = annual.index.astype(int)
    if fill_gaps and len(annual):
        annual = annual.reindex(pd.RangeIndex(annual.index.min(), annual.index.max() + 1))
    annual.index.name = config.YEAR_COLUMN

    logger.info("Aggregated %d games into %d seasons", len(df), len(annual))
    return annual.reset_index()


def build_annual_series(game_log_file: Optional[Path] = None,
                        out_file: Optional[Path] = None) -> pd.DataFrame:
    """
    Aggregate the raw game log and cache the annual series as CSV.

    Args:
        game_log_file: Game-level CSV; defaults to config.GAME_LOG_FILE
        out_file: Destination; defaults to config.ANNUAL_SERIES_FILE

    Returns:
        The annual DataFrame that was written
    """
    game_log_file = Path(game_log_file) if game_log_file is not None else config.GAME_LOG_FILE
    out_file = Path(out_file) if out_file is not None else config.ANNUAL_SERIES_FILE
    try:
        games = pd.read_csv(game_log_file)
    except FileNotFoundError:
        raise FileNotFoundError(f"Game log file not found: {game_log_file}")

    annual = aggregate_games(games)
    out_file.parent.mkdir(parents=True, exist_ok=True)
    annual.to_csv(out_file, index=False)
    logger.info("Annual series written to %s", out_file)
    return annual


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s │ %(levelname)s │ %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    print("Testing CsvSeriesLoader...")

    try:
        series = CsvSeriesLoader().load()
        print(series)
        print(series.to_frame().head())
        print("******* CsvSeriesLoader tests passed!")
    except Exception as e:
        print(f"------------- Error testing CsvSeriesLoader: {e}")
        print("Note: This is expected if data files are not present.")
