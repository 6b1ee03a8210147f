"""
Annual observation series for game-duration modelling.

One record per calendar year, ordered by year. A missing duration (or
regressor) value is stored as NaN; a missing year is simply absent, and the
year value itself is what trend fitting indexes on.
"""
from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from cle_game_duration.config import config
from cle_game_duration.exceptions import SeriesValidationError


def _read_only(values: np.ndarray) -> np.ndarray:
    values.setflags(write=False)
    return values


class ObservationSeries:
    """Ordered annual records of (year, per-9 duration, auxiliary regressors)."""

    def __init__(
        self,
        years: Sequence[int],
        duration_hours_9: Sequence[Optional[float]],
        regressors: Optional[Mapping[str, Sequence[Optional[float]]]] = None,
    ):
        year_arr = np.asarray(years)
        if year_arr.ndim != 1:
            raise SeriesValidationError("years must be one-dimensional")
        if year_arr.size and not np.all(np.equal(np.mod(year_arr, 1), 0)):
            raise SeriesValidationError("years must be whole numbers")
        year_arr = year_arr.astype(np.int64)
        if np.any(np.diff(year_arr) <= 0):
            raise SeriesValidationError("years must be unique and strictly increasing")

        duration = np.asarray(
            [np.nan if v is None else v for v in duration_hours_9], dtype=float
        )
        if duration.shape != year_arr.shape:
            raise SeriesValidationError(
                f"duration has {duration.size} values for {year_arr.size} years"
            )

        regs: Dict[str, np.ndarray] = {}
        for name, values in (regressors or {}).items():
            arr = np.asarray([np.nan if v is None else v for v in values], dtype=float)
            if arr.shape != year_arr.shape:
                raise SeriesValidationError(
                    f"regressor '{name}' has {arr.size} values for {year_arr.size} years"
                )
            regs[name] = _read_only(arr)

        self._years = _read_only(year_arr)
        self._duration = _read_only(duration)
        self._regressors = regs

    # ── accessors ──────────────────────────────────────────────────────────
    @property
    def years(self) -> np.ndarray:
        return self._years

    @property
    def duration_hours_9(self) -> np.ndarray:
        return self._duration

    @property
    def regressors(self) -> Dict[str, np.ndarray]:
        return dict(self._regressors)

    @property
    def regressor_names(self) -> List[str]:
        return list(self._regressors)

    def regressor(self, name: str) -> np.ndarray:
        try:
            return self._regressors[name]
        except KeyError:
            raise SeriesValidationError(
                f"Unknown regressor '{name}'; available: {self.regressor_names}"
            ) from None

    def __len__(self) -> int:
        return int(self._years.size)

    def __repr__(self) -> str:
        if not len(self):
            return "ObservationSeries(empty)"
        return (
            f"ObservationSeries({self._years[0]}-{self._years[-1]}, "
            f"{len(self)} years, {self.n_observed} observed, "
            f"regressors={self.regressor_names})"
        )

    @property
    def n_observed(self) -> int:
        """Number of years with a non-missing duration."""
        return int(np.count_nonzero(~np.isnan(self._duration)))

    @property
    def year_range(self) -> tuple:
        if not len(self):
            raise SeriesValidationError("Empty series has no year range")
        return int(self._years[0]), int(self._years[-1])

    def missing_years(self) -> List[int]:
        """Years inside the range that are absent or have no duration."""
        if not len(self):
            return []
        first, last = self.year_range
        present = set(self._years[~np.isnan(self._duration)].tolist())
        return [y for y in range(first, last + 1) if y not in present]

    # ── transforms ─────────────────────────────────────────────────────────
    def complete(self) -> "ObservationSeries":
        """
        Reindex to every year between the first and last record.

        Absent years become explicit rows with NaN duration and regressors.
        """
        if not len(self):
            return self
        first, last = self.year_range
        frame = self.to_frame().set_index(config.YEAR_COLUMN)
        frame = frame.reindex(pd.RangeIndex(first, last + 1, name=config.YEAR_COLUMN))
        return ObservationSeries.from_frame(frame.reset_index(), regressor_cols=self.regressor_names)

    def slice_years(self, start: Optional[int] = None, end: Optional[int] = None) -> "ObservationSeries":
        """Records with start <= year <= end (either bound optional)."""
        mask = np.ones(len(self), dtype=bool)
        if start is not None:
            mask &= self._years >= start
        if end is not None:
            mask &= self._years <= end
        return ObservationSeries(
            self._years[mask],
            self._duration[mask],
            {name: values[mask] for name, values in self._regressors.items()},
        )

    # ── pandas interop ─────────────────────────────────────────────────────
    def to_frame(self) -> pd.DataFrame:
        data = {
            config.YEAR_COLUMN: self._years.copy(),
            config.DURATION_COLUMN: self._duration.copy(),
        }
        for name, values in self._regressors.items():
            data[name] = values.copy()
        return pd.DataFrame(data)

    @classmethod
    def from_frame(
        cls,
        df: pd.DataFrame,
        year_col: str = config.YEAR_COLUMN,
        duration_col: str = config.DURATION_COLUMN,
        regressor_cols: Optional[Iterable[str]] = None,
    ) -> "ObservationSeries":
        """
        Build a series from a DataFrame with one row per year.

        Args:
            df: Annual data; rows are sorted by year but never deduplicated
            year_col: Name of the year column
            duration_col: Name of the per-9 duration column (hours)
            regressor_cols: Auxiliary columns to carry; None takes every
                other numeric column

        Returns:
            ObservationSeries
        """
        missing = [c for c in (year_col, duration_col) if c not in df.columns]
        if missing:
            raise SeriesValidationError(f"Missing required columns: {missing}")

        if regressor_cols is None:
            regressor_cols = [
                c for c in df.select_dtypes(include="number").columns
                if c not in (year_col, duration_col)
            ]
        regressor_cols = list(regressor_cols)
        absent = [c for c in regressor_cols if c not in df.columns]
        if absent:
            raise SeriesValidationError(f"Missing regressor columns: {absent}")

        ordered = df.sort_values(year_col, kind="mergesort")
        if ordered[year_col].isna().any():
            raise SeriesValidationError("year column contains missing values")
        if ordered[year_col].duplicated().any():
            dupes = sorted(ordered.loc[ordered[year_col].duplicated(), year_col].unique().tolist())
            raise SeriesValidationError(f"Duplicate years in series: {dupes}")

        return cls(
            ordered[year_col].to_numpy(),
            pd.to_numeric(ordered[duration_col], errors="coerce").to_numpy(dtype=float),
            {
                c: pd.to_numeric(ordered[c], errors="coerce").to_numpy(dtype=float)
                for c in regressor_cols
            },
        )
