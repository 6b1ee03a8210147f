"""
Forecasting from fitted trend models.

Point forecasts extrapolate the fitted trend past the last fitted year.
Interval width comes from a pluggable standard-error strategy:

* ``constant``   - in-sample residual sigma at every step (reference behaviour)
* ``prediction`` - sigma * sqrt(1 + x0'(X'X)^-1 x0), widening with distance
  from the fitted sample
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Dict, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy import stats

from cle_game_duration.config import ForecastConfig, config
from cle_game_duration.exceptions import (
    InvalidConfidenceLevelError,
    InvalidHorizonError,
    MissingRegressorError,
)
from cle_game_duration.models.trend import FittedModel, read_only_array

logger = logging.getLogger(__name__)

StandardErrorFn = Callable[[FittedModel, np.ndarray], np.ndarray]


def constant_standard_error(model: FittedModel, design: np.ndarray) -> np.ndarray:
    return np.full(design.shape[0], model.sigma)


def prediction_standard_error(model: FittedModel, design: np.ndarray) -> np.ndarray:
    return model.sigma * np.sqrt(1.0 + model.leverage(design))


INTERVAL_STRATEGIES: Dict[str, StandardErrorFn] = {
    "constant": constant_standard_error,
    "prediction": prediction_standard_error,
}


def _level_key(level: float) -> str:
    return f"{level * 100:g}"


@dataclass(frozen=True, eq=False)
class ForecastResult:
    """
    h-step forecast with Gaussian prediction intervals.

    ``bounds`` maps each confidence level to a (lower, upper) pair of arrays
    aligned with ``years``.
    """
    years: np.ndarray
    mean: np.ndarray
    std_error: np.ndarray
    bounds: Mapping[float, Tuple[np.ndarray, np.ndarray]]
    interval_method: str

    def __post_init__(self):
        object.__setattr__(self, "years", read_only_array(self.years, dtype=None))
        object.__setattr__(self, "mean", read_only_array(self.mean))
        object.__setattr__(self, "std_error", read_only_array(self.std_error))
        object.__setattr__(self, "bounds", MappingProxyType({
            float(level): (read_only_array(lower), read_only_array(upper))
            for level, (lower, upper) in self.bounds.items()
        }))

    @property
    def horizon(self) -> int:
        return int(self.years.size)

    @property
    def confidence_levels(self) -> Tuple[float, ...]:
        return tuple(self.bounds)

    def lower(self, level: float) -> np.ndarray:
        return self.bounds[level][0]

    def upper(self, level: float) -> np.ndarray:
        return self.bounds[level][1]

    def to_frame(self) -> pd.DataFrame:
        """One row per forecast year with ``lower_80``/``upper_80`` style columns."""
        df = pd.DataFrame({
            config.YEAR_COLUMN: self.years,
            "mean": self.mean,
            "std_error": self.std_error,
        })
        for level in sorted(self.bounds):
            lower, upper = self.bounds[level]
            df[f"lower_{_level_key(level)}"] = lower
            df[f"upper_{_level_key(level)}"] = upper
        return df


class Forecaster:
    """Projects a FittedModel forward with normal-theory intervals."""

    def __init__(self, forecast_config: Optional[ForecastConfig] = None):
        self.config = forecast_config or ForecastConfig()
        if self.config.interval_method not in INTERVAL_STRATEGIES:
            raise ValueError(
                f"Unknown interval method '{self.config.interval_method}'; "
                f"choose from {sorted(INTERVAL_STRATEGIES)}"
            )
        self._levels = self._validate_levels(self.config.confidence_levels)

    @staticmethod
    def _validate_levels(levels: Sequence[float]) -> Tuple[float, ...]:
        checked = []
        for level in levels:
            level = float(level)
            if not 0.0 < level < 1.0:
                raise InvalidConfidenceLevelError(f"Confidence level must be in (0, 1), got {level}")
            checked.append(level)
        return tuple(sorted(set(checked)))

    def forecast(
        self,
        model: FittedModel,
        horizon: Optional[int] = None,
        future_regressors: Optional[Mapping[str, Sequence[float]]] = None,
    ) -> ForecastResult:
        """
        Forecast *horizon* years past the model's last fitted year.

        Args:
            model: Fitted trend model
            horizon: Number of years; defaults to the configured horizon
            future_regressors: Values for each regressor in the specification,
                one per forecast year

        Returns:
            ForecastResult

        Raises:
            InvalidHorizonError: horizon is not a positive integer
            MissingRegressorError: regressor values missing or the wrong length
        """
        horizon = self.config.horizon if horizon is None else horizon
        if (isinstance(horizon, bool) or not np.isfinite(horizon)
                or int(horizon) != horizon or horizon <= 0):
            raise InvalidHorizonError(f"Forecast horizon must be a positive integer, got {horizon}")
        horizon = int(horizon)

        years = np.arange(model.last_year + 1, model.last_year + horizon + 1)
        regressors = self._future_regressors(model, horizon, future_regressors)
        design = model.design(years, regressors)
        mean = design @ model.params
        std_error = INTERVAL_STRATEGIES[self.config.interval_method](model, design)

        bounds = {}
        for level in self._levels:
            z = stats.norm.ppf((1.0 + level) / 2.0)
            bounds[level] = (mean - z * std_error, mean + z * std_error)

        logger.info(
            "Forecast %s for %d-%d (%s intervals at %s)",
            model.specification.label, years[0], years[-1],
            self.config.interval_method, [_level_key(level) for level in self._levels],
        )
        return ForecastResult(
            years=years,
            mean=mean,
            std_error=std_error,
            bounds=bounds,
            interval_method=self.config.interval_method,
        )

    @staticmethod
    def _future_regressors(
        model: FittedModel,
        horizon: int,
        future_regressors: Optional[Mapping[str, Sequence[float]]],
    ) -> Dict[str, np.ndarray]:
        needed = model.specification.regressors
        if not needed:
            return {}
        future_regressors = future_regressors or {}
        values = {}
        for name in needed:
            if name not in future_regressors:
                raise MissingRegressorError(f"Forecast needs future values for regressor '{name}'")
            arr = np.asarray(future_regressors[name], dtype=float)
            if arr.shape != (horizon,) or np.isnan(arr).any():
                raise MissingRegressorError(
                    f"Regressor '{name}' needs {horizon} non-missing future values, got {arr.size}"
                )
            values[name] = arr
        return values


def forecast(
    model: FittedModel,
    horizon: int,
    confidence_levels: Sequence[float] = config.CONFIDENCE_LEVELS,
    interval_method: str = config.INTERVAL_METHOD,
    future_regressors: Optional[Mapping[str, Sequence[float]]] = None,
) -> ForecastResult:
    """Convenience wrapper building a Forecaster from keyword arguments."""
    forecaster = Forecaster(ForecastConfig(
        horizon=horizon,
        confidence_levels=tuple(confidence_levels),
        interval_method=interval_method,
    ))
    return forecaster.forecast(model, horizon, future_regressors)
