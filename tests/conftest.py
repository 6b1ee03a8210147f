"""Shared synthetic series for the trend-model tests."""
import numpy as np
import pytest

from cle_game_duration.data.series import ObservationSeries


def make_linear_series() -> ObservationSeries:
    """1901-1920 with per-9 duration rising exactly from 1.55 to 2.05 hours."""
    years = np.arange(1901, 1921)
    duration = 1.55 + (2.05 - 1.55) / 19 * (years - 1901)
    return ObservationSeries(years, duration)


def make_kinked_series(noise: float = 0.0, n_years: int = 20, seed: int = 0) -> ObservationSeries:
    """Years 1..n with slope 0.01 up to year 10 and 0.05 afterwards."""
    years = np.arange(1, n_years + 1)
    duration = 1.0 + 0.01 * years + 0.04 * np.maximum(0, years - 10)
    if noise:
        duration = duration + np.random.default_rng(seed).normal(0, noise, years.size)
    return ObservationSeries(years, duration)


def make_noisy_linear_series(n_years: int = 60, seed: int = 7) -> ObservationSeries:
    rng = np.random.default_rng(seed)
    years = np.arange(1950, 1950 + n_years)
    duration = 2.4 + 0.012 * (years - 1950) + rng.normal(0, 0.05, years.size)
    return ObservationSeries(
        years,
        duration,
        {"runs_per_9": rng.normal(9, 1, years.size), "attendance": rng.normal(1.5e6, 2e5, years.size)},
    )


@pytest.fixture
def linear_series():
    return make_linear_series()


@pytest.fixture
def kinked_series():
    return make_kinked_series()


@pytest.fixture
def noisy_linear_series():
    return make_noisy_linear_series()
