"""
Tests for the Forecaster and its interval strategies.
"""
import numpy as np
import pytest

from cle_game_duration.config import ForecastConfig
from cle_game_duration.data.series import ObservationSeries
from cle_game_duration.exceptions import (
    InvalidConfidenceLevelError,
    InvalidHorizonError,
    MissingRegressorError,
)
from cle_game_duration.models.forecast import Forecaster, forecast
from cle_game_duration.models.trend import Linear, PiecewiseLinear, fit_trend


@pytest.fixture
def noisy_model(noisy_linear_series):
    return fit_trend(noisy_linear_series, Linear())


@pytest.mark.parametrize("horizon", [0, -3])
def test_non_positive_horizon_rejected(noisy_model, horizon):
    with pytest.raises(InvalidHorizonError):
        Forecaster().forecast(noisy_model, horizon)


def test_fractional_horizon_rejected(noisy_model):
    with pytest.raises(InvalidHorizonError):
        Forecaster().forecast(noisy_model, 2.5)


@pytest.mark.parametrize("horizon", [float("nan"), float("inf"), float("-inf")])
def test_non_finite_horizon_rejected(noisy_model, horizon):
    with pytest.raises(InvalidHorizonError):
        Forecaster().forecast(noisy_model, horizon)


def test_single_step_is_next_year(linear_series):
    model = fit_trend(linear_series, Linear())
    result = Forecaster().forecast(model, 1)

    assert result.years.tolist() == [1921]
    assert result.mean[0] == pytest.approx(2.05 + 0.5 / 19, abs=1e-9)


def test_default_horizon_from_config(noisy_model):
    result = Forecaster(ForecastConfig(horizon=7)).forecast(noisy_model)
    assert result.horizon == 7
    assert result.years[0] == noisy_model.last_year + 1


def test_forecast_extends_piecewise_trend(kinked_series):
    model = fit_trend(kinked_series, PiecewiseLinear([10]))
    result = Forecaster().forecast(model, 3)

    expected = 1.0 + 0.01 * np.arange(21, 24) + 0.04 * (np.arange(21, 24) - 10)
    np.testing.assert_allclose(result.mean, expected, atol=1e-9)


def test_interval_nesting(noisy_model):
    result = forecast(noisy_model, 10, confidence_levels=[0.95, 0.80])

    assert result.confidence_levels == (0.80, 0.95)
    assert np.all(result.lower(0.95) <= result.lower(0.80))
    assert np.all(result.lower(0.80) <= result.mean)
    assert np.all(result.mean <= result.upper(0.80))
    assert np.all(result.upper(0.80) <= result.upper(0.95))


def test_constant_sigma_intervals(noisy_model):
    result = forecast(noisy_model, 4, confidence_levels=[0.95, 0.90])

    np.testing.assert_allclose(result.std_error, noisy_model.sigma)
    half_width_95 = (result.upper(0.95) - result.mean) / noisy_model.sigma
    half_width_90 = (result.upper(0.90) - result.mean) / noisy_model.sigma
    np.testing.assert_allclose(half_width_95, 1.959964, atol=1e-5)
    np.testing.assert_allclose(half_width_90, 1.644854, atol=1e-5)


def test_prediction_intervals_widen(noisy_model):
    constant = forecast(noisy_model, 10, interval_method="constant")
    widening = forecast(noisy_model, 10, interval_method="prediction")

    assert np.all(np.diff(widening.std_error) > 0)
    assert np.all(widening.std_error > constant.std_error)
    np.testing.assert_array_equal(widening.mean, constant.mean)


def test_prediction_se_matches_textbook_formula(noisy_model):
    result = forecast(noisy_model, 2, interval_method="prediction")

    X = np.column_stack([np.ones(noisy_model.n_obs), noisy_model.years])
    x0 = np.array([1.0, noisy_model.last_year + 2])
    leverage = x0 @ np.linalg.inv(X.T @ X) @ x0
    assert result.std_error[1] == pytest.approx(noisy_model.sigma * np.sqrt(1 + leverage), rel=1e-6)


@pytest.mark.parametrize("level", [0.0, 1.0, 1.5, -0.2])
def test_invalid_confidence_level(level):
    with pytest.raises(InvalidConfidenceLevelError):
        Forecaster(ForecastConfig(confidence_levels=(level,)))


def test_unknown_interval_method():
    with pytest.raises(ValueError):
        Forecaster(ForecastConfig(interval_method="bootstrap"))


def test_forecast_is_deterministic(noisy_model):
    a = forecast(noisy_model, 5, interval_method="prediction")
    b = forecast(noisy_model, 5, interval_method="prediction")
    np.testing.assert_array_equal(a.mean, b.mean)
    np.testing.assert_array_equal(a.upper(0.95), b.upper(0.95))


def test_to_frame_columns(noisy_model):
    df = forecast(noisy_model, 3).to_frame()
    assert list(df.columns) == [
        "year", "mean", "std_error", "lower_80", "upper_80", "lower_95", "upper_95",
    ]
    assert len(df) == 3


def test_result_is_read_only(noisy_model):
    result = forecast(noisy_model, 3)

    with pytest.raises(ValueError):
        result.mean[0] = 0.0
    with pytest.raises(ValueError):
        result.lower(0.95)[0] = 0.0
    with pytest.raises(TypeError):
        result.bounds[0.5] = (result.mean, result.mean)
    assert result.years.dtype.kind == "i"


class TestRegressorForecasts:

    @pytest.fixture
    def model(self):
        rng = np.random.default_rng(5)
        years = np.arange(1980, 2010)
        runs = rng.normal(9, 1, years.size)
        duration = 2.6 + 0.01 * (years - 1980) + 0.03 * runs + rng.normal(0, 0.02, years.size)
        series = ObservationSeries(years, duration, {"runs_per_9": runs})
        return fit_trend(series, Linear(regressors=["runs_per_9"]))

    def test_requires_future_values(self, model):
        with pytest.raises(MissingRegressorError):
            Forecaster().forecast(model, 3)

    def test_requires_one_value_per_year(self, model):
        with pytest.raises(MissingRegressorError):
            Forecaster().forecast(model, 3, future_regressors={"runs_per_9": [9.0, 9.1]})

    def test_uses_future_values(self, model):
        low = Forecaster().forecast(model, 2, future_regressors={"runs_per_9": [8.0, 8.0]})
        high = Forecaster().forecast(model, 2, future_regressors={"runs_per_9": [10.0, 10.0]})
        delta = 2.0 * model.coefficients["runs_per_9"]
        np.testing.assert_allclose(high.mean - low.mean, delta)
