"""
Tests for trend specifications and the least-squares fitter.
"""
import numpy as np
import pytest

from cle_game_duration.data.series import ObservationSeries
from cle_game_duration.exceptions import (
    InsufficientDataError,
    InvalidKnotError,
    MissingRegressorError,
    SingularDesignError,
)
from cle_game_duration.models.trend import Linear, PiecewiseLinear, TrendModelFitter, fit_trend

from conftest import make_kinked_series


class TestSpecifications:

    def test_parameter_counts(self):
        assert Linear().n_params == 2
        assert PiecewiseLinear([1950, 1990]).n_params == 4
        assert PiecewiseLinear([1950], regressors=["runs_per_9"]).n_params == 4

    def test_hinge_design_rows(self):
        X = PiecewiseLinear([3, 5]).design_matrix([2, 4, 7])
        expected = np.array([
            [1, 2, 0, 0],
            [1, 4, 1, 0],
            [1, 7, 4, 2],
        ], dtype=float)
        np.testing.assert_array_equal(X, expected)

    def test_labels_and_equality(self):
        assert Linear().label == "linear"
        assert PiecewiseLinear([1950.0, 1990]).label == "piecewise(1950,1990)"
        assert PiecewiseLinear([10]) == PiecewiseLinear([10.0])
        assert Linear(regressors=["wins"]).column_names == ["intercept", "year", "wins"]


class TestLinearFit:

    def test_recovers_slope(self, linear_series):
        model = fit_trend(linear_series, Linear())

        assert model.slope == pytest.approx((2.05 - 1.55) / 19, abs=1e-9)
        assert np.max(np.abs(model.residuals)) < 1e-8
        assert model.n_obs == 20
        assert model.n_params == 2

    def test_normal_equation_properties(self, noisy_linear_series):
        model = fit_trend(noisy_linear_series, Linear())

        assert np.sum(model.residuals) == pytest.approx(0.0, abs=1e-9)
        assert np.dot(model.residuals, model.years) == pytest.approx(0.0, abs=1e-6)

    def test_residual_variance_is_unbiased(self, noisy_linear_series):
        model = fit_trend(noisy_linear_series, Linear())
        expected = np.sum(model.residuals ** 2) / (model.n_obs - 2)
        assert model.residual_variance == pytest.approx(expected)
        assert model.sigma == pytest.approx(np.sqrt(expected))

    def test_missing_durations_skipped(self):
        years = np.arange(2000, 2010)
        duration = 2.5 + 0.02 * (years - 2000)
        duration[[2, 5]] = np.nan
        model = fit_trend(ObservationSeries(years, duration), Linear())

        assert model.n_obs == 8
        assert 2002 not in model.years
        assert 2005 not in model.years
        assert model.slope == pytest.approx(0.02)

    def test_fit_is_deterministic(self, noisy_linear_series):
        a = fit_trend(noisy_linear_series, PiecewiseLinear([1980]))
        b = fit_trend(noisy_linear_series, PiecewiseLinear([1980]))
        np.testing.assert_array_equal(a.params, b.params)
        np.testing.assert_array_equal(a.residuals, b.residuals)

    def test_model_is_immutable(self, linear_series):
        model = fit_trend(linear_series, Linear())
        with pytest.raises(ValueError):
            model.params[0] = 0.0
        with pytest.raises(AttributeError):
            model.residual_variance = 1.0


class TestPiecewiseFit:

    def test_recovers_both_slopes(self, kinked_series):
        model = fit_trend(kinked_series, PiecewiseLinear([10]))

        slopes = model.segment_slopes
        assert slopes[0] == pytest.approx(0.01, abs=1e-9)
        assert slopes[1] == pytest.approx(0.05, abs=1e-9)
        assert np.max(np.abs(model.residuals)) < 1e-9

    def test_continuous_at_knots(self):
        series = make_kinked_series(noise=0.02, n_years=40, seed=3)
        model = fit_trend(series, PiecewiseLinear([10, 25]))

        for knot in (10, 25):
            left = model.trend([knot - 1e-9])[0]
            right = model.trend([knot + 1e-9])[0]
            assert left == pytest.approx(right, abs=1e-7)

    def test_one_slope_change_per_knot(self):
        series = make_kinked_series(noise=0.02, n_years=40, seed=3)
        model = fit_trend(series, PiecewiseLinear([10, 25]))

        grid = np.arange(1.0, 40.0, 0.5)
        slopes = np.diff(model.trend(grid)) / 0.5
        changes = np.flatnonzero(np.abs(np.diff(slopes)) > 1e-9)
        assert len(changes) <= 2

    def test_linear_misses_the_kink(self, kinked_series):
        model = fit_trend(kinked_series, Linear())
        assert np.max(np.abs(model.residuals)) > 0.05


class TestFitErrors:

    def test_insufficient_data(self):
        years = np.arange(1, 11)
        duration = np.full(years.size, np.nan)
        duration[4] = 2.0
        series = ObservationSeries(years, duration)

        with pytest.raises(InsufficientDataError) as exc_info:
            fit_trend(series, PiecewiseLinear([3, 6]))
        assert exc_info.value.n_obs == 1
        assert exc_info.value.n_params == 4

    def test_empty_series(self):
        with pytest.raises(InsufficientDataError):
            fit_trend(ObservationSeries([], []), Linear())

    @pytest.mark.parametrize("knots", [[0], [21], [12, 8], [10, 10]])
    def test_invalid_knots(self, kinked_series, knots):
        with pytest.raises(InvalidKnotError):
            fit_trend(kinked_series, PiecewiseLinear(knots))

    def test_piecewise_without_knots(self, kinked_series):
        with pytest.raises(InvalidKnotError):
            fit_trend(kinked_series, PiecewiseLinear([]))

    @pytest.mark.parametrize("knot", [1, 20])
    def test_knot_on_boundary_is_singular(self, kinked_series, knot):
        with pytest.raises(SingularDesignError):
            fit_trend(kinked_series, PiecewiseLinear([knot]))

    def test_knot_past_last_observed_duration(self):
        years = np.arange(1, 21)
        duration = 1.0 + 0.01 * years
        duration[17:] = np.nan
        with pytest.raises(SingularDesignError):
            fit_trend(ObservationSeries(years, duration), PiecewiseLinear([19]))

    def test_unknown_regressor(self, kinked_series):
        with pytest.raises(MissingRegressorError):
            fit_trend(kinked_series, Linear(regressors=["attendance"]))

    def test_exactly_identified_fit_has_no_variance(self):
        series = ObservationSeries([2001, 2002], [2.8, 2.9])
        model = fit_trend(series, Linear())
        assert model.df_resid == 0
        assert np.isnan(model.residual_variance)


class TestRegressors:

    def test_recovers_regressor_coefficient(self):
        rng = np.random.default_rng(11)
        years = np.arange(1960, 2000)
        runs = rng.normal(9, 1, years.size)
        duration = 2.3 + 0.01 * (years - 1960) + 0.04 * runs
        series = ObservationSeries(years, duration, {"runs_per_9": runs})

        model = TrendModelFitter().fit(series, Linear(regressors=["runs_per_9"]))
        assert model.coefficients["runs_per_9"] == pytest.approx(0.04, abs=1e-6)
        assert model.coefficients["year"] == pytest.approx(0.01, abs=1e-6)

    def test_rows_with_missing_regressor_dropped(self):
        years = np.arange(1960, 1970)
        runs = np.array([8.1, 9.0, 8.4, 8.8, 7.9, 8.6, 9.2, 8.0, 8.3, 8.7])
        runs[3] = np.nan
        series = ObservationSeries(years, 2.5 + 0.01 * (years - 1960), {"runs_per_9": runs})

        model = fit_trend(series, Linear(regressors=["runs_per_9"]))
        assert model.n_obs == 9

    def test_coefficient_table(self, noisy_linear_series):
        table = fit_trend(noisy_linear_series, Linear()).coefficient_table()

        assert list(table.index) == ["intercept", "year"]
        assert (table["std_error"] > 0).all()
        assert table.loc["year", "p_value"] < 0.001
