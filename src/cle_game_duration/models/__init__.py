"""Models module for game-duration trend analysis."""

from .trend import FittedModel, Linear, PiecewiseLinear, TrendModelFitter, TrendSpecification, fit_trend
from .forecast import Forecaster, ForecastResult, forecast

__all__ = ['TrendSpecification', 'Linear', 'PiecewiseLinear', 'TrendModelFitter', 'FittedModel',
           'fit_trend', 'Forecaster', 'ForecastResult', 'forecast']
