"""
Cleveland Game Duration Package
Trend fitting, residual diagnostics and forecasting for annual MLB game length.
"""

__version__ = "1.0.0"
__author__ = "Cleveland Baseball Analytics"

# Import main classes for easy access
from .config import config, DiagnosticsConfig, ForecastConfig
from .data.series import ObservationSeries
from .data.loader import CsvSeriesLoader, FrameSeriesLoader, SeriesLoader
from .models.trend import FittedModel, Linear, PiecewiseLinear, TrendModelFitter, TrendSpecification
from .models.forecast import Forecaster, ForecastResult
from .utils.diagnostics import DiagnosticsReport, ResidualDiagnostics
from .pipeline import PipelineResult, run_pipeline

__all__ = [
    'config',
    'DiagnosticsConfig',
    'ForecastConfig',
    'ObservationSeries',
    'SeriesLoader',
    'CsvSeriesLoader',
    'FrameSeriesLoader',
    'TrendSpecification',
    'Linear',
    'PiecewiseLinear',
    'TrendModelFitter',
    'FittedModel',
    'Forecaster',
    'ForecastResult',
    'ResidualDiagnostics',
    'DiagnosticsReport',
    'PipelineResult',
    'run_pipeline',
]
