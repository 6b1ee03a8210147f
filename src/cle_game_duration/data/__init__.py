"""
Data module for Cleveland game-duration analysis.
"""

from .series import ObservationSeries
from .loader import CsvSeriesLoader, FrameSeriesLoader, SeriesLoader, aggregate_games, build_annual_series

__all__ = ['ObservationSeries', 'SeriesLoader', 'CsvSeriesLoader', 'FrameSeriesLoader', 'aggregate_games',
           'build_annual_series']
