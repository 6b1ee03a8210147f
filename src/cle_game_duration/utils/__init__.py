"""Utils module for game-duration trend analysis."""

from .diagnostics import DiagnosticsReport, ResidualDiagnostics, autocorrelation, diagnose
from .metrics import compare_specifications, fit_metrics, holdout_evaluation

__all__ = ['DiagnosticsReport', 'ResidualDiagnostics', 'autocorrelation', 'diagnose',
           'fit_metrics', 'compare_specifications', 'holdout_evaluation']
