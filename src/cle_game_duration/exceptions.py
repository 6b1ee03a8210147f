"""
Exception types raised by the trend modelling pipeline.

Every error here stems from caller-supplied data or configuration, so none
of them is retried. They subclass ValueError so callers that already guard
against bad input keep working.
"""


class DurationModelError(ValueError):
    """Base class for all game-duration modelling errors."""


class SeriesValidationError(DurationModelError):
    """Annual series violates its invariants (duplicate/unsorted years, ragged columns)."""


class InsufficientDataError(DurationModelError):
    """Fewer usable observations than free parameters in the specification."""

    def __init__(self, n_obs: int, n_params: int):
        self.n_obs = n_obs
        self.n_params = n_params
        super().__init__(
            f"Need at least {n_params} usable observations for this specification, got {n_obs}"
        )


class InvalidKnotError(DurationModelError):
    """Knot outside the observed year range, or knots not strictly increasing."""


class SingularDesignError(DurationModelError):
    """Design matrix is rank-deficient, so the least-squares fit has no unique solution."""


class InvalidHorizonError(DurationModelError):
    """Forecast horizon must be a positive integer."""


class InvalidConfidenceLevelError(DurationModelError):
    """Confidence level outside the open interval (0, 1)."""


class MissingRegressorError(DurationModelError):
    """A regressor required by the specification has no values to work with."""
