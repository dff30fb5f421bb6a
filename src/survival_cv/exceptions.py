"""
Error types raised by the cross-validation workflow.
"""


class DataError(ValueError):
    """Input data cannot be modelled (missing columns, no rows, bad codes, thin strata)."""


class FitError(RuntimeError):
    """The survival forest could not be fitted on a training fold."""

    def __init__(self, message: str, fold: str = None, params=None):
        super().__init__(message)
        self.fold = fold
        self.params = params


class GridSearchError(RuntimeError):
    """No hyperparameter combination could be selected."""
