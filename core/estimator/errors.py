"""
Error taxonomy for the estimator.

InvalidSpecError and DataAccessError propagate to the caller.
AugmentationError is raised inside the insight layer and never escapes it.
Insufficient data is not an error: it is an EstimateResult with show_price=False.
"""

from typing import List, Optional


class EstimatorError(Exception):
    """Base class for estimator failures."""


class InvalidSpecError(EstimatorError):
    """
    Subject description is malformed or incomplete.

    Caller's fault - not retried.
    """

    def __init__(self, errors: List[str]):
        self.errors = errors
        super().__init__("; ".join(errors))


class DataAccessError(EstimatorError):
    """
    Historical transaction store unreachable or query failed.

    Never treated as "no comparables". The caller may retry with backoff.
    """

    def __init__(self, message: str, source: Optional[str] = None):
        self.source = source
        super().__init__(message)


class AugmentationError(EstimatorError):
    """Narrative generation failed, timed out, or returned malformed output."""
