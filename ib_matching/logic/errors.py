"""
Matching Engine Errors

The scoring core never raises for valid-but-unfavourable inputs; these
exceptions mark contract violations at the boundary and faults in the
collaborators wrapped by the runner.
"""


class MatchingError(Exception):
    """Base class for all matching engine errors."""


class ContractViolationError(MatchingError, ValueError):
    """Raised when a record carries a domain-invalid value (grade, level, points)."""

    def __init__(self, message: str, field: str = ""):
        super().__init__(message)
        self.field = field


class ResultCacheError(MatchingError):
    """Raised by result cache implementations when the backing store fails."""
