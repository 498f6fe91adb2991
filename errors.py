# errors.py
from typing import List, Optional


class MetabolicRiskError(Exception):
    """Base class for every error raised by the calculator core."""


class InvalidInputError(MetabolicRiskError, ValueError):
    """Malformed, missing or non-finite input, rejected before computation."""

    def __init__(self, message: str, fields: Optional[List[str]] = None):
        super().__init__(message)
        self.fields = list(fields or [])


class PersistError(MetabolicRiskError):
    """Backend unreachable, malformed response or non-success status."""

    def __init__(self, message: str, backend: str = ""):
        super().__init__(message)
        self.backend = backend


class RecommendationError(MetabolicRiskError):
    """The text-generation collaborator failed; callers fall back to rules."""


class DuplicateRecordError(PersistError):
    """The store already holds a record with this id; the store itself is healthy."""
