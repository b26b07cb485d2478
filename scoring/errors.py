"""
Error types for the scoring engine.

AI enrichment failures are not represented here: the enrichment adapter
returns an ``Unavailable`` result instead of raising.
"""

from typing import Optional


class ScoringError(Exception):
    """Base class for all scoring engine errors."""

    def __init__(self, message: str, subject_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.subject_id = subject_id

    def describe(self) -> str:
        """Short '<ErrorClass>: <message>' form used in batch reports."""
        return f"{type(self).__name__}: {self.message}"


class CollectionError(ScoringError):
    """An upstream data provider was unreachable or returned malformed data."""

    def __init__(self, message: str, subject_id: Optional[str] = None, source: Optional[str] = None):
        super().__init__(message, subject_id)
        self.source = source


class SubjectNotFoundError(CollectionError):
    """The subject id does not resolve to a scoreable record."""


class AggregationError(ScoringError):
    """A scoring profile is misconfigured or a factor does not belong to it."""


class PersistenceError(ScoringError):
    """A snapshot (and its alert) could not be written to history."""
