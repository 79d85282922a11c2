"""
Typed errors for the categorization and reporting pipeline.

Normalization and recommendation scoring are total functions and never raise;
everything below is raised by report generation, report reads, the catalog
store and the client-side identity polling.
"""
from typing import Optional


class QuoteDigestError(Exception):
    """Base class for all pipeline errors, caught once at the API layer."""
    pass


class RecommendationEmptyCatalog(QuoteDigestError):
    """Raised when the catalog has no active entries, so not even a universal fallback exists."""
    pass


class ReportNotFound(QuoteDigestError):
    """The report for this user and period has not been generated yet."""

    def __init__(self, user_id: str, period_key: str):
        self.user_id = user_id
        self.period_key = period_key
        super().__init__(f"Report not generated yet: user_id={user_id}, period={period_key}")


class ReportGenerationConflict(QuoteDigestError):
    """
    Another worker committed the report for the same (user_id, period) first.

    Recovered inside the report service by re-reading the winning row; it is
    never surfaced to callers.
    """

    def __init__(self, user_id: str, period_key: str):
        self.user_id = user_id
        self.period_key = period_key
        super().__init__(f"Concurrent report generation: user_id={user_id}, period={period_key}")


class IdentityTimeout(QuoteDigestError):
    """Identity polling and every fallback source were exhausted."""

    def __init__(self, waited_seconds: float, attempts: int):
        self.waited_seconds = waited_seconds
        self.attempts = attempts
        super().__init__(
            f"Timed out resolving user identity after {attempts} attempts ({waited_seconds:.2f}s)"
        )


class StorageUnavailable(QuoteDigestError):
    """Transport or storage failure, distinct from a report that does not exist."""

    def __init__(self, message: str, original: Optional[BaseException] = None):
        self.original = original
        super().__init__(message)
