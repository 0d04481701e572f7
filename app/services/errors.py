"""
Journal error taxonomy.

Store and generator failures are raised as these types so callers can tell
a missing session from a transient fault without knowing which backend or
LLM client sits underneath.
"""


class JournalError(Exception):
    """Base class for journal errors."""


class Unauthenticated(JournalError):
    """No valid owner session. Not retried; surfaced to the caller."""

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)


class StoreUnavailable(JournalError):
    """Transient storage/network fault. Retryable by the caller, never internally."""


class GenerationFailed(JournalError):
    """The summary generator errored or returned a malformed response."""


class NoData(JournalError):
    """A month has no meaningful records to summarize."""


class InvalidImport(JournalError):
    """The import document is not usable at all."""
