"""
Error taxonomy for history cleanup.

ConfigurationError and ParseError signal operator misconfiguration and are
never retried. StorageError wraps failures of the persistence layer and is
propagated unchanged by the cleanup core.
"""


class HistoryCleanupError(Exception):
    """Base error for the history cleanup package."""


class ConfigurationError(HistoryCleanupError):
    """Cleanup configuration is missing or invalid (e.g. no batch window)."""


class ParseError(HistoryCleanupError, ValueError):
    """A time-of-day string matches none of the accepted formats."""


class StorageError(HistoryCleanupError):
    """A query or delete against the history store failed."""
