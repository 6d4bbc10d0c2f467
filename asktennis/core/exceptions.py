"""
Error taxonomy for the sync-and-cache core.

Provider and store errors are raised inside the sync engine and absorbed
there (surfaced through SyncStatus.last_error). Query errors are raised
inside the query resolver and converted to typed outcomes at its boundary.
"""


class AskTennisError(Exception):
    """Base class for all application errors."""


# Provider (Sportradar) errors

class ProviderError(AskTennisError):
    """Transport, HTTP or payload failure talking to the data provider."""

    def __init__(self, message: str, status_code: int | None = None, endpoint: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.endpoint = endpoint


class ProviderUnavailable(ProviderError):
    """No usable credentials are configured; nothing was requested."""


class ProviderTimeout(ProviderError):
    """The provider did not answer within the configured timeout."""


# Store errors

class StoreWriteError(AskTennisError):
    """A write failed while applying an ingestion batch."""

    def __init__(self, message: str, batch: str | None = None):
        super().__init__(message)
        self.batch = batch


# Query errors

class QueryError(AskTennisError):
    """Base class for failures returned by the query resolver."""


class NotFound(QueryError):
    """The store holds no data answering the query."""


class InvalidArgument(QueryError):
    """The query arguments were rejected before touching the store."""
