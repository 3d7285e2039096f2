"""
Error taxonomy for the sync engine.

Per-record errors (ParseError, NormalizationError) are skipped and counted.
Per-source errors (FetchError, StorageError) abort only that source's run and
are retried on the next scheduled tick. ConfigurationError is fatal at startup.
"""


class SyncError(Exception):
    """Base class for all sync engine errors."""

    def __init__(self, message: str, source_name: str | None = None):
        super().__init__(message)
        self.source_name = source_name


class FetchError(SyncError):
    """Network or HTTP failure while probing or downloading a source."""

    def __init__(self, message: str, source_name: str | None = None, status_code: int | None = None):
        super().__init__(message, source_name)
        self.status_code = status_code


class ParseError(SyncError):
    """A raw payload (or one entry in it) could not be decoded."""

    def __init__(self, message: str, source_name: str | None = None, offset: int | None = None):
        super().__init__(message, source_name)
        self.offset = offset


class NormalizationError(SyncError):
    """A raw record cannot be mapped to a PlaceRecord (e.g. missing natural key)."""

    def __init__(self, message: str, source_name: str | None = None, source_id: str | None = None):
        super().__init__(message, source_name)
        self.source_id = source_id


class StorageError(SyncError):
    """A transaction against the local store failed and was rolled back."""


class ConfigurationError(SyncError):
    """Required adapter or engine configuration is missing or invalid."""


class SyncCancelled(SyncError):
    """Raised between stages when a running sync has been asked to stop."""
