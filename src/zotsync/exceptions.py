"""Exception taxonomy for the sync engine.

Every error is contained at the per-library boundary by the orchestrator;
none of these abort a fleet pass.
"""

from __future__ import annotations


class ZotsyncError(Exception):
    """Base class for all zotsync errors."""


class CatalogError(ZotsyncError):
    """The catalog could not deliver a complete, decodable response."""


class NetworkError(CatalogError):
    """Timeout, connection failure, or non-success HTTP status.

    Retried on the next cycle from the same cursor, never within a cycle.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class DecodeError(CatalogError):
    """Malformed response body. Handled exactly like NetworkError."""


class IndexWriteError(ZotsyncError):
    """The search index rejected an upsert or delete."""


class StorageError(ZotsyncError):
    """Cursor persistence failed."""


class IndexQueryError(ZotsyncError):
    """The search index could not evaluate a query."""
