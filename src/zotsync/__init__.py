"""Incremental sync of Zotero libraries into a local search index."""

__version__ = "0.1.0"

from zotsync.models import (
    Creator,
    FleetSyncReport,
    IndexEntry,
    Item,
    Library,
    LibrarySyncResult,
    SyncOutcome,
)

__all__ = [
    "Creator",
    "FleetSyncReport",
    "IndexEntry",
    "Item",
    "Library",
    "LibrarySyncResult",
    "SyncOutcome",
    "__version__",
]
