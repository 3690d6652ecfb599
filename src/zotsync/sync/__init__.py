"""Incremental sync engine: cursors, per-library orchestration, fleet driver."""

from zotsync.sync.fleet import FleetSyncDriver
from zotsync.sync.fsm import LibrarySyncSM
from zotsync.sync.orchestrator import LibrarySyncOrchestrator
from zotsync.sync.state import VersionStore, library_key

__all__ = [
    "FleetSyncDriver",
    "LibrarySyncOrchestrator",
    "LibrarySyncSM",
    "VersionStore",
    "library_key",
]
