"""Services facade for zotsync.

Public API boundary for the CLI and other hosts.
"""

from zotsync.services.sync import SyncService

__all__ = ["SyncService"]
