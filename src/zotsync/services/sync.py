"""Sync service facade: the host-facing entry points of the engine.

Wires configuration, catalog client, index backend and version store
together for one run. Configuration is passed in once per run; nothing is
kept between runs.
"""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack
from pathlib import Path

import httpx

from zotsync.catalog.client import CatalogClient
from zotsync.config import SyncConfig, config_dir, get_api_key, reset_config
from zotsync.constants import DOMAIN_TAG
from zotsync.index.memory import InMemoryIndex
from zotsync.index.port import IndexPort
from zotsync.index.sqlite import SQLiteIndex
from zotsync.models import FleetSyncReport, Library
from zotsync.sync.fleet import FleetSyncDriver
from zotsync.sync.orchestrator import LibrarySyncOrchestrator
from zotsync.sync.state import VersionStore

logger = logging.getLogger(__name__)


class SyncService:
    """Entry points for running and resetting the sync.

    Usage::

        svc = SyncService(load_config())
        report = await svc.run_sync(force_full=False)
        await svc.clear_index_and_cursors()

    Args:
        config: Settings for this run.
        store: Cursor store; defaults to ``<config_dir>/versions``.
        index: Index backend; defaults to the SQLite index at
            ``config.resolved_index_path``, opened per call.
        api_key: Zotero web API key; defaults to the keyring lookup.
        transport: Optional httpx transport (tests).
    """

    def __init__(
        self,
        config: SyncConfig,
        *,
        store: VersionStore | None = None,
        index: IndexPort | None = None,
        api_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self.store = store or VersionStore(config_dir() / "versions")
        self._index = index
        self._api_key = api_key
        self._transport = transport

    def _client(self) -> CatalogClient:
        api_key = self._api_key if self._api_key is not None else get_api_key()
        return CatalogClient(
            self.config.api_endpoint_base,
            api_key=api_key,
            timeout=self.config.request_timeout,
            personal_library_id=self.config.personal_library_id,
            transport=self._transport,
        )

    async def _open_index(self, stack: AsyncExitStack) -> IndexPort:
        if self._index is not None:
            return self._index
        return await stack.enter_async_context(
            SQLiteIndex(self.config.resolved_index_path)
        )

    async def list_libraries(self) -> list[tuple[Library, bool]]:
        """Discovered libraries paired with whether they are excluded."""
        excluded = set(self.config.excluded_libraries)
        async with self._client() as client:
            libraries = await client.discover_libraries()
        return [(lib, lib.id in excluded) for lib in libraries]

    async def run_sync(
        self,
        force_full: bool = False,
        dry_run: bool = False,
        handle_signals: bool = False,
    ) -> FleetSyncReport:
        """Sync every non-excluded library.

        Args:
            force_full: Fetch every synced library from version 0, ignoring its
                stored cursor. Excluded libraries keep their cursors.
            dry_run: Fetch and render only; index and cursors are untouched.
            handle_signals: Route SIGINT/SIGTERM to graceful shutdown while
                the run lasts; the previous handlers are restored afterwards.
        """
        if force_full:
            logger.info("Forced full resync: stored cursors ignored for this run")

        async with AsyncExitStack() as stack:
            client = await stack.enter_async_context(self._client())
            index = InMemoryIndex() if dry_run else await self._open_index(stack)
            orchestrator = LibrarySyncOrchestrator(client, index, self.store, self.config)
            driver = FleetSyncDriver(
                orchestrator,
                max_concurrent=self.config.max_concurrent_libraries,
                dry_run=dry_run,
                force_full=force_full,
            )
            if handle_signals:
                stack.enter_context(driver.signal_handlers())

            libraries = await client.discover_libraries()
            return await driver.run_all(libraries, self.config.excluded_libraries)

    async def clear_index_and_cursors(self) -> int:
        """Wipe every index entry in the zotsync domain and all cursors.

        Cursors are cleared before the index domain.

        Returns:
            Number of cursors removed.
        """
        removed = self.store.clear_all()
        async with AsyncExitStack() as stack:
            index = await self._open_index(stack)
            await index.delete_all_by_domain(DOMAIN_TAG)
        return removed

    async def reset(self, config_path: Path | None = None) -> int:
        """Restore default configuration, then clear index and cursors."""
        self.config = reset_config(config_path)
        return await self.clear_index_and_cursors()

    def cursor_status(self) -> dict[str, int]:
        return self.store.all_versions()
