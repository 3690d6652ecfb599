"""Per-library sync orchestrator: read cursor, fetch delta, apply, commit.

The stored cursor is advanced only after the index writes for that delta
have returned. A crash between apply and commit re-applies the same delta
on the next cycle.

Within a cycle:
1. Load the cursor (0 = full sync)
2. Fetch changed items, then deleted keys (skipped when cursor is 0)
3. Upsert rendered entries, then delete removed keys
4. Persist ``max(cursor, reported version)``
"""

from __future__ import annotations

import logging

from zotsync.catalog.client import CatalogClient
from zotsync.config import SyncConfig
from zotsync.constants import VERSION_HEADER
from zotsync.exceptions import CatalogError, IndexWriteError, StorageError
from zotsync.index.builder import build_entry
from zotsync.index.port import IndexPort, format_identifier
from zotsync.logging_setup import LibraryLogAdapter
from zotsync.models import Library, LibrarySyncResult, SyncOutcome
from zotsync.sync.fsm import LibrarySyncSM
from zotsync.sync.state import VersionStore, library_key

logger = logging.getLogger(__name__)


class LibrarySyncOrchestrator:
    """Drives one library's sync cycle through :class:`LibrarySyncSM`.

    Errors are contained here: every call to :meth:`run` returns a
    :class:`LibrarySyncResult`, with ``outcome=FAILED`` and the cursor left
    untouched when any step fails.

    Usage::

        orchestrator = LibrarySyncOrchestrator(client, index, store, config)
        result = await orchestrator.run(library)
    """

    def __init__(
        self,
        client: CatalogClient,
        index: IndexPort,
        store: VersionStore,
        config: SyncConfig,
    ) -> None:
        self.client = client
        self.index = index
        self.store = store
        self.config = config

    async def run(
        self,
        library: Library,
        dry_run: bool = False,
        force_full: bool = False,
    ) -> LibrarySyncResult:
        """Run one full cycle for *library*.

        Args:
            library: The library to sync.
            dry_run: Fetch and render only; leave index and cursor untouched.
            force_full: Fetch from version 0 regardless of the stored cursor.
                The stored cursor is only replaced on commit.
        """
        log = LibraryLogAdapter(logger, {"library": library.id})
        sm = LibrarySyncSM()
        key = library_key(library.id)
        result = LibrarySyncResult(
            library_id=library.id,
            library_name=library.name,
            outcome=SyncOutcome.FAILED,
        )

        # Reading cursor
        sm.read_cursor()
        stored = self.store.load(key)
        since = 0 if force_full else stored
        result.previous_version = stored
        result.new_version = stored
        result.incremental = since > 0
        log.info(
            "%s", f"Incremental sync since v{since}" if since else "Full sync"
        )

        # Fetching
        sm.fetch()
        try:
            fetched = await self.client.fetch_items(library, since)
            deleted_keys = await self.client.fetch_deleted_keys(library, since)
        except CatalogError as e:
            sm.fail()
            return self._failed(result, sm, log, f"Fetch failed: {e}")

        as_of = fetched.as_of_version
        if as_of < since:
            log.warning(
                "Catalog reported v%d, older than stored v%d; keeping v%d",
                as_of, since, since,
            )
        elif not fetched.version_reported:
            log.warning(
                "Catalog sent no %s header; cursor cannot advance past v%d",
                VERSION_HEADER, since,
            )
        new_version = max(since, as_of)

        try:
            entries = [
                build_entry(
                    item,
                    library,
                    self.config.title_template,
                    self.config.description_template,
                )
                for item in fetched.items
            ]
            removed_ids = [format_identifier(library.id, k) for k in deleted_keys]
        except ValueError as e:
            sm.fail()
            return self._failed(result, sm, log, f"Invalid item key: {e}")

        result.upserted = len(entries)
        result.deleted = len(removed_ids)

        if dry_run:
            result.new_version = new_version
            result.outcome = SyncOutcome.SUCCEEDED
            result.final_state = sm.current_state.id
            log.info(
                "Dry run: %d to upsert, %d to delete, cursor v%d -> v%d",
                len(entries), len(removed_ids), since, new_version,
            )
            return result

        if not entries and not removed_ids:
            sm.found_nothing()
            log.info("Nothing changed")
        else:
            sm.found_changes()
            try:
                # Upserts strictly before deletes: a key in both sets ends deleted.
                if entries:
                    log.info("Indexing %d new/updated item(s)", len(entries))
                    await self.index.upsert(entries)
                if removed_ids:
                    log.info("Removing %d deleted item(s)", len(removed_ids))
                    await self.index.delete_by_identifiers(removed_ids)
            except IndexWriteError as e:
                sm.fail()
                return self._failed(result, sm, log, f"Index write failed: {e}")

        sm.commit()
        try:
            self.store.save(key, new_version)
        except StorageError as e:
            sm.fail()
            return self._failed(result, sm, log, f"Cursor commit failed: {e}")

        sm.finish()
        result.new_version = new_version
        result.outcome = SyncOutcome.SUCCEEDED
        result.final_state = sm.current_state.id
        log.info("Done. Library version: v%d", new_version)
        return result

    @staticmethod
    def _failed(
        result: LibrarySyncResult,
        sm: LibrarySyncSM,
        log: LibraryLogAdapter,
        message: str,
    ) -> LibrarySyncResult:
        result.outcome = SyncOutcome.FAILED
        result.error = message
        result.upserted = 0
        result.deleted = 0
        result.new_version = result.previous_version
        result.final_state = sm.current_state.id
        log.error("%s (cursor stays at v%d)", message, result.previous_version)
        return result
