"""Fleet sync driver: run the orchestrator over every non-excluded library.

Failures are contained per library; one library's error never stops the
others. Libraries run one at a time by default. Running several at once
is safe (cursor keys and identifier namespaces are disjoint) and is
enabled with ``max_concurrent``.

Graceful shutdown: the first SIGINT/SIGTERM stops new libraries from
starting while the in-flight ones finish apply and commit; a second signal
exits immediately.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import Collection, Iterator, Sequence
from contextlib import contextmanager
from types import FrameType
from typing import Any

from zotsync.models import (
    FleetSyncReport,
    Library,
    LibrarySyncResult,
    SyncOutcome,
)
from zotsync.sync.orchestrator import LibrarySyncOrchestrator

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class FleetSyncDriver:
    """Runs :class:`LibrarySyncOrchestrator` for each library and aggregates results.

    Usage::

        driver = FleetSyncDriver(orchestrator)
        report = await driver.run_all(libraries, excluded_ids={"groups/42"})
    """

    def __init__(
        self,
        orchestrator: LibrarySyncOrchestrator,
        max_concurrent: int = 1,
        dry_run: bool = False,
        force_full: bool = False,
    ) -> None:
        self._orchestrator = orchestrator
        self._semaphore = asyncio.Semaphore(max(1, max_concurrent))
        self._shutdown_event = asyncio.Event()
        self._dry_run = dry_run
        self._force_full = force_full
        self._signal_count = 0

    # ------------------------------------------------------------------
    # Shutdown handling
    # ------------------------------------------------------------------

    def request_shutdown(self) -> None:
        """Stop starting new libraries; in-flight ones run to completion."""
        self._shutdown_event.set()

    @property
    def shutting_down(self) -> bool:
        return self._shutdown_event.is_set()

    def _on_signal(self, signum: int, frame: FrameType | None) -> None:
        self._signal_count += 1
        if self._signal_count > 1:
            logger.warning("Second %s, exiting now", signal.Signals(signum).name)
            raise SystemExit(1)
        logger.warning(
            "%s received, letting running libraries commit (repeat to force exit)",
            signal.Signals(signum).name,
        )
        self.request_shutdown()

    @contextmanager
    def signal_handlers(self) -> Iterator[None]:
        """Route SIGINT/SIGTERM to graceful shutdown for the duration of the block.

        The handlers in place before entry are reinstated on exit. Outside
        the main thread nothing is installed.
        """
        self._signal_count = 0
        previous: dict[signal.Signals, Any] = {}
        try:
            for sig in SHUTDOWN_SIGNALS:
                previous[sig] = signal.signal(sig, self._on_signal)
        except ValueError:
            logger.debug("Not in the main thread; shutdown signals left alone")
        try:
            yield
        finally:
            for sig, handler in previous.items():
                # None: installed outside Python, cannot be reinstated.
                if handler is not None:
                    signal.signal(sig, handler)

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    async def run_all(
        self,
        libraries: Sequence[Library],
        excluded_ids: Collection[str] = (),
    ) -> FleetSyncReport:
        """Sync every library not in *excluded_ids*.

        Excluded libraries never reach the orchestrator, so their cursors
        are untouched; they appear in the report as skipped.
        """
        excluded = set(excluded_ids)
        report = FleetSyncReport()
        tasks: list[asyncio.Task[LibrarySyncResult]] = []
        slots: list[int] = []

        for library in libraries:
            if library.id in excluded:
                logger.info("[%s] Excluded, skipping", library.id)
                report.results.append(
                    self._skipped(library, "excluded by configuration")
                )
                continue
            slots.append(len(report.results))
            report.results.append(self._skipped(library, "not started"))
            tasks.append(asyncio.ensure_future(self._run_one(library)))

        for slot, result in zip(slots, await asyncio.gather(*tasks)):
            report.results[slot] = result

        logger.info("Fleet sync complete: %s", report.summary)
        return report

    async def _run_one(self, library: Library) -> LibrarySyncResult:
        async with self._semaphore:
            if self._shutdown_event.is_set():
                logger.info("[%s] Not started (shutdown requested)", library.id)
                return self._skipped(library, "shutdown")
            try:
                return await self._orchestrator.run(
                    library, dry_run=self._dry_run, force_full=self._force_full
                )
            except Exception as exc:
                logger.exception("[%s] Unexpected sync error", library.id)
                return LibrarySyncResult(
                    library_id=library.id,
                    library_name=library.name,
                    outcome=SyncOutcome.FAILED,
                    error=f"Unexpected error: {exc}",
                )

    @staticmethod
    def _skipped(library: Library, reason: str) -> LibrarySyncResult:
        return LibrarySyncResult(
            library_id=library.id,
            library_name=library.name,
            outcome=SyncOutcome.SKIPPED,
            error=reason,
        )
