"""In-memory Index Port, used for dry runs and tests."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from zotsync.models import IndexEntry

logger = logging.getLogger(__name__)


class InMemoryIndex:
    """Dict-backed index keyed by identifier.

    ``operations`` records every call in order so callers can assert on
    upsert/delete sequencing.
    """

    def __init__(self) -> None:
        self.entries: dict[str, IndexEntry] = {}
        self.operations: list[tuple[str, tuple[str, ...]]] = []

    async def upsert(self, entries: Sequence[IndexEntry]) -> None:
        for entry in entries:
            self.entries[entry.identifier] = entry
        self.operations.append(("upsert", tuple(e.identifier for e in entries)))

    async def delete_by_identifiers(self, identifiers: Sequence[str]) -> None:
        for identifier in identifiers:
            self.entries.pop(identifier, None)
        self.operations.append(("delete", tuple(identifiers)))

    async def delete_all_by_domain(self, domain_tag: str) -> None:
        prefix = f"{domain_tag}."
        doomed = [i for i in self.entries if i.startswith(prefix)]
        for identifier in doomed:
            del self.entries[identifier]
        self.operations.append(("delete_domain", (domain_tag,)))
        logger.debug("Removed %d entries in domain %s", len(doomed), domain_tag)
