"""Data models and enums for the zotsync engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum


@dataclass(frozen=True, slots=True)
class Library:
    """An independently versioned partition of the catalog.

    Re-derived from catalog metadata at the start of every run and never
    persisted.
    """

    id: str  # "users/0" or "groups/<n>"
    name: str
    link_base: str  # "zotero://select/library" or "zotero://select/groups/<n>"


@dataclass(frozen=True, slots=True)
class Creator:
    """A single creator entry on an item."""

    first_name: str | None = None
    last_name: str | None = None
    name: str | None = None  # single-field name (institutions, mononyms)
    creator_type: str | None = None

    @property
    def display_name(self) -> str:
        if self.name:
            return self.name
        return " ".join(p for p in (self.first_name, self.last_name) if p)

    @property
    def is_author(self) -> bool:
        return self.creator_type in (None, "author")

    @property
    def is_editor(self) -> bool:
        return self.creator_type == "editor"


@dataclass(slots=True)
class Item:
    """A catalog item with an open field schema.

    ``fields`` holds every scalar attribute of the item keyed by its catalog
    name. Only creators and tags get typed structures because the renderer
    aggregates them.
    """

    key: str
    version: int
    fields: dict[str, str] = field(default_factory=dict)
    creators: list[Creator] = field(default_factory=list)
    tags: set[str] = field(default_factory=set)

    @property
    def item_type(self) -> str:
        return self.fields.get("itemType", "")

    @property
    def title(self) -> str | None:
        return self.fields.get("title")

    @property
    def date(self) -> str | None:
        return self.fields.get("date")

    @property
    def publication_title(self) -> str | None:
        return self.fields.get("publicationTitle")


@dataclass(frozen=True, slots=True)
class IndexEntry:
    """Write-only projection of an item sent to the Index Port."""

    identifier: str
    title: str
    description: str
    keywords: frozenset[str] = frozenset()
    created_at: date | None = None
    link: str = ""


class SyncOutcome(str, Enum):
    """Per-library result of one sync cycle."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class LibrarySyncResult:
    """Outcome of running the orchestrator for one library."""

    library_id: str
    library_name: str
    outcome: SyncOutcome
    previous_version: int = 0
    new_version: int = 0
    upserted: int = 0
    deleted: int = 0
    incremental: bool = False
    final_state: str = "idle"
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.outcome == SyncOutcome.SUCCEEDED


@dataclass
class FleetSyncReport:
    """Aggregated outcomes for one pass over all libraries."""

    results: list[LibrarySyncResult] = field(default_factory=list)

    @property
    def failed(self) -> list[LibrarySyncResult]:
        return [r for r in self.results if r.outcome == SyncOutcome.FAILED]

    @property
    def skipped(self) -> list[LibrarySyncResult]:
        return [r for r in self.results if r.outcome == SyncOutcome.SKIPPED]

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def summary(self) -> str:
        synced = sum(1 for r in self.results if r.succeeded)
        return (
            f"synced={synced}, failed={len(self.failed)}, "
            f"skipped={len(self.skipped)}, "
            f"upserted={sum(r.upserted for r in self.results)}, "
            f"deleted={sum(r.deleted for r in self.results)}"
        )
