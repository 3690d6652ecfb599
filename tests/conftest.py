"""Shared pytest fixtures for zotsync tests.

Provides sample libraries, an item factory, a scripted in-process catalog,
a temporary version store, and an in-memory index. Every test runs with
its own config directory and an empty keyring.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import keyring
import pytest

from zotsync.catalog.client import FetchResult
from zotsync.config import SyncConfig
from zotsync.index.memory import InMemoryIndex
from zotsync.models import Creator, Item, Library
from zotsync.sync.state import VersionStore


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the config dir at a temp path and hide any real API key."""
    config_home = tmp_path / "zotsync-home"
    monkeypatch.setenv("ZOTSYNC_CONFIG_DIR", str(config_home))
    monkeypatch.delenv("ZOTERO_API_KEY", raising=False)
    monkeypatch.setattr(keyring, "get_password", lambda service, name: None)
    return config_home


@pytest.fixture
def personal() -> Library:
    return Library(id="users/0", name="My Library", link_base="zotero://select/library")


@pytest.fixture
def group() -> Library:
    return Library(
        id="groups/42",
        name="Reading Group",
        link_base="zotero://select/groups/42",
    )


@pytest.fixture
def make_item() -> Callable[..., Item]:
    """Factory for catalog items with sensible defaults."""

    def _make(
        key: str,
        title: str = "Untitled",
        *,
        version: int = 1,
        item_type: str = "journalArticle",
        creators: list[Creator] | None = None,
        tags: set[str] | None = None,
        **fields: str,
    ) -> Item:
        return Item(
            key=key,
            version=version,
            fields={"key": key, "itemType": item_type, "title": title, **fields},
            creators=creators or [],
            tags=set(tags or ()),
        )

    return _make


class FakeCatalog:
    """Scripted stand-in for CatalogClient.

    Per library id: the items to return, deleted keys, the version to
    report (``None`` = no version header), and errors to raise.
    """

    def __init__(self, libraries: list[Library] | None = None) -> None:
        self.libraries = libraries or []
        self.items: dict[str, list[Item]] = {}
        self.deleted: dict[str, list[str]] = {}
        self.versions: dict[str, int | None] = {}
        self.item_errors: dict[str, Exception] = {}
        self.deleted_errors: dict[str, Exception] = {}
        self.calls: list[tuple[str, str, int]] = []

    async def fetch_items(self, library: Library, since_version: int) -> FetchResult:
        self.calls.append(("items", library.id, since_version))
        if library.id in self.item_errors:
            raise self.item_errors[library.id]
        version = self.versions.get(library.id)
        return FetchResult(
            items=list(self.items.get(library.id, [])),
            as_of_version=since_version if version is None else version,
            version_reported=version is not None,
        )

    async def fetch_deleted_keys(self, library: Library, since_version: int) -> list[str]:
        self.calls.append(("deleted", library.id, since_version))
        if library.id in self.deleted_errors:
            raise self.deleted_errors[library.id]
        if since_version <= 0:
            return []
        return list(self.deleted.get(library.id, []))

    async def discover_libraries(self) -> list[Library]:
        return list(self.libraries)

    def fetched_libraries(self) -> list[str]:
        return [lib for kind, lib, _ in self.calls if kind == "items"]


@pytest.fixture
def catalog(personal: Library, group: Library) -> FakeCatalog:
    return FakeCatalog([personal, group])


@pytest.fixture
def store(tmp_path: Path) -> VersionStore:
    return VersionStore(tmp_path / "versions")


@pytest.fixture
def memory_index() -> InMemoryIndex:
    return InMemoryIndex()


@pytest.fixture
def sync_config() -> SyncConfig:
    return SyncConfig()
