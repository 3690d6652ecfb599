"""End-to-end tests for SyncService over a stubbed Zotero HTTP API."""

from __future__ import annotations

import signal
from pathlib import Path

import httpx
import keyring
import pytest
from keyring.errors import NoKeyringError

from zotsync.config import SyncConfig, load_config
from zotsync.index.memory import InMemoryIndex
from zotsync.models import SyncOutcome
from zotsync.services import SyncService
from zotsync.sync.state import VersionStore


def _item(key: str, title: str) -> dict:
    return {"key": key, "version": 1, "data": {"key": key, "itemType": "book", "title": title}}


class ZoteroStub:
    """Minimal Zotero API: groups, items and deleted endpoints per library."""

    def __init__(self) -> None:
        self.groups = [{"id": 42, "data": {"name": "Reading Group"}}]
        self.items = {
            "users/0": [_item("AAAA1111", "Atlas Shrugged")],
            "groups/42": [_item("BBBB2222", "The Romantic Manifesto")],
        }
        self.deleted: dict[str, list[str]] = {}
        self.versions = {"users/0": 10, "groups/42": 20}
        self.fail_groups = False
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix("/api/")
        if path == "users/0/groups":
            if self.fail_groups:
                return httpx.Response(500)
            return httpx.Response(200, json=self.groups)

        library, _, endpoint = path.rpartition("/")
        headers = {"Last-Modified-Version": str(self.versions[library])}
        if endpoint == "items":
            return httpx.Response(200, json=self.items[library], headers=headers)
        if endpoint == "deleted":
            return httpx.Response(
                200, json={"items": self.deleted.get(library, [])}, headers=headers
            )
        return httpx.Response(404)

    def item_requests(self, library: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == f"/api/{library}/items"]


@pytest.fixture
def stub() -> ZoteroStub:
    return ZoteroStub()


@pytest.fixture
def service_parts(tmp_path: Path, stub: ZoteroStub):
    index = InMemoryIndex()
    store = VersionStore(tmp_path / "versions")

    def _service(**config_overrides) -> SyncService:
        config = SyncConfig(api_endpoint_base="http://zotero.test/api", **config_overrides)
        return SyncService(
            config,
            store=store,
            index=index,
            api_key="",
            transport=httpx.MockTransport(stub),
        )

    return _service, index, store


class TestRunSync:
    async def test_first_run_indexes_every_library(self, service_parts):
        make_service, index, store = service_parts

        report = await make_service().run_sync()

        assert report.ok
        assert [r.library_id for r in report.results] == ["users/0", "groups/42"]
        assert set(index.entries) == {
            "org.zotsync.item.users/0.AAAA1111",
            "org.zotsync.item.groups/42.BBBB2222",
        }
        assert store.all_versions() == {"users_0": 10, "groups_42": 20}

    async def test_second_run_is_incremental(self, service_parts, stub):
        make_service, index, store = service_parts
        service = make_service()
        await service.run_sync()

        stub.items["users/0"] = [_item("CCCC3333", "Anthem")]
        stub.deleted["users/0"] = ["AAAA1111"]
        stub.versions["users/0"] = 11
        report = await service.run_sync()

        assert report.ok
        assert stub.item_requests("users/0")[-1].url.params["since"] == "10"
        assert "org.zotsync.item.users/0.AAAA1111" not in index.entries
        assert "org.zotsync.item.users/0.CCCC3333" in index.entries
        assert store.load("users_0") == 11

    async def test_force_full_ignores_stored_versions(self, service_parts, stub):
        make_service, _, store = service_parts
        service = make_service()
        await service.run_sync()

        await service.run_sync(force_full=True)

        assert "since" not in stub.item_requests("users/0")[-1].url.params
        assert store.all_versions() == {"users_0": 10, "groups_42": 20}

    async def test_force_full_keeps_excluded_library_cursor(self, service_parts, stub):
        make_service, _, store = service_parts
        store.save("groups_42", 99)

        report = await make_service(excluded_libraries=["groups/42"]).run_sync(
            force_full=True
        )

        assert report.ok
        assert stub.item_requests("groups/42") == []
        assert store.load("groups_42") == 99
        assert store.load("users_0") == 10

    async def test_failed_force_full_keeps_stored_cursor(self, service_parts, stub):
        make_service, _, store = service_parts
        store.save("users_0", 7)
        stub.items["users/0"] = {"not": "a page"}

        report = await make_service().run_sync(force_full=True)

        assert report.results[0].outcome == SyncOutcome.FAILED
        assert store.load("users_0") == 7

    async def test_runs_without_a_keyring_backend(self, tmp_path, stub, monkeypatch):
        def no_backend(service, name):
            raise NoKeyringError("No recommended backend was available.")

        monkeypatch.setattr(keyring, "get_password", no_backend)
        service = SyncService(
            SyncConfig(api_endpoint_base="http://zotero.test/api"),
            store=VersionStore(tmp_path / "versions"),
            index=InMemoryIndex(),
            transport=httpx.MockTransport(stub),
        )

        report = await service.run_sync()

        assert report.ok
        assert "Zotero-API-Key" not in stub.requests[0].headers
        assert [lib.id for lib, _ in await service.list_libraries()] == [
            "users/0",
            "groups/42",
        ]

    async def test_signal_handlers_are_restored_after_run(self, service_parts):
        make_service, _, _ = service_parts
        before = signal.getsignal(signal.SIGINT)

        await make_service().run_sync(handle_signals=True)

        assert signal.getsignal(signal.SIGINT) == before

    async def test_excluded_library_is_not_requested(self, service_parts, stub):
        make_service, index, store = service_parts

        report = await make_service(excluded_libraries=["groups/42"]).run_sync()

        assert stub.item_requests("groups/42") == []
        assert report.results[1].outcome == SyncOutcome.SKIPPED
        assert list(index.entries) == ["org.zotsync.item.users/0.AAAA1111"]
        assert "groups_42" not in store.all_versions()

    async def test_group_listing_failure_still_syncs_personal(self, service_parts, stub):
        make_service, index, _ = service_parts
        stub.fail_groups = True

        report = await make_service().run_sync()

        assert [r.library_id for r in report.results] == ["users/0"]
        assert list(index.entries) == ["org.zotsync.item.users/0.AAAA1111"]

    async def test_dry_run_leaves_index_and_versions(self, service_parts):
        make_service, index, store = service_parts

        report = await make_service().run_sync(dry_run=True)

        assert report.ok
        assert sum(r.upserted for r in report.results) == 2
        assert index.entries == {}
        assert store.all_versions() == {}


class TestMaintenance:
    async def test_clear_index_and_cursors(self, service_parts):
        make_service, index, store = service_parts
        service = make_service()
        await service.run_sync()

        removed = await service.clear_index_and_cursors()

        assert removed == 2
        assert index.entries == {}
        assert store.all_versions() == {}

    async def test_reset_restores_defaults(self, service_parts, tmp_path):
        make_service, index, _ = service_parts
        config_path = tmp_path / "config.json"
        service = make_service(open_on_click=True)
        await service.run_sync()

        await service.reset(config_path)

        assert service.config == SyncConfig()
        assert load_config(config_path) == SyncConfig()
        assert index.entries == {}

    async def test_list_libraries_marks_excluded(self, service_parts):
        make_service, _, _ = service_parts

        found = await make_service(excluded_libraries=["groups/42"]).list_libraries()

        assert [(lib.id, excluded) for lib, excluded in found] == [
            ("users/0", False),
            ("groups/42", True),
        ]
