"""Zotero HTTP API client for paginated, version-aware reads.

Every failure surfaces as :class:`NetworkError` or :class:`DecodeError`
and nothing partial is returned. The orchestrator turns either one into
"no progress" for the library, leaving its cursor untouched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx
from pydantic import ValidationError

from zotsync.catalog.schemas import (
    GROUP_LIST,
    ITEM_PAGE,
    DeletedPayload,
    to_item,
)
from zotsync.constants import (
    API_VERSION,
    EXCLUDED_ITEM_TYPES,
    PAGE_SIZE,
    PERSONAL_LIBRARY_ID,
    PERSONAL_LIBRARY_NAME,
    VERSION_HEADER,
)
from zotsync.exceptions import DecodeError, NetworkError
from zotsync.models import Item, Library

logger = logging.getLogger(__name__)

_ITEM_TYPE_FILTER = " || ".join(f"-{t}" for t in sorted(EXCLUDED_ITEM_TYPES))


@dataclass
class FetchResult:
    """Items changed since a version, plus the version they are current as of."""

    items: list[Item] = field(default_factory=list)
    as_of_version: int = 0
    version_reported: bool = True


@dataclass(frozen=True)
class GroupInfo:
    id: int
    name: str


def personal_library(library_id: str = PERSONAL_LIBRARY_ID) -> Library:
    return Library(
        id=library_id,
        name=PERSONAL_LIBRARY_NAME,
        link_base="zotero://select/library",
    )


def group_library(group: GroupInfo) -> Library:
    return Library(
        id=f"groups/{group.id}",
        name=group.name,
        link_base=f"zotero://select/groups/{group.id}",
    )


class CatalogClient:
    """Async wrapper around the Zotero items/deleted/groups endpoints.

    Usage::

        async with CatalogClient("http://localhost:23119/api") as client:
            libraries = await client.discover_libraries()
            result = await client.fetch_items(libraries[0], since_version=0)
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str | None = None,
        timeout: float = 15.0,
        personal_library_id: str = PERSONAL_LIBRARY_ID,
        page_size: int = PAGE_SIZE,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Zotero-API-Version": API_VERSION}
        if api_key:
            headers["Zotero-API-Key"] = api_key
        self._http = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )
        self.personal_library_id = personal_library_id
        self.page_size = page_size

    async def close(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> CatalogClient:
        return self

    async def __aexit__(
        self,
        exc_type: type | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Transport helpers
    # ------------------------------------------------------------------

    async def _get(self, path: str, params: dict[str, Any]) -> httpx.Response:
        try:
            response = await self._http.get(path, params=params)
        except httpx.TimeoutException as e:
            raise NetworkError(f"Timed out requesting {path}") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"Request to {path} failed: {e}") from e

        if not response.is_success:
            raise NetworkError(
                f"HTTP {response.status_code} for {path}",
                status_code=response.status_code,
            )
        return response

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise DecodeError(f"Malformed JSON from {response.url}: {e}") from e

    @staticmethod
    def _reported_version(response: httpx.Response) -> int | None:
        raw = response.headers.get(VERSION_HEADER)
        if raw is None:
            return None
        try:
            return int(raw.strip())
        except ValueError:
            logger.warning("Ignoring non-integer %s header: %r", VERSION_HEADER, raw)
            return None

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    async def fetch_items(self, library: Library, since_version: int) -> FetchResult:
        """Fetch every item changed since *since_version* (all items when 0).

        Pages are requested in order until an empty or short page. The
        returned ``as_of_version`` is the highest version the catalog
        reported, or *since_version* when it reported none.
        """
        items: list[Item] = []
        reported: list[int] = []
        start = 0

        while True:
            params: dict[str, Any] = {
                "format": "json",
                "start": start,
                "limit": self.page_size,
                "itemType": _ITEM_TYPE_FILTER,
            }
            if since_version > 0:
                params["since"] = since_version

            response = await self._get(f"/{library.id}/items", params)
            version = self._reported_version(response)
            if version is not None:
                reported.append(version)

            try:
                page = ITEM_PAGE.validate_python(self._json(response))
            except ValidationError as e:
                raise DecodeError(
                    f"Unexpected item page shape for {library.id} at start={start}: {e}"
                ) from e

            if not page:
                break
            for payload in page:
                item = to_item(payload)
                if item.item_type in EXCLUDED_ITEM_TYPES:
                    continue
                items.append(item)
            if len(page) < self.page_size:
                break
            start += self.page_size

        as_of = max(reported) if reported else since_version
        logger.debug(
            "Fetched %d item(s) for %s since v%d (as of v%d)",
            len(items), library.id, since_version, as_of,
        )
        return FetchResult(
            items=items, as_of_version=as_of, version_reported=bool(reported)
        )

    async def fetch_deleted_keys(self, library: Library, since_version: int) -> list[str]:
        """Keys of items deleted since *since_version*.

        Skipped entirely for a full sync (``since_version == 0``).
        """
        if since_version <= 0:
            return []

        response = await self._get(
            f"/{library.id}/deleted",
            {"format": "json", "since": since_version},
        )
        try:
            payload = DeletedPayload.model_validate(self._json(response))
        except ValidationError as e:
            raise DecodeError(f"Unexpected deleted payload for {library.id}: {e}") from e
        return payload.items

    # ------------------------------------------------------------------
    # Libraries
    # ------------------------------------------------------------------

    async def fetch_groups(self) -> list[GroupInfo]:
        response = await self._get(
            f"/{self.personal_library_id}/groups", {"format": "json"}
        )
        try:
            groups = GROUP_LIST.validate_python(self._json(response))
        except ValidationError as e:
            raise DecodeError(f"Unexpected groups payload: {e}") from e
        return [GroupInfo(id=g.id, name=g.data.name) for g in groups]

    async def discover_libraries(self) -> list[Library]:
        """Personal library first, then one library per group.

        A failed group listing is logged and yields only the personal
        library, so the personal library still syncs.
        """
        libraries = [personal_library(self.personal_library_id)]
        try:
            groups = await self.fetch_groups()
        except (NetworkError, DecodeError) as e:
            logger.error("Could not list groups, syncing personal library only: %s", e)
            return libraries
        libraries.extend(group_library(g) for g in groups)
        return libraries
