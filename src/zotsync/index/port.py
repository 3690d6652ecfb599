"""Index Port contract and the stable identifier format.

Identifiers are ``<domain>.<library id>.<item key>``. Item keys never
contain ``.``, so the last dot always separates the key from the library
id, even for library ids such as ``groups/123``.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from zotsync.constants import DOMAIN_TAG
from zotsync.models import IndexEntry


@runtime_checkable
class IndexPort(Protocol):
    """Write-only interface to a search index. The engine never reads back."""

    async def upsert(self, entries: Sequence[IndexEntry]) -> None: ...

    async def delete_by_identifiers(self, identifiers: Sequence[str]) -> None: ...

    async def delete_all_by_domain(self, domain_tag: str) -> None: ...


def format_identifier(library_id: str, item_key: str, domain_tag: str = DOMAIN_TAG) -> str:
    """Build the index identifier for an item.

    Raises:
        ValueError: If *item_key* is empty or contains ``.``.
    """
    if not item_key or "." in item_key:
        raise ValueError(f"Invalid item key for identifier: {item_key!r}")
    return f"{domain_tag}.{library_id}.{item_key}"


def parse_identifier(identifier: str, domain_tag: str = DOMAIN_TAG) -> tuple[str, str]:
    """Split an identifier back into ``(library_id, item_key)``.

    Raises:
        ValueError: If the identifier is not in this domain or is malformed.
    """
    prefix = f"{domain_tag}."
    if not identifier.startswith(prefix):
        raise ValueError(f"Identifier not in domain {domain_tag!r}: {identifier!r}")
    library_id, sep, item_key = identifier[len(prefix):].rpartition(".")
    if not sep or not library_id or not item_key:
        raise ValueError(f"Malformed identifier: {identifier!r}")
    return library_id, item_key


def item_url(library_id: str, item_key: str, open_item: bool = False) -> str:
    """Deep link for a clicked index entry.

    ``open_item`` opens the item's attachment instead of selecting it.
    """
    action = "open-pdf" if open_item else "select"
    if library_id.startswith("groups/"):
        group_id = library_id.removeprefix("groups/")
        return f"zotero://{action}/groups/{group_id}/items/{item_key}"
    return f"zotero://{action}/library/items/{item_key}"
