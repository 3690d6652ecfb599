"""Pydantic v2 models for Zotero API response bodies.

Separate from zotsync.models (dataclasses): these describe the wire shape
and are converted into domain objects by :func:`to_item`.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from zotsync.models import Creator, Item

logger = logging.getLogger(__name__)

# Non-scalar data keys that are decoded separately or ignored.
_STRUCTURED_KEYS = frozenset({"creators", "tags", "collections", "relations"})


class CreatorPayload(BaseModel):
    """One entry of ``data.creators``."""

    model_config = ConfigDict(extra="ignore")

    firstName: str | None = None
    lastName: str | None = None
    name: str | None = None
    creatorType: str | None = None


class TagPayload(BaseModel):
    """One entry of ``data.tags``."""

    model_config = ConfigDict(extra="ignore")

    tag: str


class ItemPayload(BaseModel):
    """A top-level entry of ``GET /{library}/items``."""

    model_config = ConfigDict(extra="ignore")

    key: str
    version: int
    data: dict[str, Any] = Field(default_factory=dict)


class GroupData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str


class GroupPayload(BaseModel):
    """A top-level entry of ``GET /users/{id}/groups``."""

    model_config = ConfigDict(extra="ignore")

    id: int
    data: GroupData


class DeletedPayload(BaseModel):
    """Body of ``GET /{library}/deleted``."""

    model_config = ConfigDict(extra="ignore")

    items: list[str] = Field(default_factory=list)


ITEM_PAGE = TypeAdapter(list[ItemPayload])
GROUP_LIST = TypeAdapter(list[GroupPayload])

_CREATOR_LIST = TypeAdapter(list[CreatorPayload])
_TAG_LIST = TypeAdapter(list[TagPayload])


def scalar_fields(data: dict[str, Any]) -> dict[str, str]:
    """Flatten scalar item data into strings.

    Booleans become ``"true"``/``"false"``; numbers use ``str()``; lists,
    objects and nulls are skipped.
    """
    result: dict[str, str] = {}
    for name, value in data.items():
        if name in _STRUCTURED_KEYS:
            continue
        if isinstance(value, bool):
            result[name] = "true" if value else "false"
        elif isinstance(value, (str, int, float)):
            result[name] = str(value)
    return result


def _decode_creators(raw: Any, key: str) -> list[Creator]:
    try:
        payloads = _CREATOR_LIST.validate_python(raw or [])
    except ValidationError:
        logger.debug("Ignoring malformed creators on item %s", key)
        return []
    return [
        Creator(
            first_name=p.firstName,
            last_name=p.lastName,
            name=p.name,
            creator_type=p.creatorType,
        )
        for p in payloads
    ]


def _decode_tags(raw: Any, key: str) -> set[str]:
    try:
        payloads = _TAG_LIST.validate_python(raw or [])
    except ValidationError:
        logger.debug("Ignoring malformed tags on item %s", key)
        return set()
    return {p.tag for p in payloads if p.tag}


def to_item(payload: ItemPayload) -> Item:
    """Convert a wire item into a domain :class:`Item`."""
    data = payload.data
    fields = scalar_fields(data)
    # data.key mirrors the top-level key; keep the top-level one authoritative
    fields["key"] = payload.key
    return Item(
        key=payload.key,
        version=payload.version,
        fields=fields,
        creators=_decode_creators(data.get("creators"), payload.key),
        tags=_decode_tags(data.get("tags"), payload.key),
    )
