"""Build index entries from catalog items."""

from __future__ import annotations

from datetime import date, datetime

from zotsync.index.port import format_identifier
from zotsync.models import IndexEntry, Item, Library
from zotsync.template import render

# Longest format first; each is matched against a prefix of the same length.
_DATE_FORMATS = (("%Y-%m-%d", 10), ("%Y-%m", 7), ("%Y", 4))


def parse_date(value: str | None) -> date | None:
    """Parse the leading ``YYYY-MM-DD``, ``YYYY-MM`` or ``YYYY`` of a date string."""
    if not value:
        return None
    for fmt, width in _DATE_FORMATS:
        try:
            return datetime.strptime(value[:width], fmt).date()
        except ValueError:
            continue
    return None


def build_keywords(item: Item, library: Library) -> frozenset[str]:
    keywords = {library.name}
    keywords.update(c.display_name for c in item.creators)
    keywords.update(item.tags)
    keywords.add(item.publication_title or "")
    keywords.add(item.item_type)
    keywords.discard("")
    return frozenset(keywords)


def build_entry(
    item: Item,
    library: Library,
    title_template: str,
    description_template: str,
) -> IndexEntry:
    """Project *item* into an :class:`IndexEntry` under *library*'s namespace."""
    return IndexEntry(
        identifier=format_identifier(library.id, item.key),
        title=render(title_template, item, library),
        description=render(description_template, item, library),
        keywords=build_keywords(item, library),
        created_at=parse_date(item.date),
        link=f"{library.link_base}/items/{item.key}",
    )
