"""Display-text templates for index entries.

Templates use ``{{ name }}`` tokens. A fixed set of computed names is
resolved first; any other name is looked up in the item's fields, so new
catalog fields (``DOI``, ``journalAbbreviation``, ...) work without code
changes.

Computed names:
  - ``authors``, ``editors``, ``creators``: aggregated creator lists
  - ``firstCreator``: the first two creators, regardless of role
  - ``authorsCount``, ``editorsCount``, ``creatorsCount``
  - ``year``: first four characters of the ``date`` field
  - ``library``: display name of the item's library

Segments joined by `` · `` that render empty are dropped, so optional
fields never leave dangling separators.
"""

from __future__ import annotations

import re
from collections.abc import Sequence

from zotsync.models import Creator, Item, Library

TOKEN_RE = re.compile(r"\{\{\s*(\w+)\s*\}\}")
SEPARATOR = " · "


def format_creator_list(creators: Sequence[Creator]) -> str:
    """Aggregate creators into ``"A"``, ``"A, B"``, or ``"A et al."``."""
    names = [c.display_name for c in creators]
    names = [n for n in names if n]
    if not names:
        return ""
    if len(names) <= 2:
        return ", ".join(names)
    return f"{names[0]} et al."


def computed_variables(item: Item, library: Library) -> dict[str, str]:
    """Values for the computed template names of *item*."""
    authors = [c for c in item.creators if c.is_author]
    editors = [c for c in item.creators if c.is_editor]
    date = item.date or ""
    return {
        "authors": format_creator_list(authors),
        "editors": format_creator_list(editors),
        "creators": format_creator_list(item.creators),
        "firstCreator": format_creator_list(item.creators[:2]),
        "authorsCount": str(len(authors)),
        "editorsCount": str(len(editors)),
        "creatorsCount": str(len(item.creators)),
        "year": date[:4],
        "library": library.name,
    }


def prune_separators(text: str) -> str:
    segments = [s for s in text.split(SEPARATOR) if s.strip()]
    return SEPARATOR.join(segments).strip()


def render(template: str, item: Item, library: Library) -> str:
    """Render *template* for *item*. Pure; unknown tokens become ``""``."""
    computed = computed_variables(item, library)

    def _resolve(match: re.Match[str]) -> str:
        name = match.group(1)
        if name in computed:
            return computed[name]
        return item.fields.get(name) or ""

    return prune_separators(TOKEN_RE.sub(_resolve, template))
