"""Search index port, identifier format, and backends."""

from zotsync.index.builder import build_entry
from zotsync.index.memory import InMemoryIndex
from zotsync.index.port import IndexPort, format_identifier, item_url, parse_identifier
from zotsync.index.sqlite import SQLiteIndex

__all__ = [
    "IndexPort",
    "InMemoryIndex",
    "SQLiteIndex",
    "build_entry",
    "format_identifier",
    "item_url",
    "parse_identifier",
]
