"""SQLite FTS5 search index backend.

Implements the Index Port on top of aiosqlite. Entries live in a plain
``entries`` table keyed by identifier, mirrored into an FTS5 table for
keyword search by external consumers (``zotsync search``).

Each write method commits immediately and rolls back on failure, so an
:class:`IndexWriteError` always leaves the previous index state intact.
Transient ``database is locked`` errors are retried briefly before giving
up.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Sequence
from datetime import date
from pathlib import Path

import aiosqlite
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from zotsync.exceptions import IndexQueryError, IndexWriteError
from zotsync.models import IndexEntry

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS entries (
    identifier TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    description TEXT NOT NULL,
    keywords TEXT NOT NULL DEFAULT '[]',
    created_at TEXT,
    link TEXT NOT NULL,
    indexed_at TEXT DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now'))
);

CREATE VIRTUAL TABLE IF NOT EXISTS entries_fts USING fts5(
    identifier UNINDEXED,
    title,
    description,
    keywords
);
"""


def fts_match_expression(query: str) -> str:
    '''Turn free text into an FTS5 MATCH expression of quoted words.

    >>> fts_match_expression('self-interest "ayn" ethic*')
    '"self-interest" """ayn""" "ethic"*'
    '''
    terms = []
    for word in query.split():
        prefix = word.endswith("*")
        word = word.rstrip("*")
        if not word:
            continue
        quoted = '"' + word.replace('"', '""') + '"'
        terms.append(quoted + "*" if prefix else quoted)
    return " ".join(terms)


def _is_locked(exc: BaseException) -> bool:
    return isinstance(exc, sqlite3.OperationalError) and "locked" in str(exc)


class SQLiteIndex:
    """Async SQLite index implementing :class:`~zotsync.index.port.IndexPort`.

    Usage::

        async with SQLiteIndex("~/.config/zotsync/index.db") as index:
            await index.upsert(entries)
            hits = await index.search("epistemology")
    """

    def __init__(self, db_path: str | Path, lock_retries: int = 3) -> None:
        self.db_path = str(db_path)
        self._lock_retries = lock_retries
        self._db: aiosqlite.Connection | None = None

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the connection (WAL mode) and ensure the schema exists."""
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(self.db_path)
        self._db.row_factory = aiosqlite.Row
        await self._db.execute("PRAGMA journal_mode=WAL")
        await self._db.execute("PRAGMA synchronous=NORMAL")
        await self._db.executescript(SCHEMA_SQL)
        await self._db.commit()

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    async def __aenter__(self) -> SQLiteIndex:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.close()

    def _ensure_connected(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RuntimeError("Not connected -- use 'async with' or call connect()")
        return self._db

    async def _write(self, action: str, statements: list[tuple[str, list[tuple]]]) -> None:
        """Run *statements* in one transaction, retrying on lock contention."""
        db = self._ensure_connected()
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._lock_retries),
                wait=wait_exponential(min=0.1, max=1),
                retry=retry_if_exception(_is_locked),
                reraise=True,
            ):
                with attempt:
                    try:
                        for sql, rows in statements:
                            await db.executemany(sql, rows)
                        await db.commit()
                    except sqlite3.Error:
                        await db.rollback()
                        raise
        except sqlite3.Error as e:
            raise IndexWriteError(f"SQLite index {action} failed: {e}") from e

    # ------------------------------------------------------------------
    # Index Port
    # ------------------------------------------------------------------

    async def upsert(self, entries: Sequence[IndexEntry]) -> None:
        if not entries:
            return
        # One FTS row per identifier; the last entry for a repeated key wins.
        entries = list({e.identifier: e for e in entries}.values())
        rows = [
            (
                e.identifier,
                e.title,
                e.description,
                json.dumps(sorted(e.keywords), ensure_ascii=False),
                e.created_at.isoformat() if e.created_at else None,
                e.link,
            )
            for e in entries
        ]
        ids = [(e.identifier,) for e in entries]
        fts_rows = [
            (e.identifier, e.title, e.description, " ".join(sorted(e.keywords)))
            for e in entries
        ]
        await self._write(
            "upsert",
            [
                (
                    """INSERT INTO entries
                           (identifier, title, description, keywords, created_at, link)
                       VALUES (?, ?, ?, ?, ?, ?)
                       ON CONFLICT(identifier) DO UPDATE SET
                           title = excluded.title,
                           description = excluded.description,
                           keywords = excluded.keywords,
                           created_at = excluded.created_at,
                           link = excluded.link,
                           indexed_at = strftime('%Y-%m-%dT%H:%M:%f', 'now')""",
                    rows,
                ),
                ("DELETE FROM entries_fts WHERE identifier = ?", ids),
                (
                    """INSERT INTO entries_fts (identifier, title, description, keywords)
                       VALUES (?, ?, ?, ?)""",
                    fts_rows,
                ),
            ],
        )
        logger.debug("Upserted %d index entries", len(entries))

    async def delete_by_identifiers(self, identifiers: Sequence[str]) -> None:
        if not identifiers:
            return
        ids = [(i,) for i in identifiers]
        await self._write(
            "delete",
            [
                ("DELETE FROM entries WHERE identifier = ?", ids),
                ("DELETE FROM entries_fts WHERE identifier = ?", ids),
            ],
        )
        logger.debug("Deleted %d index entries", len(identifiers))

    async def delete_all_by_domain(self, domain_tag: str) -> None:
        prefix = f"{domain_tag}."
        args = [(len(prefix), prefix)]
        await self._write(
            "domain delete",
            [
                ("DELETE FROM entries WHERE substr(identifier, 1, ?) = ?", args),
                ("DELETE FROM entries_fts WHERE substr(identifier, 1, ?) = ?", args),
            ],
        )
        logger.info("Cleared index domain %s", domain_tag)

    # ------------------------------------------------------------------
    # Read side (external consumers only)
    # ------------------------------------------------------------------

    async def count(self) -> int:
        db = self._ensure_connected()
        cursor = await db.execute("SELECT COUNT(*) FROM entries")
        row = await cursor.fetchone()
        return row[0] if row else 0

    async def get(self, identifier: str) -> IndexEntry | None:
        db = self._ensure_connected()
        cursor = await db.execute(
            "SELECT * FROM entries WHERE identifier = ?", (identifier,)
        )
        row = await cursor.fetchone()
        return self._row_to_entry(row) if row else None

    async def search(self, query: str, limit: int = 20) -> list[IndexEntry]:
        """Full-text match over title, description and keywords, best first.

        Every whitespace-separated word must match. Words are taken
        literally (``self-interest``, ``C++``); a trailing ``*`` makes a
        word a prefix match.

        Raises:
            IndexQueryError: If SQLite cannot evaluate the query.
        """
        match = fts_match_expression(query)
        if not match:
            return []
        db = self._ensure_connected()
        try:
            cursor = await db.execute(
                """SELECT e.* FROM entries_fts
                   JOIN entries e ON e.identifier = entries_fts.identifier
                   WHERE entries_fts MATCH ?
                   ORDER BY rank
                   LIMIT ?""",
                (match, limit),
            )
            rows = await cursor.fetchall()
        except sqlite3.OperationalError as e:
            raise IndexQueryError(f"Cannot search for {query!r}: {e}") from e
        return [self._row_to_entry(r) for r in rows]

    @staticmethod
    def _row_to_entry(row: aiosqlite.Row) -> IndexEntry:
        created = row["created_at"]
        return IndexEntry(
            identifier=row["identifier"],
            title=row["title"],
            description=row["description"],
            keywords=frozenset(json.loads(row["keywords"])),
            created_at=date.fromisoformat(created) if created else None,
            link=row["link"],
        )
