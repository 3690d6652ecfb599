"""Durable per-library version cursors.

One small text file per library under ``<config_dir>/versions/``, holding
the decimal cursor. Writes go through a temp file plus ``os.replace`` so a
concurrent reader sees either the old or the new value, never a torn one.
Cursors sit in their own directory so clearing them can never touch
``config.json`` or the index database.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from zotsync.exceptions import StorageError

logger = logging.getLogger(__name__)

_TMP_PREFIX = ".cursor-"


def library_key(library_id: str) -> str:
    """Storage key for a library id (``groups/5`` -> ``groups_5``)."""
    return library_id.replace("/", "_").replace("\\", "_")


class VersionStore:
    """File-backed cursor store partitioned by library key.

    Usage::

        store = VersionStore(config_dir() / "versions")
        since = store.load(library_key("users/0"))
        store.save(library_key("users/0"), 1234)
    """

    def __init__(self, state_dir: str | Path) -> None:
        self.state_dir = Path(state_dir)

    def _path(self, key: str) -> Path:
        return self.state_dir / key

    def load(self, key: str) -> int:
        """Stored cursor for *key*, or 0 when absent, unparsable, or unreadable."""
        path = self._path(key)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return 0
        except OSError as e:
            logger.warning("Cannot read cursor %s, forcing full sync: %s", path, e)
            return 0
        try:
            version = int(raw.strip())
        except ValueError:
            logger.warning("Unparsable cursor in %s, forcing full sync", path)
            return 0
        return max(version, 0)

    def save(self, key: str, version: int) -> None:
        """Atomically persist *version* for *key*.

        Raises:
            StorageError: If the directory or file cannot be written.
        """
        try:
            self.state_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.state_dir, prefix=_TMP_PREFIX)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(str(version))
                os.replace(tmp, self._path(key))
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StorageError(f"Cannot save cursor for {key}: {e}") from e
        logger.debug("Saved cursor %s = %d", key, version)

    def all_versions(self) -> dict[str, int]:
        """Every stored cursor by key."""
        if not self.state_dir.is_dir():
            return {}
        return {
            p.name: self.load(p.name)
            for p in sorted(self.state_dir.iterdir())
            if p.is_file() and not p.name.startswith(_TMP_PREFIX)
        }

    def clear_all(self) -> int:
        """Remove every stored cursor. Returns the number removed.

        Raises:
            StorageError: If a cursor file cannot be removed.
        """
        if not self.state_dir.is_dir():
            return 0
        removed = 0
        for path in self.state_dir.iterdir():
            if not path.is_file():
                continue
            try:
                path.unlink()
            except OSError as e:
                raise StorageError(f"Cannot remove cursor {path}: {e}") from e
            if not path.name.startswith(_TMP_PREFIX):
                removed += 1
        logger.info("Cleared %d stored cursor(s) in %s", removed, self.state_dir)
        return removed
