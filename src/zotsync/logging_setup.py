"""Logging configuration for the zotsync CLI.

Console logging is plain ``logging`` at WARNING (DEBUG with ``--verbose``).
An optional log file receives one JSON object per line with keys ``ts``,
``level``, ``logger``, ``library``, ``msg``, so unattended runs (cron,
launchd) can be audited per library.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

ROOT_LOGGER = "zotsync"


class LibraryLogAdapter(logging.LoggerAdapter):
    """LoggerAdapter that tags every record with the library being synced."""

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:  # type: ignore[override]
        library = self.extra.get("library", "-") if self.extra else "-"
        extra = kwargs.get("extra", {})
        extra.setdefault("library", library)
        kwargs["extra"] = extra
        return f"[{library}] {msg}", kwargs


class _DefaultsFilter(logging.Filter):
    """Ensure ``library`` is present on records logged outside a library."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "library"):
            record.library = "-"  # type: ignore[attr-defined]
        return True


class JsonFormatter(logging.Formatter):
    """Emit one ``json.loads``-able object per log line."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "library": getattr(record, "library", "-"),
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def configure_logging(verbose: bool = False, log_file: Path | None = None) -> None:
    """Configure the ``zotsync`` logger hierarchy.

    Safe to call more than once; handlers are only added on the first call.

    Args:
        verbose: Log DEBUG to stderr instead of WARNING.
        log_file: Optional JSON-lines log file (parent dirs created).
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(logging.DEBUG)

    if not any(getattr(h, "_zotsync_console", False) for h in logger.handlers):
        console = logging.StreamHandler()
        console._zotsync_console = True  # type: ignore[attr-defined]
        console.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
        logger.addHandler(console)
    for handler in logger.handlers:
        if getattr(handler, "_zotsync_console", False):
            handler.setLevel(logging.DEBUG if verbose else logging.WARNING)

    if log_file is not None and not any(
        isinstance(h, logging.FileHandler) for h in logger.handlers
    ):
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.addFilter(_DefaultsFilter())
        fh.setFormatter(JsonFormatter())
        logger.addHandler(fh)
