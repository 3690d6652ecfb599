"""Configuration loading, persistence, and API key lookup."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path

import keyring
from keyring.errors import KeyringError

from zotsync.constants import (
    DEFAULT_API_ENDPOINT,
    DEFAULT_DESCRIPTION_TEMPLATE,
    DEFAULT_TITLE_TEMPLATE,
    PERSONAL_LIBRARY_ID,
)

logger = logging.getLogger(__name__)

SERVICE_NAME = "zotsync"
KEY_NAME = "api_key"
CONFIG_DIR_ENV = "ZOTSYNC_CONFIG_DIR"
CONFIG_FILENAME = "config.json"


def config_dir() -> Path:
    """Directory holding config.json, cursors, and the default index."""
    override = os.environ.get(CONFIG_DIR_ENV)
    if override:
        return Path(override)
    return Path.home() / ".config" / "zotsync"


def default_config_path() -> Path:
    return config_dir() / CONFIG_FILENAME


def get_api_key() -> str | None:
    """Get the Zotero web API key: system keyring first, then ZOTERO_API_KEY.

    The local connector API needs no key, so a missing key is not an error.
    """
    try:
        api_key = keyring.get_password(SERVICE_NAME, KEY_NAME)
    except KeyringError as e:
        logger.debug("Keyring unavailable, falling back to environment: %s", e)
        api_key = None
    if api_key:
        return api_key
    return os.environ.get("ZOTERO_API_KEY") or None


@dataclass
class SyncConfig:
    """Immutable-per-run settings consumed by the sync engine.

    Loaded once at the start of a run and threaded explicitly into the
    orchestrator and fleet driver.
    """

    api_endpoint_base: str = DEFAULT_API_ENDPOINT
    personal_library_id: str = PERSONAL_LIBRARY_ID
    excluded_libraries: list[str] = field(default_factory=list)
    title_template: str = DEFAULT_TITLE_TEMPLATE
    description_template: str = DEFAULT_DESCRIPTION_TEMPLATE
    open_on_click: bool = False  # open the item (PDF) instead of selecting it
    request_timeout: float = 15.0
    index_path: str | None = None
    max_concurrent_libraries: int = 1

    def __post_init__(self) -> None:
        self.api_endpoint_base = self.api_endpoint_base.rstrip("/")
        if self.max_concurrent_libraries < 1:
            raise ValueError("max_concurrent_libraries must be >= 1")

    @property
    def resolved_index_path(self) -> Path:
        if self.index_path:
            return Path(self.index_path).expanduser()
        return config_dir() / "index.db"

    def to_dict(self) -> dict[str, object]:
        return asdict(self)


_STR_FIELDS = (
    "api_endpoint_base",
    "personal_library_id",
    "title_template",
    "description_template",
)


def _coerce(data: dict) -> SyncConfig:
    """Build a SyncConfig from a decoded JSON object, ignoring unknown keys.

    Raises:
        ValueError: If a known key holds a value of the wrong type.
    """
    field_names = {f.name for f in fields(SyncConfig)}
    kwargs = {k: v for k, v in data.items() if k in field_names}

    for name in _STR_FIELDS:
        if name in kwargs and not isinstance(kwargs[name], str):
            raise ValueError(f"{name} must be a string, got {kwargs[name]!r}")
    excluded = kwargs.get("excluded_libraries", [])
    if not isinstance(excluded, list) or not all(isinstance(x, str) for x in excluded):
        raise ValueError(f"excluded_libraries must be a list of strings, got {excluded!r}")
    if kwargs.get("index_path") is not None and not isinstance(kwargs["index_path"], str):
        raise ValueError(f"index_path must be a string or null, got {kwargs['index_path']!r}")
    if "open_on_click" in kwargs and not isinstance(kwargs["open_on_click"], bool):
        raise ValueError(f"open_on_click must be true or false, got {kwargs['open_on_click']!r}")
    # bool is an int subclass; true/false are not numbers here.
    for name, kind in (("request_timeout", float), ("max_concurrent_libraries", int)):
        if name not in kwargs:
            continue
        value = kwargs[name]
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"{name} must be a number, got {value!r}")
        kwargs[name] = kind(value)

    kwargs["excluded_libraries"] = list(excluded)
    return SyncConfig(**kwargs)


def load_config(config_path: Path | None = None) -> SyncConfig:
    """Load configuration from JSON, merging file values over defaults.

    A missing file yields the defaults. An unreadable or malformed file is
    logged and also yields the defaults, so a sync can always run.

    Args:
        config_path: Optional explicit path; defaults to ``config_dir()/config.json``.
    """
    if config_path is None:
        config_path = default_config_path()

    if not config_path.exists():
        return SyncConfig()

    try:
        with open(config_path, encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError("top-level JSON value is not an object")
        return _coerce(data)
    except (OSError, ValueError, TypeError) as e:
        logger.warning("Ignoring unreadable config %s: %s", config_path, e)
        return SyncConfig()


def save_config(config: SyncConfig, config_path: Path | None = None) -> Path:
    """Write configuration as pretty, sorted JSON via atomic replace."""
    if config_path is None:
        config_path = default_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)

    payload = json.dumps(config.to_dict(), indent=2, sort_keys=True)
    fd, tmp = tempfile.mkstemp(dir=config_path.parent, prefix=".config-", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(payload + "\n")
        os.replace(tmp, config_path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise
    return config_path


def export_config(dest: Path, config_path: Path | None = None) -> Path:
    """Write the current configuration (file values over defaults) to *dest*."""
    config = load_config(config_path)
    return save_config(config, dest)


def import_config(src: Path, config_path: Path | None = None) -> SyncConfig:
    """Validate a config JSON at *src* and install it as the active config.

    Raises:
        ValueError: If *src* is not a JSON object of config values.
    """
    with open(src, encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"{src} does not contain a JSON object")
    config = _coerce(data)
    save_config(config, config_path)
    return config


def reset_config(config_path: Path | None = None) -> SyncConfig:
    """Restore and persist the default configuration."""
    config = SyncConfig()
    save_config(config, config_path)
    return config


def _parse_value(name: str, raw: str) -> object:
    default = getattr(SyncConfig(), name)
    if name == "excluded_libraries":
        return [part.strip() for part in raw.split(",") if part.strip()]
    if name == "index_path":
        return raw or None
    if isinstance(default, bool):
        lowered = raw.strip().lower()
        if lowered in ("true", "1", "yes", "on"):
            return True
        if lowered in ("false", "0", "no", "off"):
            return False
        raise ValueError(f"{name} expects true/false, got {raw!r}")
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    return raw


def set_config_value(name: str, raw: str, config_path: Path | None = None) -> SyncConfig:
    """Set one field from its string form and persist the result.

    ``excluded_libraries`` takes a comma-separated list; an empty
    ``index_path`` restores the default location.

    Raises:
        KeyError: If *name* is not a config field.
        ValueError: If *raw* does not parse for the field's type.
    """
    field_names = {f.name for f in fields(SyncConfig)}
    if name not in field_names:
        raise KeyError(name)
    data = load_config(config_path).to_dict()
    data[name] = _parse_value(name, raw)
    config = _coerce(data)
    save_config(config, config_path)
    return config
