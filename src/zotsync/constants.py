"""Project-wide named constants."""

# Prefix of every index identifier; bulk wipes delete by this domain.
DOMAIN_TAG: str = "org.zotsync.item"

# Catalog page size. A page shorter than this marks the end of data.
PAGE_SIZE: int = 100

# Zotero's local connector API (Zotero 7, "Allow other applications" enabled).
DEFAULT_API_ENDPOINT: str = "http://localhost:23119/api"
PERSONAL_LIBRARY_ID: str = "users/0"
PERSONAL_LIBRARY_NAME: str = "My Library"

VERSION_HEADER: str = "Last-Modified-Version"
API_VERSION: str = "3"

# Item types that are children of real items, not first-class entries.
EXCLUDED_ITEM_TYPES: frozenset[str] = frozenset({"attachment", "note"})

DEFAULT_TITLE_TEMPLATE: str = "{{ title }}"
DEFAULT_DESCRIPTION_TEMPLATE: str = "{{ authors }} · {{ publicationTitle }} · {{ year }}"
