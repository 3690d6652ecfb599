"""Catalog access: Zotero HTTP API client and wire schemas."""

from zotsync.catalog.client import CatalogClient, FetchResult, GroupInfo

__all__ = ["CatalogClient", "FetchResult", "GroupInfo"]
