"""API routers for the site index."""

from siteindex.api.routers import admin, health, index_items, metrics

__all__ = ["admin", "health", "index_items", "metrics"]
