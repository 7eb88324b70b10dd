"""Persistence layer for the site index.

This module provides:
- Async PostgreSQL engine and session factory
- SQLAlchemy ORM model for index items
- Repository with filtered counts, the source of truth behind the cache
"""

from siteindex.persistence.db import (
    close_db,
    get_engine,
    get_session_factory,
    init_db,
)
from siteindex.persistence.repositories import (
    IndexItemRepository,
    SqlItemCounter,
    UpdateResult,
)
from siteindex.persistence.tables import Base, IndexItemTable

__all__ = [
    # DB
    "get_engine",
    "get_session_factory",
    "init_db",
    "close_db",
    # Tables
    "Base",
    "IndexItemTable",
    # Repositories
    "IndexItemRepository",
    "SqlItemCounter",
    "UpdateResult",
]
