"""Cache key schema for the site index.

Key format: {prefix}:{domain}:{qualifier}

Where:
- prefix: "cache" (namespace shared with operator tooling)
- domain: "count", "health", "dashboard", "stats", "items"
- qualifier: the query shape, e.g. "total_items" or "letter:B"

Operators inspect these keys directly with redis-cli, so the textual
format is part of the contract.
"""

from __future__ import annotations

from enum import Enum
from typing import Literal

StatsKind = Literal["hits", "misses"]


class KeyFamily(str, Enum):
    """Namespace of cache keys sharing a TTL and invalidation policy."""

    TOTAL_ITEMS = "total_items"
    CAMPUS_COUNTS = "campus_counts"
    RECENT_ITEMS = "recent_items"
    HEALTH_COUNT = "health_count"
    DASHBOARD_STATS = "dashboard_stats"


class CacheKeys:
    """Cache key generator following the cache:<domain>:<qualifier> convention."""

    PREFIX = "cache"
    FORMAT = "cache:<domain>:<qualifier>"

    @classmethod
    def total_items(cls) -> str:
        """Key for the total item count."""
        return f"{cls.PREFIX}:count:total_items"

    @classmethod
    def campus_counts(cls) -> str:
        """Key for the ordered per-campus counts."""
        return f"{cls.PREFIX}:count:campus_counts"

    @classmethod
    def recent_items(cls) -> str:
        """Key for the count of items created in the recent window."""
        return f"{cls.PREFIX}:count:recent_items"

    @classmethod
    def health_record_count(cls) -> str:
        """Key for the record count reported by health checks."""
        return f"{cls.PREFIX}:health:record_count"

    @classmethod
    def dashboard_stats(cls) -> str:
        """Key for the assembled dashboard statistics."""
        return f"{cls.PREFIX}:dashboard:stats"

    @classmethod
    def stats_counter(cls, kind: StatsKind) -> str:
        """Key for the per-day hit/miss counter hash."""
        return f"{cls.PREFIX}:stats:{kind}"

    @classmethod
    def item_list(cls, campus: str | None = None, letter: str | None = None) -> str:
        """Key for a directory listing with the given filters."""
        if campus is None and letter is None:
            return f"{cls.PREFIX}:items:all"
        if campus is None:
            return f"{cls.PREFIX}:items:letter:{letter}"
        if letter is None:
            return f"{cls.PREFIX}:items:campus:{campus}"
        return f"{cls.PREFIX}:items:campus:{campus}:letter:{letter}"

    @classmethod
    def item_search(cls, query: str, campus: str | None = None) -> str:
        """Key for title search results, case-insensitive on the query."""
        return f"{cls.PREFIX}:items:search:{query.lower()}:{campus or 'all'}"

    @classmethod
    def item_search_pattern(cls) -> str:
        """Glob matching every cached search."""
        return f"{cls.PREFIX}:items:search:*"

    @classmethod
    def item_lists_containing(cls, letter: str, campus: str) -> list[str]:
        """Listing keys whose result includes an item with this letter and campus."""
        return [
            cls.item_list(),
            cls.item_list(letter=letter),
            cls.item_list(campus=campus),
            cls.item_list(campus=campus, letter=letter),
        ]

    @classmethod
    def for_family(cls, family: KeyFamily) -> str:
        """Key holding the value of a key family."""
        return _FAMILY_KEYS[family]()

    @classmethod
    def parse_key(cls, key: str) -> dict[str, str] | None:
        """Parse a cache key into its components.

        Returns None if the key doesn't match the expected format.
        """
        parts = key.split(":", 2)
        if len(parts) < 3 or parts[0] != cls.PREFIX or not parts[1] or not parts[2]:
            return None

        return {
            "prefix": parts[0],
            "domain": parts[1],
            "qualifier": parts[2],
        }

    @classmethod
    def is_namespaced(cls, key_or_pattern: str) -> bool:
        """Whether a key or glob pattern stays inside the cache namespace."""
        return key_or_pattern.startswith(f"{cls.PREFIX}:")


_FAMILY_KEYS = {
    KeyFamily.TOTAL_ITEMS: CacheKeys.total_items,
    KeyFamily.CAMPUS_COUNTS: CacheKeys.campus_counts,
    KeyFamily.RECENT_ITEMS: CacheKeys.recent_items,
    KeyFamily.HEALTH_COUNT: CacheKeys.health_record_count,
    KeyFamily.DASHBOARD_STATS: CacheKeys.dashboard_stats,
}
