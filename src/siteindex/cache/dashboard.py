"""Dashboard statistics assembled from the count cache."""

from __future__ import annotations

import asyncio
import logging

from siteindex.cache.errors import report_cache_error
from siteindex.cache.keys import CacheKeys, KeyFamily
from siteindex.cache.query_cache import QueryCache
from siteindex.cache.schemas import DashboardStats

logger = logging.getLogger(__name__)


class DashboardAggregator:
    """Builds the dashboard snapshot and reports which families are cached."""

    def __init__(self, cache: QueryCache):
        self.cache = cache

    async def get_dashboard_stats(self) -> DashboardStats:
        """Total, per-campus and recent counts plus a fresh timestamp.

        The three counts are fetched concurrently, each through its own
        cache family, then the composite is cached under its own TTL.
        """

        async def compute() -> DashboardStats:
            total, campus_counts, recent = await asyncio.gather(
                self.cache.get_total_items_count(),
                self.cache.get_campus_items_counts(),
                self.cache.get_recent_items_count(),
            )
            return DashboardStats(
                total_items=total,
                campus_counts=campus_counts,
                recent_items=recent,
                last_updated=self.cache.clock.now(),
            )

        return await self.cache.read_through(KeyFamily.DASHBOARD_STATS, compute)

    async def get_cache_stats(self) -> dict[str, bool]:
        """Whether each key family currently holds a value.

        Values are never read. A store error reports the family as absent.
        """
        store = self.cache.store
        stats: dict[str, bool] = {}
        for family in KeyFamily:
            key = CacheKeys.for_family(family)
            try:
                stats[family.value] = bool(await store.exists(key))
            except Exception as e:
                report_cache_error(self.cache.on_error, "exists", key, e)
                stats[family.value] = False
        return stats
