"""Process-wide cache services and their lifecycle.

Wires the TTL count cache, listing cache, request coalescer, invalidator,
dashboard aggregator and warmer around one key-value store and one item
counter. The application lifespan calls ``start`` once and ``stop`` on
shutdown; tests build isolated runtimes with fake collaborators.

Example:
    runtime = CacheRuntime.from_settings(store, counter, settings)
    runtime.start()
    stats = await runtime.read("dashboard", runtime.dashboard.get_dashboard_stats)
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import TYPE_CHECKING, Any, TypeVar

from siteindex.cache.coalescing import RequestCoalescer, generate_request_key
from siteindex.cache.dashboard import DashboardAggregator
from siteindex.cache.errors import CacheErrorHook, log_cache_error
from siteindex.cache.invalidation import (
    CacheInvalidator,
    InvalidationResult,
    ItemPlacement,
    WriteOperation,
)
from siteindex.cache.item_lists import ItemListCache
from siteindex.cache.policy import CachePolicy
from siteindex.cache.query_cache import ItemCounter, QueryCache
from siteindex.cache.store import KeyValueStore
from siteindex.cache.warmup import CacheWarmer
from siteindex.core.timers import AsyncioScheduler, Clock, Scheduler, SystemClock

if TYPE_CHECKING:
    from siteindex.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Coalesced reads that return item lists, and those built from counts
LIST_QUERIES = ("index_items", "search_items")
COUNT_QUERIES = ("dashboard", "health_count")


class CacheRuntime:
    """Owns the cache services of one process."""

    def __init__(
        self,
        query_cache: QueryCache,
        coalescer: RequestCoalescer,
        invalidator: CacheInvalidator,
        warmer: CacheWarmer,
        scheduler: Scheduler | None = None,
        item_lists: ItemListCache | None = None,
    ):
        self.query_cache = query_cache
        self.item_lists = item_lists or ItemListCache(query_cache.store, on_error=query_cache.on_error)
        self.coalescer = coalescer
        self.invalidator = invalidator
        self.dashboard = DashboardAggregator(query_cache)
        self.warmer = warmer
        self.scheduler = scheduler
        self._started = False

    @classmethod
    def from_settings(
        cls,
        store: KeyValueStore,
        counter: ItemCounter,
        settings: Settings,
        *,
        clock: Clock | None = None,
        scheduler: Scheduler | None = None,
        on_error: CacheErrorHook = log_cache_error,
    ) -> CacheRuntime:
        clock = clock or SystemClock()
        scheduler = scheduler or AsyncioScheduler()
        query_cache = QueryCache(
            store,
            counter,
            campuses=settings.campuses,
            policy=CachePolicy.from_settings(settings),
            clock=clock,
            recent_days=settings.recent_items_days,
            track_stats=settings.track_cache_stats,
            stats_retention_days=settings.cache_stats_retention_days,
            on_error=on_error,
        )
        coalescer = RequestCoalescer(
            max_age=settings.coalesce_max_age,
            grace_period=settings.coalesce_grace_period,
            sweep_interval=settings.coalesce_sweep_interval,
            clock=clock,
            scheduler=scheduler,
        )
        invalidator = CacheInvalidator(store, on_error=on_error)
        warmer = CacheWarmer(
            query_cache,
            invalidator=invalidator,
            scheduler=scheduler,
            delay=settings.cache_warmup_delay,
            enabled=settings.warm_up_enabled,
        )
        item_lists = ItemListCache(
            store,
            ttl=settings.ttl_item_lists,
            max_search_length=settings.search_cache_max_length,
            on_error=on_error,
        )
        return cls(
            query_cache,
            coalescer,
            invalidator,
            warmer,
            scheduler=scheduler,
            item_lists=item_lists,
        )

    @property
    def store(self) -> KeyValueStore:
        return self.query_cache.store

    def start(self) -> None:
        """Start the coalescer sweep and schedule warm-up. Idempotent."""
        if self._started:
            return
        self.coalescer.start()
        self.warmer.schedule()
        self._started = True
        logger.info("Cache runtime started")

    def stop(self) -> None:
        if not self._started:
            return
        self.warmer.cancel()
        self.coalescer.stop()
        if isinstance(self.scheduler, AsyncioScheduler):
            self.scheduler.cancel_pending()
        self._started = False
        logger.info("Cache runtime stopped")

    @staticmethod
    def read_key(query: str, **params: Any) -> str:
        """Coalescing key for a named read: ``<query>?<canonical params>``."""
        return f"{query}?{generate_request_key(params)}"

    async def read(self, query: str, fn: Callable[[], Awaitable[T]], **params: Any) -> T:
        """Run a read through the coalescer, keyed by query name and params."""
        return await self.coalescer.coalesce(self.read_key(query, **params), fn)

    def forget_reads(self, *queries: str) -> int:
        """Stop sharing in-flight or just-settled results of the named reads."""
        return sum(self.coalescer.forget_prefix(f"{query}?") for query in queries)

    async def invalidate_after_write(
        self,
        operation: WriteOperation,
        placements: Iterable[ItemPlacement],
        changes: Mapping[str, Any] | Iterable[str] = (),
    ) -> InvalidationResult:
        """Evict everything a committed item write can make stale.

        Call after the commit and before reporting the write. Count families
        go when the write moves a count. Listings go for every placement the
        item had before or after the write, together with cached searches.
        Coalesced reads of the evicted data are forgotten last, so a read
        issued after this returns runs against the committed rows.
        """
        self.item_lists.mark_stale()
        result = await self.invalidator.invalidate_item_lists(placements)
        queries = list(LIST_QUERIES)

        counts = await self.invalidator.invalidate_for_write(operation, changes)
        if counts is not None:
            result.extend(counts)
            queries.extend(COUNT_QUERIES)

        self.forget_reads(*queries)
        return result
