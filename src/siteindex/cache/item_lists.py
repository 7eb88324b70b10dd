"""Read-through cache for directory listings and title searches.

Listings are cached per filter under ``cache:items:*``. Searches are cached
per (query, campus) only when the query is short; long queries are rarely
repeated and always go to the database. Unlike counts, any item write can
stale a listing, so the write path evicts through
``CacheInvalidator.invalidate_item_lists`` and calls ``mark_stale``.

A query already running when ``mark_stale`` is called may have read rows
from before the write. Its result is still returned to its callers but is
not written back.

Example:
    lists = ItemListCache(store, ttl=3600)
    items = await lists.read_through(CacheKeys.item_list(letter="B"), load)
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any, Literal

from pydantic import TypeAdapter, ValidationError

from siteindex.cache.errors import CacheErrorHook, log_cache_error, report_cache_error
from siteindex.cache.keys import CacheKeys
from siteindex.cache.query_cache import MISS, to_jsonable
from siteindex.cache.store import KeyValueStore
from siteindex.core.model import IndexItem
from siteindex.observability.metrics import get_metrics

logger = logging.getLogger(__name__)

ListKind = Literal["item_lists", "item_search"]

_items_adapter = TypeAdapter(list[IndexItem])


class ItemListCache:
    """TTL cache of item lists keyed by filter or search query."""

    def __init__(
        self,
        store: KeyValueStore,
        *,
        ttl: int = 60 * 60,
        max_search_length: int = 20,
        on_error: CacheErrorHook = log_cache_error,
    ):
        self.store = store
        self.ttl = ttl
        self.max_search_length = max_search_length
        self.on_error = on_error
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    def mark_stale(self) -> None:
        """Keep queries started before now from writing their results back."""
        self._generation += 1

    async def get(self, key: str) -> Any:
        """Cached items at ``key``, or ``MISS``."""
        try:
            raw = await self.store.get(key)
        except Exception as e:
            report_cache_error(self.on_error, "get", key, e)
            return MISS

        if raw is None:
            return MISS

        try:
            return _items_adapter.validate_python(raw)
        except ValidationError as e:
            logger.warning("Ignoring malformed cache value at %s: %s", key, e)
            return MISS

    async def populate(self, key: str, items: list[IndexItem]) -> bool:
        try:
            await self.store.set(key, to_jsonable(items), ex=self.ttl)
        except Exception as e:
            report_cache_error(self.on_error, "set", key, e)
            return False
        return True

    async def read_through(
        self,
        key: str,
        compute: Callable[[], Awaitable[list[IndexItem]]],
        kind: ListKind = "item_lists",
    ) -> list[IndexItem]:
        """Serve from cache, or compute and populate unless staled meanwhile."""
        cached = await self.get(key)
        if cached is not MISS:
            self._record(kind, hit=True)
            return cached  # type: ignore[no-any-return]

        self._record(kind, hit=False)
        generation = self._generation
        items = await compute()
        if generation == self._generation:
            await self.populate(key, items)
        else:
            logger.debug("Not caching %s: invalidated while the query ran", key)
        return items

    def is_cacheable_search(self, query: str) -> bool:
        return len(query) <= self.max_search_length

    async def search(
        self,
        query: str,
        campus: str | None,
        compute: Callable[[], Awaitable[list[IndexItem]]],
    ) -> list[IndexItem]:
        """Title search results, cached for short queries only."""
        if not self.is_cacheable_search(query):
            return await compute()
        return await self.read_through(CacheKeys.item_search(query, campus), compute, "item_search")

    async def key_counts(self) -> dict[str, int]:
        """Number of cached lists by kind: all, letter, campus, search."""
        counts = {"all": 0, "letter": 0, "campus": 0, "search": 0}
        pattern = f"{CacheKeys.PREFIX}:items:*"
        try:
            async for key in self.store.scan_keys(pattern):
                kind = key.split(":", 3)[2]
                if kind in counts:
                    counts[kind] += 1
        except Exception as e:
            report_cache_error(self.on_error, "scan", pattern, e)
        return counts

    @staticmethod
    def _record(kind: ListKind, *, hit: bool) -> None:
        metrics = get_metrics()
        counter = metrics.cache_hits_total if hit else metrics.cache_misses_total
        if counter:
            counter.labels(family=kind).inc()
