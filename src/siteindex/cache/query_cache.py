"""Read-through TTL cache for expensive count queries.

Each count family lives under one key with a fixed TTL. Reads fall back
to the relational store on a miss and repopulate the key afterwards.
The key-value store is treated as unreliable: a failed get degrades to a
miss and a failed set is reported and ignored, so callers only ever see
relational-store errors.

Example:
    cache = QueryCache(store, counter, campuses=["Main", "North"])
    total = await cache.get_total_items_count()
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from datetime import timedelta
from typing import Any, Protocol, TypeVar

from pydantic import BaseModel, TypeAdapter, ValidationError

from siteindex.cache.errors import CacheErrorHook, log_cache_error, report_cache_error
from siteindex.cache.keys import CacheKeys, KeyFamily, StatsKind
from siteindex.cache.policy import CachePolicy
from siteindex.cache.schemas import CampusCount, DashboardStats, HitStats
from siteindex.cache.store import KeyValueStore
from siteindex.core.model import ItemFilter
from siteindex.core.timers import Clock, SystemClock
from siteindex.observability.metrics import get_metrics

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _Miss:
    """Sentinel for an absent or unusable cached value."""

    _instance: _Miss | None = None

    def __new__(cls) -> _Miss:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISS"


MISS: Any = _Miss()


class ItemCounter(Protocol):
    """Relational count query over index items."""

    async def count(self, item_filter: ItemFilter | None = None) -> int: ...


_campus_counts_adapter = TypeAdapter(list[CampusCount])


def _decode_count(raw: Any) -> int:
    # bool is an int subclass; a cached true/false is not a count
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise TypeError(f"expected an integer count, got {type(raw).__name__}")
    if raw < 0:
        raise ValueError(f"negative count {raw}")
    return raw


def to_jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, (list, tuple)):
        return [to_jsonable(item) for item in value]
    return value


class QueryCache:
    """TTL cache layer in front of the relational count queries."""

    def __init__(
        self,
        store: KeyValueStore,
        counter: ItemCounter,
        *,
        campuses: Sequence[str],
        policy: CachePolicy | None = None,
        clock: Clock | None = None,
        recent_days: int = 7,
        track_stats: bool = False,
        stats_retention_days: int = 30,
        on_error: CacheErrorHook = log_cache_error,
    ):
        self.store = store
        self.counter = counter
        self.campuses = tuple(campuses)
        self.policy = policy or CachePolicy()
        self.clock = clock or SystemClock()
        self.recent_days = recent_days
        self.track_stats = track_stats
        self.stats_retention_days = stats_retention_days
        self.on_error = on_error
        self._decoders: dict[KeyFamily, Callable[[Any], Any]] = {
            KeyFamily.TOTAL_ITEMS: _decode_count,
            KeyFamily.CAMPUS_COUNTS: self._decode_campus_counts,
            KeyFamily.RECENT_ITEMS: _decode_count,
            KeyFamily.HEALTH_COUNT: _decode_count,
            KeyFamily.DASHBOARD_STATS: DashboardStats.model_validate,
        }

    def _decode_campus_counts(self, raw: Any) -> list[CampusCount]:
        counts = _campus_counts_adapter.validate_python(raw)
        if tuple(c.campus for c in counts) != self.campuses:
            raise ValueError("cached campus list does not match configured campuses")
        return counts

    async def get(self, family: KeyFamily) -> Any:
        """Return the cached value for a family, or ``MISS``.

        Absent keys, store failures and values of the wrong shape all read
        as a miss.
        """
        key = CacheKeys.for_family(family)
        try:
            raw = await self.store.get(key)
        except Exception as e:
            report_cache_error(self.on_error, "get", key, e)
            return MISS

        if raw is None:
            return MISS

        try:
            return self._decoders[family](raw)
        except (TypeError, ValueError, ValidationError) as e:
            logger.warning("Ignoring malformed cache value at %s: %s", key, e)
            return MISS

    async def populate(self, family: KeyFamily, value: Any, ttl: int | None = None) -> bool:
        """Store a value under the family's key with its TTL.

        Returns False when the store rejected the write; the failure is
        reported, never raised.
        """
        key = CacheKeys.for_family(family)
        seconds = ttl if ttl is not None else self.policy.ttl_for(family)
        try:
            await self.store.set(key, to_jsonable(value), ex=seconds)
        except Exception as e:
            report_cache_error(self.on_error, "set", key, e)
            return False
        return True

    async def read_through(
        self,
        family: KeyFamily,
        compute: Callable[[], Awaitable[T]],
        ttl: int | None = None,
    ) -> T:
        """Serve from cache, or compute, populate and return.

        Errors raised by ``compute`` propagate and nothing is cached.
        """
        cached = await self.get(family)
        if cached is not MISS:
            await self._record("hits", family)
            return cached  # type: ignore[no-any-return]

        await self._record("misses", family)
        value = await compute()
        await self.populate(family, value, ttl)
        return value

    async def get_total_items_count(self) -> int:
        """Total number of index items."""
        return await self.read_through(KeyFamily.TOTAL_ITEMS, self.counter.count)

    async def get_campus_items_counts(self) -> list[CampusCount]:
        """Item counts for every configured campus, in configuration order.

        The per-campus queries run concurrently. If any of them fails the
        whole call fails and nothing is cached.
        """

        async def compute() -> list[CampusCount]:
            counts = await asyncio.gather(
                *(self.counter.count(ItemFilter(campus=campus)) for campus in self.campuses)
            )
            return [
                CampusCount(campus=campus, count=count)
                for campus, count in zip(self.campuses, counts, strict=True)
            ]

        return await self.read_through(KeyFamily.CAMPUS_COUNTS, compute)

    async def get_recent_items_count(self) -> int:
        """Items created within the recent window, ending now."""

        async def compute() -> int:
            since = self.clock.now() - timedelta(days=self.recent_days)
            return await self.counter.count(ItemFilter(created_since=since))

        return await self.read_through(KeyFamily.RECENT_ITEMS, compute)

    async def get_health_check_count(self) -> int:
        """Total item count for health checks, cached on a shorter TTL."""
        return await self.read_through(KeyFamily.HEALTH_COUNT, self.counter.count)

    async def _record(self, kind: StatsKind, family: KeyFamily) -> None:
        metrics = get_metrics()
        counter = metrics.cache_hits_total if kind == "hits" else metrics.cache_misses_total
        if counter:
            counter.labels(family=family.value).inc()

        if not self.track_stats:
            return

        key = CacheKeys.stats_counter(kind)
        day = self.clock.now().date().isoformat()
        try:
            await self.store.hincrby(key, day, 1)
            await self.store.expire(key, self.stats_retention_days * 24 * 3600)
        except Exception as e:
            report_cache_error(self.on_error, "hincrby", key, e)

    async def get_hit_stats(self) -> HitStats:
        """Per-day hit and miss counters recorded by read-through calls."""
        stats = HitStats()
        for kind, target in (("hits", stats.hits), ("misses", stats.misses)):
            key = CacheKeys.stats_counter(kind)  # type: ignore[arg-type]
            try:
                raw = await self.store.hgetall(key)
            except Exception as e:
                report_cache_error(self.on_error, "get", key, e)
                continue
            for day, value in raw.items():
                try:
                    target[day] = int(value)
                except ValueError:
                    logger.warning("Ignoring non-numeric %s counter for %s", kind, day)
        return stats
