"""Cache invalidation on item writes.

Writes evict, they never refresh: every count-derived key is deleted and
the next reader repopulates it through the read-through path. Listings are
evicted for each letter and campus the item occupied before and after the
write, and every cached search is dropped. Keys are
deleted one at a time so a store failure on one key is reported and the
rest are still evicted. Failures never roll back the write; a stale value
then lives at most until its TTL expires.

Example:
    invalidator = CacheInvalidator(store)
    await repository.create(item)
    await session.commit()
    result = await invalidator.invalidate_count_caches()
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, NamedTuple

from siteindex.cache.errors import CacheErrorHook, log_cache_error, report_cache_error
from siteindex.cache.keys import CacheKeys, KeyFamily
from siteindex.cache.store import KeyValueStore
from siteindex.observability.metrics import get_metrics

logger = logging.getLogger(__name__)

# Every family whose value is derived from item row counts
COUNT_DERIVED_FAMILIES: tuple[KeyFamily, ...] = (
    KeyFamily.TOTAL_ITEMS,
    KeyFamily.CAMPUS_COUNTS,
    KeyFamily.RECENT_ITEMS,
    KeyFamily.DASHBOARD_STATS,
    KeyFamily.HEALTH_COUNT,
)

# Item fields whose change moves a count
COUNT_AFFECTING_FIELDS = frozenset({"campus", "letter"})


class WriteOperation(str, Enum):
    """Kind of item mutation."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


def requires_count_invalidation(
    operation: WriteOperation,
    changes: Mapping[str, Any] | Iterable[str] = (),
) -> bool:
    """Whether a write can change any count-derived value.

    Creates and deletes always do. Updates only do when they touch a field
    that partitions the counts.
    """
    if operation is not WriteOperation.UPDATE:
        return True
    return not COUNT_AFFECTING_FIELDS.isdisjoint(changes)


class ItemPlacement(NamedTuple):
    """Where an item shows up in the directory."""

    letter: str
    campus: str


class InvalidationError(Exception):
    """Raised when a pattern would reach outside the cache namespace."""


@dataclass
class InvalidationResult:
    """Outcome of an eviction: keys removed and keys that failed."""

    deleted: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def extend(self, other: InvalidationResult) -> None:
        self.deleted.extend(other.deleted)
        self.failed.extend(other.failed)


class CacheInvalidator:
    """Evicts cache keys, reporting per-key failures without raising."""

    def __init__(self, store: KeyValueStore, *, on_error: CacheErrorHook = log_cache_error):
        self.store = store
        self.on_error = on_error

    async def invalidate_count_caches(self) -> InvalidationResult:
        """Evict every count-derived family.

        Must be called after an item mutation commits and before the write
        is reported as successful.
        """
        result = await self.invalidate_keys(CacheKeys.for_family(f) for f in COUNT_DERIVED_FAMILIES)
        if result.ok:
            logger.debug("Invalidated %d count cache keys", len(result.deleted))
        return result

    async def invalidate_for_write(
        self,
        operation: WriteOperation,
        changes: Mapping[str, Any] | Iterable[str] = (),
    ) -> InvalidationResult | None:
        """Evict count caches if the write can affect them.

        Returns None when the write left every count unchanged.
        """
        if not requires_count_invalidation(operation, changes):
            return None
        return await self.invalidate_count_caches()

    async def invalidate_item_lists(self, placements: Iterable[ItemPlacement]) -> InvalidationResult:
        """Evict listings that can include an item at any of ``placements``.

        Cached searches are matched on title, which a write can change
        freely, so all of them are evicted.
        """
        keys = dict.fromkeys(
            key
            for placement in placements
            for key in CacheKeys.item_lists_containing(placement.letter, placement.campus)
        )
        result = await self.invalidate_keys(keys)
        result.extend(await self.invalidate_pattern(CacheKeys.item_search_pattern()))
        return result

    async def invalidate_key(self, key: str) -> InvalidationResult:
        """Evict a single key."""
        return await self.invalidate_keys([key])

    async def invalidate_keys(self, keys: Iterable[str]) -> InvalidationResult:
        """Evict each key independently."""
        result = InvalidationResult()
        for key in keys:
            try:
                await self.store.delete(key)
            except Exception as e:
                report_cache_error(self.on_error, "delete", key, e)
                result.failed.append(key)
                metrics = get_metrics()
                if metrics.cache_invalidation_failures_total:
                    metrics.cache_invalidation_failures_total.inc()
                continue
            result.deleted.append(key)
        return result

    async def invalidate_pattern(self, pattern: str) -> InvalidationResult:
        """Evict every key matching a glob pattern inside ``cache:``.

        Raises:
            InvalidationError: If the pattern is outside the cache namespace.
        """
        if not CacheKeys.is_namespaced(pattern):
            raise InvalidationError(f"Pattern must start with '{CacheKeys.PREFIX}:'")

        keys: list[str] = []
        try:
            async for key in self.store.scan_keys(pattern):
                keys.append(key)
        except Exception as e:
            report_cache_error(self.on_error, "scan", pattern, e)
            return InvalidationResult(failed=[pattern])

        result = await self.invalidate_keys(keys)
        logger.debug("Invalidated %d keys matching %s", len(result.deleted), pattern)
        return result
