"""Proactive population of the count cache.

In production, and whenever warm-up is forced by configuration, the total,
per-campus and recent counts are populated shortly after startup so the
first real request is a hit. Failures are logged and never fatal.
"""

from __future__ import annotations

import asyncio
import logging

from siteindex.cache.invalidation import CacheInvalidator
from siteindex.cache.query_cache import QueryCache
from siteindex.core.timers import AsyncioScheduler, Scheduler, TimerHandle

logger = logging.getLogger(__name__)


class CacheWarmer:
    """Warms the count families once after a delay, or on demand."""

    def __init__(
        self,
        cache: QueryCache,
        *,
        invalidator: CacheInvalidator | None = None,
        scheduler: Scheduler | None = None,
        delay: float = 5.0,
        enabled: bool = False,
    ):
        self.cache = cache
        self.invalidator = invalidator
        self.scheduler = scheduler or AsyncioScheduler()
        self.delay = delay
        self.enabled = enabled
        self._handle: TimerHandle | None = None
        self._warming = False
        self.last_result: bool | None = None

    @property
    def is_warming(self) -> bool:
        return self._warming

    def schedule(self) -> bool:
        """Schedule the startup warm-up. Returns False when disabled."""
        if not self.enabled or self._handle is not None:
            return False
        self._handle = self.scheduler.call_later(self.delay, self.warm_up_caches)
        logger.info("Cache warm-up scheduled in %.1fs", self.delay)
        return True

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    async def warm_up_caches(self, force: bool = False) -> bool:
        """Populate the total, per-campus and recent count families.

        Args:
            force: Evict the count families first so values are recomputed.

        Returns:
            True when every family was populated. False when any count
            failed, or when a warm-up was already running.
        """
        if self._warming:
            logger.info("Cache warm-up already in progress")
            return False

        self._warming = True
        try:
            if force and self.invalidator is not None:
                await self.invalidator.invalidate_count_caches()

            results = await asyncio.gather(
                self.cache.get_total_items_count(),
                self.cache.get_campus_items_counts(),
                self.cache.get_recent_items_count(),
                return_exceptions=True,
            )
            failures = [r for r in results if isinstance(r, Exception)]
            for failure in failures:
                logger.error("Cache warm-up query failed: %s", failure)

            self.last_result = not failures
            if self.last_result:
                logger.info("Count cache warmed")
            return self.last_result
        finally:
            self._warming = False
