"""In-process request coalescing.

Concurrent calls that share a canonical request key share one execution of
the underlying query. The shared task is registered before its first
suspension point, so every caller arriving in the same event-loop tick
joins it. Entries are removed a short grace period after the query settles,
and a periodic sweep drops anything older than the max age that slipped
through.

Failures are broadcast to every waiting caller and never cached: the entry
is removed on the same grace schedule so the next call runs fresh.

Coalescing is per process; the shared key-value store is the only
cross-process coordination point.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any, TypeVar

from siteindex.cache.schemas import CoalescingEntryInfo, CoalescingStats
from siteindex.core.timers import (
    AsyncioScheduler,
    Clock,
    Scheduler,
    SystemClock,
    TimerHandle,
)
from siteindex.observability.metrics import get_metrics

logger = logging.getLogger(__name__)

T = TypeVar("T")

KEY_DELIMITER = "|"


def generate_request_key(params: Mapping[str, Any]) -> str:
    """Build a canonical key from request parameters.

    Parameter names are sorted, so ``{"b": 1, "a": 2}`` and
    ``{"a": 2, "b": 1}`` map to ``"a:2|b:1"``. ``None`` renders as empty;
    other falsy values keep their text, so ``{"page": 0}`` and
    ``{"page": None}`` are different requests.
    """
    parts = []
    for name in sorted(params):
        value = params[name]
        parts.append(f"{name}:{'' if value is None else value}")
    return KEY_DELIMITER.join(parts)


@dataclass(eq=False)
class CoalescingEntry:
    """A shared in-flight query and the monotonic time it was registered."""

    task: asyncio.Future[Any]
    created_at: float


class RequestCoalescer:
    """Collapses concurrent identical reads into one query execution.

    Args:
        max_age: Seconds after which an entry is never reused.
        grace_period: Delay between settlement and removal.
        sweep_interval: Period of the safety-net sweep started by ``start``.
        clock: Monotonic time source.
        scheduler: Runs grace removals and the periodic sweep.
    """

    def __init__(
        self,
        *,
        max_age: float = 5.0,
        grace_period: float = 0.1,
        sweep_interval: float = 60.0,
        clock: Clock | None = None,
        scheduler: Scheduler | None = None,
    ):
        self.max_age = max_age
        self.grace_period = grace_period
        self.sweep_interval = sweep_interval
        self.clock = clock or SystemClock()
        self.scheduler = scheduler or AsyncioScheduler()
        self._entries: dict[str, CoalescingEntry] = {}
        self._sweep_handle: TimerHandle | None = None

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    @property
    def running(self) -> bool:
        return self._sweep_handle is not None

    def start(self) -> None:
        """Start the periodic sweep. Idempotent."""
        if self._sweep_handle is not None:
            return
        self._sweep_handle = self.scheduler.call_every(self.sweep_interval, self.sweep)
        logger.debug("Request coalescer sweep started (every %.1fs)", self.sweep_interval)

    def stop(self) -> None:
        """Stop the sweep and forget all entries.

        In-flight queries keep running for the callers already awaiting them.
        """
        if self._sweep_handle is not None:
            self._sweep_handle.cancel()
            self._sweep_handle = None
        self._entries.clear()
        self._update_gauge()

    async def coalesce(self, key: str, query_fn: Callable[[], Awaitable[T]]) -> T:
        """Run ``query_fn`` once for all concurrent callers sharing ``key``.

        A caller that is cancelled while waiting does not cancel the shared
        query; it completes for the remaining callers.
        """
        metrics = get_metrics()
        entry = self._entries.get(key)
        if entry is not None and self.clock.monotonic() - entry.created_at < self.max_age:
            if metrics.coalesced_requests_total:
                metrics.coalesced_requests_total.labels(role="follower").inc()
            logger.debug("Joining in-flight request", extra={"coalesce_key": key})
            return await asyncio.shield(entry.task)

        task = asyncio.ensure_future(query_fn())
        entry = CoalescingEntry(task=task, created_at=self.clock.monotonic())
        self._entries[key] = entry
        task.add_done_callback(lambda _: self._on_settled(key, entry))
        if metrics.coalesced_requests_total:
            metrics.coalesced_requests_total.labels(role="leader").inc()
        self._update_gauge()

        return await asyncio.shield(task)

    def forget(self, key: str) -> bool:
        """Stop sharing the entry for ``key``.

        Callers already waiting keep their result; the next call for the key
        runs a fresh query. Returns False when there was no entry.
        """
        if self._entries.pop(key, None) is None:
            return False
        self._update_gauge()
        return True

    def forget_prefix(self, prefix: str) -> int:
        """Forget every entry whose key starts with ``prefix``."""
        keys = [key for key in self._entries if key.startswith(prefix)]
        for key in keys:
            del self._entries[key]
        if keys:
            logger.debug("Forgot %d coalescing entries under %s", len(keys), prefix)
            self._update_gauge()
        return len(keys)

    def _on_settled(self, key: str, entry: CoalescingEntry) -> None:
        if not entry.task.cancelled():
            # Every waiter may have gone away; mark the error as retrieved.
            entry.task.exception()
        self.scheduler.call_later(self.grace_period, self._remove, key, entry)

    def _remove(self, key: str, entry: CoalescingEntry) -> None:
        # A newer entry may have replaced this one after max_age
        if self._entries.get(key) is entry:
            del self._entries[key]
            self._update_gauge()

    def sweep(self) -> int:
        """Drop entries at or past the max age. Returns how many were removed."""
        now = self.clock.monotonic()
        stale = [key for key, entry in self._entries.items() if now - entry.created_at >= self.max_age]
        for key in stale:
            del self._entries[key]
        if stale:
            logger.info("Swept %d stale coalescing entries", len(stale))
            self._update_gauge()
        return len(stale)

    def stats(self) -> CoalescingStats:
        """Current entries with their ages."""
        now = self.clock.monotonic()
        return CoalescingStats(
            active=len(self._entries),
            entries=[
                CoalescingEntryInfo(
                    key=key,
                    age_seconds=round(now - entry.created_at, 3),
                    settled=entry.task.done(),
                )
                for key, entry in self._entries.items()
            ],
        )

    def _update_gauge(self) -> None:
        metrics = get_metrics()
        if metrics.coalescing_entries:
            metrics.coalescing_entries.set(len(self._entries))
