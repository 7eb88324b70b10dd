"""Clock and scheduler abstractions for background cache work.

The request coalescer and the cache warmer never touch ambient timers
directly. They receive a ``Clock`` for timestamps and a ``Scheduler`` for
delayed and periodic callbacks, so tests can substitute a manual
implementation and advance time deterministically.

Callbacks may be plain functions or return an awaitable; awaitables are
scheduled as tasks on the running loop.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, Protocol

logger = logging.getLogger(__name__)

TimerCallback = Callable[..., Any]


class Clock(Protocol):
    """Source of monotonic and wall-clock time."""

    def monotonic(self) -> float: ...

    def now(self) -> datetime: ...


class TimerHandle(Protocol):
    """Handle returned by a scheduler; cancelling is idempotent."""

    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Schedules delayed and periodic callbacks."""

    def call_later(self, delay: float, callback: TimerCallback, *args: Any) -> TimerHandle: ...

    def call_every(self, interval: float, callback: TimerCallback) -> TimerHandle: ...


class SystemClock:
    """Clock backed by ``time.monotonic`` and UTC ``datetime.now``."""

    def monotonic(self) -> float:
        return time.monotonic()

    def now(self) -> datetime:
        return datetime.now(UTC)


class _TaskHandle:
    def __init__(self, task: asyncio.Task[None]) -> None:
        self._task = task

    def cancel(self) -> None:
        if not self._task.done():
            self._task.cancel()


class AsyncioScheduler:
    """Scheduler running callbacks on the current asyncio event loop."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    def _run(self, callback: TimerCallback, *args: Any) -> None:
        try:
            result = callback(*args)
        except Exception:
            logger.exception("Scheduled callback %r failed", callback)
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Scheduled task failed: %s", task.exception())

    def call_later(self, delay: float, callback: TimerCallback, *args: Any) -> TimerHandle:
        loop = asyncio.get_running_loop()
        return loop.call_later(delay, self._run, callback, *args)

    def call_every(self, interval: float, callback: TimerCallback) -> TimerHandle:
        async def _loop() -> None:
            while True:
                await asyncio.sleep(interval)
                self._run(callback)

        return _TaskHandle(asyncio.get_running_loop().create_task(_loop()))

    def cancel_pending(self) -> None:
        """Cancel awaitables started by callbacks that have not finished."""
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
