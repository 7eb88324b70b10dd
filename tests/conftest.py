"""Global pytest configuration and fixtures.

Shared fixtures build isolated cache services on in-memory fakes with a
manual clock, so no test depends on wall time or a running Redis.
"""

from __future__ import annotations

import pytest

from siteindex.cache.coalescing import RequestCoalescer
from siteindex.cache.invalidation import CacheInvalidator
from siteindex.cache.policy import CachePolicy
from siteindex.cache.query_cache import QueryCache
from siteindex.cache.runtime import CacheRuntime
from siteindex.cache.warmup import CacheWarmer
from tests.fakes import (
    ErrorRecorder,
    FakeClock,
    FakeItemCounter,
    InMemoryKeyValueStore,
    ManualScheduler,
)

CAMPUSES = ["College of San Mateo", "Skyline College", "Canada College", "District Office"]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def scheduler(clock: FakeClock) -> ManualScheduler:
    return ManualScheduler(clock)


@pytest.fixture
def store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def counter() -> FakeItemCounter:
    return FakeItemCounter(
        total=1524,
        by_campus={campus: 100 * (i + 1) for i, campus in enumerate(CAMPUSES)},
        recent=37,
    )


@pytest.fixture
def errors() -> ErrorRecorder:
    return ErrorRecorder()


@pytest.fixture
def query_cache(
    store: InMemoryKeyValueStore,
    counter: FakeItemCounter,
    clock: FakeClock,
    errors: ErrorRecorder,
) -> QueryCache:
    return QueryCache(
        store,
        counter,
        campuses=CAMPUSES,
        policy=CachePolicy(),
        clock=clock,
        on_error=errors,
    )


@pytest.fixture
def coalescer(clock: FakeClock, scheduler: ManualScheduler) -> RequestCoalescer:
    return RequestCoalescer(clock=clock, scheduler=scheduler)


@pytest.fixture
def runtime(
    query_cache: QueryCache,
    coalescer: RequestCoalescer,
    store: InMemoryKeyValueStore,
    scheduler: ManualScheduler,
    errors: ErrorRecorder,
) -> CacheRuntime:
    invalidator = CacheInvalidator(store, on_error=errors)
    warmer = CacheWarmer(query_cache, invalidator=invalidator, scheduler=scheduler, delay=5.0)
    return CacheRuntime(query_cache, coalescer, invalidator, warmer, scheduler=scheduler)
