"""Integration fixtures: PostgreSQL and Redis in Docker.

Every test gets fresh tables and an empty Redis database. Tests are skipped
when no Docker daemon is reachable.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator, Awaitable, Callable, Iterator
from typing import Any

import pytest
import pytest_asyncio
import redis.asyncio as aioredis
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from siteindex.api.app import create_app
from siteindex.cache.runtime import CacheRuntime
from siteindex.cache.store import RedisKeyValueStore
from siteindex.config import Settings
from siteindex.persistence.repositories import SqlItemCounter
from siteindex.persistence.tables import Base
from tests.integration.docker_utils import ContainerHandle, get_docker_client, running_container

CAMPUSES = ["College of San Mateo", "Skyline College", "Canada College"]


@pytest.fixture(scope="session")
def docker_client() -> Iterator[Any]:
    try:
        client = get_docker_client()
        client.ping()
    except Exception as exc:
        pytest.skip(f"Docker not available: {exc}")
    yield client
    client.close()


@pytest.fixture(scope="session")
def postgres_container(docker_client: Any) -> Iterator[ContainerHandle]:
    env = {
        "POSTGRES_USER": "siteindex",
        "POSTGRES_PASSWORD": "siteindex",
        "POSTGRES_DB": "siteindex",
    }
    with running_container(docker_client, "postgres:16-alpine", env=env, ports={"5432/tcp": None}) as pg:
        yield pg


@pytest.fixture(scope="session")
def redis_container(docker_client: Any) -> Iterator[ContainerHandle]:
    with running_container(docker_client, "redis:7-alpine", ports={"6379/tcp": None}) as redis:
        yield redis


@pytest.fixture(scope="session")
def database_url(postgres_container: ContainerHandle) -> str:
    port = postgres_container.host_port(5432)
    return f"postgresql+asyncpg://siteindex:siteindex@{postgres_container.host}:{port}/siteindex"


@pytest.fixture(scope="session")
def redis_url(redis_container: ContainerHandle) -> str:
    return f"redis://{redis_container.host}:{redis_container.host_port(6379)}/0"


async def _wait_until_ready(ready_check: Callable[[], Awaitable[Any]], timeout: float = 30.0) -> None:
    deadline = time.monotonic() + timeout
    while True:
        try:
            await ready_check()
            return
        except Exception:
            if time.monotonic() >= deadline:
                raise
            await asyncio.sleep(0.5)


@pytest_asyncio.fixture
async def db_engine(database_url: str) -> AsyncIterator[AsyncEngine]:
    engine = create_async_engine(database_url)

    async def connect() -> None:
        async with engine.connect():
            pass

    await _wait_until_ready(connect)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def redis_client(redis_url: str) -> AsyncIterator[aioredis.Redis]:
    client = aioredis.from_url(redis_url)
    await _wait_until_ready(client.ping)
    yield client
    await client.flushdb()
    await client.aclose()


@pytest.fixture
def kv_store(redis_client: aioredis.Redis) -> RedisKeyValueStore:
    return RedisKeyValueStore(redis_client)


@pytest_asyncio.fixture
async def cache_runtime(
    kv_store: RedisKeyValueStore,
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[CacheRuntime]:
    """Runtime on real stores with production timers."""
    settings = Settings(_env_file=None, campuses=CAMPUSES, track_cache_stats=True)
    runtime = CacheRuntime.from_settings(kv_store, SqlItemCounter(session_factory), settings)
    runtime.start()
    yield runtime
    runtime.stop()


@pytest_asyncio.fixture
async def http_client(
    cache_runtime: CacheRuntime,
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncClient]:
    app = create_app(use_lifespan=False)
    app.state.cache_runtime = cache_runtime
    app.state.session_factory = session_factory

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
