"""Key-value store backing the count cache.

Provides the ``KeyValueStore`` contract consumed by the cache layer and its
Redis implementation. Values are JSON documents serialized with orjson so
operators can read them with plain redis-cli. Uses the redis-py async client
for connection pooling.

Every method may raise on network or timeout errors; callers in the cache
layer catch and report those, they never propagate to end users.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable
from typing import TYPE_CHECKING, Any, Protocol, cast

import orjson
import redis.asyncio as redis

from siteindex.config import settings

if TYPE_CHECKING:
    from redis.asyncio import Redis

# Module-level connection pool
_redis_client: Redis | None = None


async def get_redis() -> Redis:
    """Get or create the Redis client.

    Uses connection pooling for efficient connection management.
    """
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(  # type: ignore[no-untyped-call]
            settings.redis_url,
            encoding="utf-8",
            decode_responses=False,
        )
    return _redis_client


async def close_redis() -> None:
    """Close Redis connections."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None


class KeyValueStore(Protocol):
    """Asynchronous, fallible key-value store."""

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any, *, ex: int | None = None) -> bool: ...

    async def delete(self, *keys: str) -> int: ...

    async def exists(self, key: str) -> bool: ...

    async def expire(self, key: str, seconds: int) -> bool: ...

    async def hget(self, key: str, field: str) -> str | None: ...

    async def hset(self, key: str, field: str, value: str | int) -> int: ...

    async def hincrby(self, key: str, field: str, amount: int = 1) -> int: ...

    async def hgetall(self, key: str) -> dict[str, str]: ...

    async def sadd(self, key: str, *members: str) -> int: ...

    async def smembers(self, key: str) -> set[str]: ...

    def scan_keys(self, pattern: str) -> AsyncIterator[str]: ...

    async def ping(self) -> bool: ...


def _text(value: bytes | str) -> str:
    return value.decode() if isinstance(value, bytes) else value


class RedisKeyValueStore:
    """``KeyValueStore`` backed by a redis-py async client.

    Plain values are stored as JSON; hash fields and set members are stored
    as strings.
    """

    def __init__(self, client: Redis):
        self.client = client

    async def get(self, key: str) -> Any | None:
        """Get and deserialize a JSON value, or None when absent.

        Raises ``orjson.JSONDecodeError`` when the stored bytes are not JSON.
        """
        raw = await self.client.get(key)
        if raw is None:
            return None
        return orjson.loads(raw)

    async def set(self, key: str, value: Any, *, ex: int | None = None) -> bool:
        """Serialize and store a value, with an expiry in seconds."""
        return bool(await self.client.set(key, orjson.dumps(value), ex=ex))

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return cast(int, await self.client.delete(*keys))

    async def exists(self, key: str) -> bool:
        return bool(await self.client.exists(key))

    async def expire(self, key: str, seconds: int) -> bool:
        return bool(await self.client.expire(key, seconds))

    async def hget(self, key: str, field: str) -> str | None:
        value = await cast(Awaitable[Any], self.client.hget(key, field))
        return None if value is None else _text(value)

    async def hset(self, key: str, field: str, value: str | int) -> int:
        return cast(int, await cast(Awaitable[Any], self.client.hset(key, field, value)))

    async def hincrby(self, key: str, field: str, amount: int = 1) -> int:
        return cast(int, await cast(Awaitable[Any], self.client.hincrby(key, field, amount)))

    async def hgetall(self, key: str) -> dict[str, str]:
        raw = await cast(Awaitable[dict[Any, Any]], self.client.hgetall(key))
        return {_text(k): _text(v) for k, v in raw.items()}

    async def sadd(self, key: str, *members: str) -> int:
        if not members:
            return 0
        return cast(int, await cast(Awaitable[Any], self.client.sadd(key, *members)))

    async def smembers(self, key: str) -> set[str]:
        raw = await cast(Awaitable[set[Any]], self.client.smembers(key))
        return {_text(member) for member in raw}

    async def scan_keys(self, pattern: str) -> AsyncIterator[str]:
        """Iterate keys matching a glob pattern.

        Uses SCAN to avoid blocking on large keyspaces.
        """
        async for key in self.client.scan_iter(match=pattern):
            yield _text(key)

    async def ping(self) -> bool:
        return bool(await cast(Awaitable[bool], self.client.ping()))
