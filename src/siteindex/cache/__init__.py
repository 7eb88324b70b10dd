"""Count cache for the site index.

Provides read-through caching of expensive count queries on Redis:
- TTL cache per key family with miss-on-error semantics
- In-process request coalescing for identical concurrent reads
- Evict-on-write invalidation of every count-derived family
- Dashboard aggregate and cache presence diagnostics
- Startup warm-up
"""

from siteindex.cache.coalescing import (
    CoalescingEntry,
    RequestCoalescer,
    generate_request_key,
)
from siteindex.cache.dashboard import DashboardAggregator
from siteindex.cache.errors import CacheError, CacheErrorHook, log_cache_error
from siteindex.cache.invalidation import (
    COUNT_DERIVED_FAMILIES,
    CacheInvalidator,
    InvalidationError,
    InvalidationResult,
    WriteOperation,
    requires_count_invalidation,
)
from siteindex.cache.keys import CacheKeys, KeyFamily
from siteindex.cache.policy import CachePolicy
from siteindex.cache.query_cache import MISS, ItemCounter, QueryCache
from siteindex.cache.runtime import CacheRuntime
from siteindex.cache.schemas import CampusCount, DashboardStats
from siteindex.cache.store import (
    KeyValueStore,
    RedisKeyValueStore,
    close_redis,
    get_redis,
)
from siteindex.cache.warmup import CacheWarmer

__all__ = [
    # Keys and policy
    "CacheKeys",
    "KeyFamily",
    "CachePolicy",
    # Store
    "KeyValueStore",
    "RedisKeyValueStore",
    "get_redis",
    "close_redis",
    # TTL cache
    "MISS",
    "ItemCounter",
    "QueryCache",
    "CacheError",
    "CacheErrorHook",
    "log_cache_error",
    # Coalescing
    "CoalescingEntry",
    "RequestCoalescer",
    "generate_request_key",
    # Invalidation
    "COUNT_DERIVED_FAMILIES",
    "CacheInvalidator",
    "InvalidationError",
    "InvalidationResult",
    "WriteOperation",
    "requires_count_invalidation",
    # Dashboard
    "CampusCount",
    "DashboardStats",
    "DashboardAggregator",
    # Lifecycle
    "CacheWarmer",
    "CacheRuntime",
]
