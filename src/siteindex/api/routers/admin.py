"""Admin endpoints - dashboard statistics and cache control.

Provides:
- Dashboard counts served from the count cache
- Cache presence, cached listings, hit/miss and coalescing diagnostics
- Invalidation by key, key list, namespaced pattern, or all count families
- On-demand warm-up
"""

from __future__ import annotations

import time
from datetime import UTC, datetime

from fastapi import APIRouter, Query

from siteindex.api.deps import CacheRuntimeDep
from siteindex.api.errors import BadRequestError, ConflictError, InternalServerError
from siteindex.api.schemas import (
    CacheOverview,
    HitStatsResponse,
    InvalidateRequest,
    InvalidateResponse,
    WarmupResponse,
)
from siteindex.cache.keys import CacheKeys, KeyFamily
from siteindex.cache.schemas import CacheFamilyStatus, DashboardStats

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/dashboard", response_model=DashboardStats)
async def get_dashboard(runtime: CacheRuntimeDep) -> DashboardStats:
    """Total, per-campus and recent item counts."""
    return await runtime.read("dashboard", runtime.dashboard.get_dashboard_stats)


@router.get("/cache", response_model=CacheOverview)
async def get_cache_overview(runtime: CacheRuntimeDep) -> CacheOverview:
    """Which key families are cached, hit rates, and in-flight coalescing."""
    presence = await runtime.dashboard.get_cache_stats()
    hit_stats = await runtime.query_cache.get_hit_stats()

    families = [
        CacheFamilyStatus(
            family=family.value,
            key=CacheKeys.for_family(family),
            cached=presence.get(family.value, False),
        )
        for family in KeyFamily
    ]
    cached = sum(1 for f in families if f.cached)

    return CacheOverview(
        timestamp=datetime.now(UTC),
        families=families,
        cached_families=cached,
        hit_stats=HitStatsResponse(
            hits=hit_stats.hits,
            misses=hit_stats.misses,
            total_hits=hit_stats.total_hits,
            total_misses=hit_stats.total_misses,
            hit_rate=round(hit_stats.hit_rate, 4),
        ),
        item_lists=await runtime.item_lists.key_counts(),
        coalescing=runtime.coalescer.stats(),
        warming=runtime.warmer.is_warming,
        recommendation=(
            "Cache is cold. Consider running warm-up."
            if cached == 0
            else "Cache is warm."
        ),
    )


@router.post("/cache/invalidate", response_model=InvalidateResponse)
async def invalidate_cache(body: InvalidateRequest, runtime: CacheRuntimeDep) -> InvalidateResponse:
    """Evict cache keys.

    Keys and patterns must stay inside the ``cache:`` namespace.
    """
    invalidator = runtime.invalidator
    if body.counts:
        result = await invalidator.invalidate_count_caches()
    elif body.pattern is not None:
        result = await invalidator.invalidate_pattern(body.pattern.strip())
    else:
        keys = [body.key] if body.key is not None else list(body.keys or [])
        malformed = [k for k in keys if CacheKeys.parse_key(k) is None]
        if malformed:
            raise BadRequestError(f"Keys must look like '{CacheKeys.FORMAT}': {', '.join(malformed)}")
        result = await invalidator.invalidate_keys(keys)

    return InvalidateResponse(
        deleted=result.deleted,
        failed=result.failed,
        deleted_count=len(result.deleted),
        timestamp=datetime.now(UTC),
    )


@router.post("/cache/warmup", response_model=WarmupResponse)
async def warm_cache(
    runtime: CacheRuntimeDep,
    force: bool = Query(default=False, description="Evict count families before warming"),
) -> WarmupResponse:
    """Populate the count families now."""
    if runtime.warmer.is_warming:
        raise ConflictError("Cache warm-up already in progress")

    start = time.monotonic()
    success = await runtime.warmer.warm_up_caches(force=force)
    if not success:
        raise InternalServerError("Cache warm-up failed")

    return WarmupResponse(
        success=True,
        duration_ms=round((time.monotonic() - start) * 1000, 2),
        families=await runtime.dashboard.get_cache_stats(),
        timestamp=datetime.now(UTC),
    )
