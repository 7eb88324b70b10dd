"""Health check endpoint.

Reports pass/warn/fail for the relational store and the key-value store:
- database: record count through the health-count cache family; warns on
  an empty table or a count below the configured threshold
- cache: write/read/delete round-trip; a broken cache only warns since
  every read can fall back to the database

Overall status is the worst component status. ``fail`` answers 503.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from datetime import UTC, datetime

from fastapi import APIRouter, Response
from fastapi.responses import JSONResponse

from siteindex.api.deps import CacheRuntimeDep
from siteindex.api.schemas import CheckStatus, ComponentCheck, HealthResponse
from siteindex.cache.keys import CacheKeys
from siteindex.cache.runtime import CacheRuntime
from siteindex.config import settings

router = APIRouter(tags=["health"])

CHECK_TIMEOUT = 5.0

_SEVERITY = {CheckStatus.PASS: 0, CheckStatus.WARN: 1, CheckStatus.FAIL: 2}


async def check_database(runtime: CacheRuntime, notes: list[str]) -> ComponentCheck:
    """Count records through the cache; a query failure is a hard failure."""
    start = time.monotonic()
    try:
        count = await asyncio.wait_for(
            runtime.read("health_count", runtime.query_cache.get_health_check_count),
            timeout=CHECK_TIMEOUT,
        )
    except asyncio.TimeoutError:
        notes.append("Database connectivity failed")
        return ComponentCheck(
            component="database",
            status=CheckStatus.FAIL,
            latency_ms=round((time.monotonic() - start) * 1000, 2),
            output="Database check timed out",
        )
    except Exception as e:
        notes.append("Database connectivity failed")
        return ComponentCheck(
            component="database",
            status=CheckStatus.FAIL,
            latency_ms=round((time.monotonic() - start) * 1000, 2),
            output=f"Database query failed: {e}",
        )

    status = CheckStatus.PASS
    if count == 0:
        status = CheckStatus.WARN
        notes.append("Database is accessible but contains no records")
    elif count < settings.health_min_records:
        status = CheckStatus.WARN
        notes.append("Record count is below expected threshold")

    latency = round((time.monotonic() - start) * 1000, 2)
    return ComponentCheck(
        component="database",
        status=status,
        latency_ms=latency,
        observed_value=count,
        observed_unit="records",
        output=f"Database responsive in {latency}ms with {count} records",
    )


async def check_cache(runtime: CacheRuntime, notes: list[str]) -> ComponentCheck:
    """Write, read back and delete a short-lived check key."""
    store = runtime.store
    check_key = f"{CacheKeys.PREFIX}:health:check:{uuid.uuid4().hex}"
    start = time.monotonic()
    try:
        await asyncio.wait_for(store.set(check_key, "ok", ex=10), timeout=CHECK_TIMEOUT)
        value = await asyncio.wait_for(store.get(check_key), timeout=CHECK_TIMEOUT)
        await asyncio.wait_for(store.delete(check_key), timeout=CHECK_TIMEOUT)
    except Exception as e:
        notes.append("Cache service unavailable; reads fall back to the database")
        return ComponentCheck(
            component="cache",
            status=CheckStatus.WARN,
            latency_ms=round((time.monotonic() - start) * 1000, 2),
            output=f"Cache unavailable: {type(e).__name__}: {e}",
        )

    latency = round((time.monotonic() - start) * 1000, 2)
    if value != "ok":
        notes.append("Cache read/write round-trip failed")
        return ComponentCheck(
            component="cache",
            status=CheckStatus.WARN,
            latency_ms=latency,
            output="Cache returned an unexpected check value",
        )
    return ComponentCheck(
        component="cache",
        status=CheckStatus.PASS,
        latency_ms=latency,
        observed_value=latency,
        observed_unit="ms",
        output=f"Cache responsive in {latency}ms",
    )


async def run_checks(runtime: CacheRuntime) -> HealthResponse:
    notes: list[str] = []
    database, cache = await asyncio.gather(
        check_database(runtime, notes),
        check_cache(runtime, notes),
    )
    overall = max((database.status, cache.status), key=_SEVERITY.__getitem__)
    return HealthResponse(
        status=overall,
        service=settings.app_name,
        time=datetime.now(UTC),
        checks={"database": database, "cache": cache},
        notes=notes,
    )


def _status_code(status: CheckStatus) -> int:
    return 503 if status == CheckStatus.FAIL else 200


@router.get("/health", response_model=HealthResponse)
async def health(runtime: CacheRuntimeDep) -> JSONResponse:
    """Full health report. Returns 503 when any component fails."""
    report = await run_checks(runtime)
    return JSONResponse(
        content=report.model_dump(mode="json"),
        status_code=_status_code(report.status),
    )


@router.head("/health", include_in_schema=False)
async def health_head(runtime: CacheRuntimeDep) -> Response:
    """Status-only check for load balancers."""
    report = await run_checks(runtime)
    return Response(status_code=_status_code(report.status))
