"""Request and response models for the admin and health endpoints."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, model_validator

from siteindex.cache.schemas import CacheFamilyStatus, CoalescingStats

_MAX_PATTERN_LENGTH = 256


class HitStatsResponse(BaseModel):
    """Read-through hit and miss counters."""

    hits: dict[str, int]
    misses: dict[str, int]
    total_hits: int
    total_misses: int
    hit_rate: float


class CacheOverview(BaseModel):
    """Cache diagnostics for operators. Never includes cached values."""

    timestamp: datetime
    families: list[CacheFamilyStatus]
    cached_families: int
    hit_stats: HitStatsResponse
    item_lists: dict[str, int]
    coalescing: CoalescingStats
    warming: bool
    recommendation: str


class InvalidateRequest(BaseModel):
    """Exactly one of ``key``, ``keys``, ``pattern`` or ``counts``."""

    key: str | None = None
    keys: list[str] | None = None
    pattern: str | None = Field(default=None, max_length=_MAX_PATTERN_LENGTH)
    counts: bool = False

    @model_validator(mode="after")
    def _exactly_one_target(self) -> InvalidateRequest:
        targets = [self.key is not None, self.keys is not None, self.pattern is not None, self.counts]
        if sum(targets) != 1:
            raise ValueError("Specify exactly one of key, keys, pattern or counts")
        return self


class InvalidateResponse(BaseModel):
    """Outcome of an admin invalidation."""

    deleted: list[str]
    failed: list[str]
    deleted_count: int
    timestamp: datetime


class WarmupResponse(BaseModel):
    """Outcome of an on-demand warm-up."""

    success: bool
    duration_ms: float
    families: dict[str, bool]
    timestamp: datetime


class CheckStatus(str, Enum):
    """Health status of a component or of the service."""

    PASS = "pass"
    WARN = "warn"
    FAIL = "fail"


class ComponentCheck(BaseModel):
    """Result of one component check."""

    component: str
    status: CheckStatus
    latency_ms: float
    observed_value: Any = None
    observed_unit: str | None = None
    output: str | None = None


class HealthResponse(BaseModel):
    """Aggregated health report."""

    status: CheckStatus
    service: str
    time: datetime
    checks: dict[str, ComponentCheck]
    notes: list[str] = Field(default_factory=list)
