"""Value types stored in, and reported by, the count cache."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class CampusCount(BaseModel):
    """Number of index items for one campus."""

    model_config = ConfigDict(extra="forbid")

    campus: str
    count: int = Field(ge=0)


class DashboardStats(BaseModel):
    """Dashboard snapshot assembled from independently cached counts."""

    model_config = ConfigDict(extra="forbid")

    total_items: int = Field(ge=0)
    campus_counts: list[CampusCount]
    recent_items: int = Field(ge=0)
    last_updated: datetime


class CacheFamilyStatus(BaseModel):
    """Whether a key family currently holds a value."""

    family: str
    key: str
    cached: bool


class HitStats(BaseModel):
    """Per-day read-through hit and miss counters."""

    hits: dict[str, int] = Field(default_factory=dict)
    misses: dict[str, int] = Field(default_factory=dict)

    @property
    def total_hits(self) -> int:
        return sum(self.hits.values())

    @property
    def total_misses(self) -> int:
        return sum(self.misses.values())

    @property
    def hit_rate(self) -> float:
        total = self.total_hits + self.total_misses
        return self.total_hits / total if total else 0.0


class CoalescingEntryInfo(BaseModel):
    """One in-flight or recently settled coalesced request."""

    key: str
    age_seconds: float
    settled: bool


class CoalescingStats(BaseModel):
    """Snapshot of the request coalescer's map."""

    active: int
    entries: list[CoalescingEntryInfo] = Field(default_factory=list)
