"""TTL policy per key family."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from siteindex.cache.keys import KeyFamily

if TYPE_CHECKING:
    from siteindex.config import Settings


@dataclass(frozen=True)
class CachePolicy:
    """Seconds-to-live assigned to each key family at write time."""

    total_items: int = 30 * 60
    campus_counts: int = 30 * 60
    recent_items: int = 5 * 60
    health_count: int = 5 * 60
    dashboard_stats: int = 15 * 60

    @classmethod
    def from_settings(cls, settings: Settings) -> CachePolicy:
        return cls(
            total_items=settings.ttl_total_items,
            campus_counts=settings.ttl_campus_counts,
            recent_items=settings.ttl_recent_items,
            health_count=settings.ttl_health_count,
            dashboard_stats=settings.ttl_dashboard_stats,
        )

    def ttl_for(self, family: KeyFamily) -> int:
        return int(getattr(self, family.value))
