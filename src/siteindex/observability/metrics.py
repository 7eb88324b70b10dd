"""Prometheus metrics for the site index.

Provides metrics collection and exposure:
- HTTP request metrics (latency, count)
- Cache metrics (hits, misses, store errors) per key family
- Request coalescing metrics (leaders, followers, in-flight entries)
- Invalidation failures

Usage:
    from siteindex.observability.metrics import get_metrics

    metrics = get_metrics()
    if metrics.cache_hits_total:
        metrics.cache_hits_total.labels(family="total_items").inc()
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

from prometheus_client import REGISTRY, Counter, Gauge, Histogram
from prometheus_client import generate_latest as prometheus_generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from siteindex.config import settings

if TYPE_CHECKING:
    from starlette.types import ASGIApp

logger = logging.getLogger(__name__)


@dataclass
class MetricsRegistry:
    """Registry for Prometheus metrics."""

    # HTTP metrics
    http_requests_total: Any = None
    http_request_duration_seconds: Any = None

    # Cache metrics
    cache_hits_total: Any = None
    cache_misses_total: Any = None
    cache_errors_total: Any = None
    cache_invalidation_failures_total: Any = None

    # Coalescing metrics
    coalesced_requests_total: Any = None
    coalescing_entries: Any = None

    # Internal state
    _initialized: bool = field(default=False, repr=False)

    def initialize(self) -> None:
        """Initialize Prometheus metrics."""
        if self._initialized:
            return

        if not settings.enable_metrics:
            logger.info("Metrics are disabled")
            self._initialized = True
            return

        self.http_requests_total = Counter(
            "siteindex_http_requests_total",
            "Total HTTP requests",
            ["method", "path", "status"],
        )

        self.http_request_duration_seconds = Histogram(
            "siteindex_http_request_duration_seconds",
            "HTTP request latency in seconds",
            ["method", "path"],
            buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
        )

        self.cache_hits_total = Counter(
            "siteindex_cache_hits_total",
            "Count cache hits",
            ["family"],
        )

        self.cache_misses_total = Counter(
            "siteindex_cache_misses_total",
            "Count cache misses",
            ["family"],
        )

        self.cache_errors_total = Counter(
            "siteindex_cache_errors_total",
            "Key-value store failures swallowed by the cache layer",
            ["operation"],
        )

        self.cache_invalidation_failures_total = Counter(
            "siteindex_cache_invalidation_failures_total",
            "Cache keys that could not be evicted",
        )

        self.coalesced_requests_total = Counter(
            "siteindex_coalesced_requests_total",
            "Coalesced requests by role (leader ran the query, follower shared it)",
            ["role"],
        )

        self.coalescing_entries = Gauge(
            "siteindex_coalescing_entries",
            "Entries currently held by the request coalescer",
        )

        self._initialized = True
        logger.info("Prometheus metrics initialized")

    def generate_latest(self) -> bytes:
        """Generate Prometheus metrics in exposition format."""
        if not settings.enable_metrics:
            return b"# Metrics disabled\n"
        return prometheus_generate_latest(REGISTRY)


# Global metrics registry
metrics_registry = MetricsRegistry()


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry.

    Initializes metrics on first access.
    """
    if not metrics_registry._initialized:
        metrics_registry.initialize()
    return metrics_registry


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware for HTTP request metrics."""

    def __init__(self, app: "ASGIApp") -> None:
        super().__init__(app)
        self.metrics = get_metrics()

    async def dispatch(self, request: Request, call_next: Callable[[Request], Any]) -> Response:
        """Record metrics for HTTP requests."""
        if request.url.path in ("/health", "/metrics"):
            return await call_next(request)

        method = request.method
        path = self._normalize_path(request.url.path)
        start_time = time.perf_counter()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            duration = time.perf_counter() - start_time

            if self.metrics.http_requests_total:
                self.metrics.http_requests_total.labels(
                    method=method,
                    path=path,
                    status=status_code,
                ).inc()

            if self.metrics.http_request_duration_seconds:
                self.metrics.http_request_duration_seconds.labels(
                    method=method,
                    path=path,
                ).observe(duration)

    def _normalize_path(self, path: str) -> str:
        """Collapse numeric path segments to keep label cardinality bounded."""
        parts = [":id" if part.isdigit() else part for part in path.split("/")]
        return "/".join(parts)
