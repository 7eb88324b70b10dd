"""Observability module for the site index.

Provides metrics and structured logging:
- Prometheus metrics for HTTP, cache and request coalescing
- JSON structured logging with request IDs
"""

from siteindex.observability.logging import (
    configure_logging,
    request_id_var,
)
from siteindex.observability.metrics import (
    MetricsMiddleware,
    get_metrics,
    metrics_registry,
)

__all__ = [
    # Logging
    "configure_logging",
    "request_id_var",
    # Metrics
    "metrics_registry",
    "get_metrics",
    "MetricsMiddleware",
]
