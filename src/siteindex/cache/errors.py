"""Reporting for best-effort cache operations.

Cache store failures never reach callers. Instead each failure is handed to
an error hook together with the operation and key. The default hook logs a
warning; tests inject a recorder to assert that a failure was reported
without raising.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

from siteindex.observability.metrics import get_metrics

logger = logging.getLogger(__name__)

CacheOperation = Literal["get", "set", "delete", "exists", "hincrby", "scan"]

CacheErrorHook = Callable[["CacheError"], None]


@dataclass(frozen=True)
class CacheError:
    """A swallowed key-value store failure."""

    operation: CacheOperation
    key: str
    error: BaseException

    def __str__(self) -> str:
        return f"cache {self.operation} failed for {self.key}: {self.error}"


def log_cache_error(failure: CacheError) -> None:
    """Default error hook: log at WARNING."""
    logger.warning(
        "Cache %s failed for key %s: %s",
        failure.operation,
        failure.key,
        failure.error,
        extra={"cache_operation": failure.operation, "cache_key": failure.key},
    )


def report_cache_error(
    hook: CacheErrorHook,
    operation: CacheOperation,
    key: str,
    error: BaseException,
) -> CacheError:
    """Count the failure and pass it to the hook."""
    failure = CacheError(operation=operation, key=key, error=error)
    metrics = get_metrics()
    if metrics.cache_errors_total:
        metrics.cache_errors_total.labels(operation=operation).inc()
    hook(failure)
    return failure
