"""FastAPI application factory for the site index.

Creates the application with:
- Index item CRUD routes whose writes invalidate the count cache
- Admin dashboard and cache control routes
- Health and Prometheus metrics endpoints
- Lifecycle management for the database, Redis and cache runtime
- ORJSON for fast JSON serialization
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, cast

from fastapi import FastAPI
from fastapi.responses import ORJSONResponse
from starlette.types import ExceptionHandler

from siteindex.api.errors import (
    SiteIndexApiError,
    api_exception_handler,
    generic_exception_handler,
    invalidation_error_handler,
    item_not_found_handler,
)
from siteindex.api.middleware import RequestIdMiddleware
from siteindex.api.routers import admin, health, index_items
from siteindex.api.routers import metrics as metrics_router
from siteindex.cache import CacheRuntime, RedisKeyValueStore, close_redis, get_redis
from siteindex.cache.invalidation import InvalidationError
from siteindex.config import settings
from siteindex.observability import configure_logging
from siteindex.observability.metrics import MetricsMiddleware, get_metrics
from siteindex.persistence.db import close_db, get_session_factory, init_db
from siteindex.persistence.repositories import SqlItemCounter
from siteindex.services.index_items import ItemNotFoundError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifecycle.

    On startup:
    - Configure structured logging
    - Initialize Prometheus metrics
    - Initialize database connection pool and tables
    - Initialize Redis connection
    - Start the cache runtime (coalescer sweep, warm-up schedule)

    On shutdown:
    - Stop the cache runtime
    - Close Redis connection
    - Close database connections
    """
    configure_logging(
        json_format=settings.env != "dev",
        level=settings.log_level,
    )
    get_metrics()

    logger.info("Starting %s (%s)", settings.app_name, settings.env)
    if not settings.campuses:
        logger.warning("No campuses configured; per-campus counts will be empty")

    await init_db()
    session_factory = get_session_factory()
    store = RedisKeyValueStore(await get_redis())
    runtime = CacheRuntime.from_settings(store, SqlItemCounter(session_factory), settings)

    app.state.session_factory = session_factory
    app.state.cache_runtime = runtime
    runtime.start()
    logger.info("%s startup complete", settings.app_name)

    yield

    logger.info("Shutting down %s", settings.app_name)
    runtime.stop()
    await close_redis()
    await close_db()
    logger.info("%s shutdown complete", settings.app_name)


def create_app(*, use_lifespan: bool = True) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        use_lifespan: Connect to the database and Redis on startup. Tests
            pass False and install their own runtime on ``app.state``.
    """
    app = FastAPI(
        title="Site Index",
        description="Campus A-Z site index with cached counts",
        version="0.1.0",
        default_response_class=ORJSONResponse,
        lifespan=lifespan if use_lifespan else None,
    )

    # RequestIdMiddleware is innermost so metrics and handlers see the ID
    app.add_middleware(RequestIdMiddleware)
    if settings.enable_metrics:
        app.add_middleware(MetricsMiddleware)

    app.add_exception_handler(SiteIndexApiError, cast(ExceptionHandler, api_exception_handler))
    app.add_exception_handler(ItemNotFoundError, cast(ExceptionHandler, item_not_found_handler))
    app.add_exception_handler(InvalidationError, cast(ExceptionHandler, invalidation_error_handler))
    app.add_exception_handler(Exception, cast(ExceptionHandler, generic_exception_handler))

    app.include_router(health.router)
    if settings.enable_metrics:
        app.include_router(metrics_router.router)
    app.include_router(index_items.router)
    app.include_router(admin.router)

    return app
