"""Shared FastAPI dependencies.

The lifespan stores the process-wide cache runtime and session factory on
``app.state``; routers reach them through these dependencies so tests can
install fakes on the state without touching module globals.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from siteindex.cache.runtime import CacheRuntime
from siteindex.services.index_items import IndexItemService


def get_cache_runtime(request: Request) -> CacheRuntime:
    """The cache runtime owned by the application."""
    runtime: CacheRuntime = request.app.state.cache_runtime
    return runtime


def get_item_service(request: Request) -> IndexItemService:
    """Index item service bound to the application's session factory."""
    service: IndexItemService | None = getattr(request.app.state, "item_service", None)
    if service is None:
        service = IndexItemService(request.app.state.session_factory, get_cache_runtime(request))
        request.app.state.item_service = service
    return service


CacheRuntimeDep = Annotated[CacheRuntime, Depends(get_cache_runtime)]
ItemServiceDep = Annotated[IndexItemService, Depends(get_item_service)]
