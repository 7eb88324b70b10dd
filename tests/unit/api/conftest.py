"""Fixtures for API tests: the app without its lifespan, wired to fakes."""

from collections.abc import Iterator
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from siteindex.api.app import create_app
from siteindex.cache.runtime import CacheRuntime


@pytest.fixture
def item_service() -> MagicMock:
    service = MagicMock()
    for name in ("list_items", "search_items", "get_item", "create_item", "update_item", "delete_item"):
        setattr(service, name, AsyncMock())
    return service


@pytest.fixture
def app(runtime: CacheRuntime, item_service: MagicMock) -> FastAPI:
    app = create_app(use_lifespan=False)
    app.state.cache_runtime = runtime
    app.state.item_service = item_service
    return app


@pytest.fixture
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, raise_server_exceptions=False) as client:
        yield client
