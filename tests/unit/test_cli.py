"""Tests for the CLI commands."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import pytest
import uvicorn
from typer.testing import CliRunner

from siteindex.cache.keys import CacheKeys
from siteindex.cache.runtime import CacheRuntime
from siteindex.cli import app
from siteindex.cli import cache_cmd
from siteindex.config import settings
from tests.fakes import FakeItemCounter, InMemoryKeyValueStore

runner = CliRunner()


@pytest.fixture
def cli_runtime(runtime: CacheRuntime, monkeypatch: pytest.MonkeyPatch) -> CacheRuntime:
    @asynccontextmanager
    async def open_runtime() -> AsyncIterator[CacheRuntime]:
        yield runtime

    monkeypatch.setattr(cache_cmd, "open_runtime", open_runtime)
    return runtime


class TestCacheCommands:
    """Test siteindex cache ..."""

    def test_stats(self, cli_runtime: CacheRuntime, store: InMemoryKeyValueStore) -> None:
        store.data[CacheKeys.total_items()] = 5

        result = runner.invoke(app, ["cache", "stats"])

        assert result.exit_code == 0
        assert "cache:count:total_items" in result.output
        assert "Hit rate" in result.output

    def test_warm(self, cli_runtime: CacheRuntime, store: InMemoryKeyValueStore) -> None:
        result = runner.invoke(app, ["cache", "warm"])

        assert result.exit_code == 0
        assert CacheKeys.total_items() in store.data

    def test_warm_failure_exits_1(self, cli_runtime: CacheRuntime, counter: FakeItemCounter) -> None:
        counter.errors["*"] = RuntimeError("db down")
        assert runner.invoke(app, ["cache", "warm"]).exit_code == 1

    def test_invalidate_counts(self, cli_runtime: CacheRuntime, store: InMemoryKeyValueStore) -> None:
        store.data[CacheKeys.total_items()] = 5

        result = runner.invoke(app, ["cache", "invalidate", "--counts"])

        assert result.exit_code == 0
        assert store.data == {}

    def test_invalidate_requires_one_target(self, cli_runtime: CacheRuntime) -> None:
        assert runner.invoke(app, ["cache", "invalidate"]).exit_code == 2
        assert runner.invoke(app, ["cache", "invalidate", "--counts", "-p", "cache:*"]).exit_code == 2

    def test_invalidate_rejects_foreign_keys(
        self, cli_runtime: CacheRuntime, store: InMemoryKeyValueStore
    ) -> None:
        store.data["session:1"] = 1
        assert runner.invoke(app, ["cache", "invalidate", "session:1"]).exit_code == 2
        assert "session:1" in store.data

    def test_invalidate_bad_pattern(self, cli_runtime: CacheRuntime) -> None:
        assert runner.invoke(app, ["cache", "invalidate", "--pattern", "*"]).exit_code == 2

    def test_invalidate_failure_exits_1(
        self, cli_runtime: CacheRuntime, store: InMemoryKeyValueStore
    ) -> None:
        store.fail("delete")
        assert runner.invoke(app, ["cache", "invalidate", "--counts"]).exit_code == 1

    def test_invalidate_rejects_keys_without_qualifier(
        self, cli_runtime: CacheRuntime, store: InMemoryKeyValueStore
    ) -> None:
        result = runner.invoke(app, ["cache", "invalidate", "cache:count"])

        assert result.exit_code == 2
        assert "cache:<domain>:<qualifier>" in result.output


class TestServeCommand:
    """Test siteindex serve."""

    def test_runs_app_factory(self, monkeypatch: pytest.MonkeyPatch) -> None:
        calls: list[dict[str, Any]] = []
        monkeypatch.setattr(uvicorn, "run", lambda app, **kwargs: calls.append({"app": app, **kwargs}))

        result = runner.invoke(app, ["serve", "--port", "9001", "--workers", "3"])

        assert result.exit_code == 0
        assert "Listening on" in result.output and ":9001 with 3 worker(s)" in result.output
        assert calls == [
            {
                "app": "siteindex.api.app:create_app",
                "factory": True,
                "host": settings.host,
                "port": 9001,
                "reload": False,
                "workers": 3,
                "log_level": "info",
            }
        ]

    def test_reload_forces_single_worker(self, monkeypatch: pytest.MonkeyPatch) -> None:
        calls: list[dict[str, Any]] = []
        monkeypatch.setattr(uvicorn, "run", lambda app, **kwargs: calls.append(kwargs))

        runner.invoke(app, ["serve", "--reload", "--workers", "4"])

        assert calls[0]["workers"] == 1
