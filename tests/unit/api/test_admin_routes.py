"""Tests for the admin dashboard and cache control endpoints."""

from fastapi.testclient import TestClient

from siteindex.cache.keys import CacheKeys
from siteindex.cache.runtime import CacheRuntime
from tests.conftest import CAMPUSES
from tests.fakes import FakeItemCounter, InMemoryKeyValueStore


class TestDashboard:
    """Test GET /api/admin/dashboard."""

    def test_returns_counts(self, client: TestClient) -> None:
        response = client.get("/api/admin/dashboard")

        assert response.status_code == 200
        body = response.json()
        assert body["total_items"] == 1524
        assert [c["campus"] for c in body["campus_counts"]] == CAMPUSES
        assert body["recent_items"] == 37
        assert "last_updated" in body

    def test_database_failure_is_500(
        self, client: TestClient, counter: FakeItemCounter
    ) -> None:
        """Relational errors become a generic error body."""
        counter.errors["*"] = RuntimeError("connection refused")

        response = client.get("/api/admin/dashboard")

        assert response.status_code == 500
        assert response.json()["code"] == "InternalServerError"
        assert "connection refused" not in response.text


class TestCacheOverview:
    """Test GET /api/admin/cache."""

    def test_cold_cache(self, client: TestClient) -> None:
        body = client.get("/api/admin/cache").json()

        assert body["cached_families"] == 0
        assert {f["family"] for f in body["families"]} == {
            "total_items",
            "campus_counts",
            "recent_items",
            "health_count",
            "dashboard_stats",
        }
        assert "cold" in body["recommendation"]
        assert body["warming"] is False
        assert body["item_lists"] == {"all": 0, "letter": 0, "campus": 0, "search": 0}

    def test_reports_presence_without_values(self, client: TestClient) -> None:
        """After a dashboard read four families are cached."""
        client.get("/api/admin/dashboard")

        body = client.get("/api/admin/cache").json()

        assert body["cached_families"] == 4
        cached = {f["key"] for f in body["families"] if f["cached"]}
        assert CacheKeys.health_record_count() not in cached
        assert "1524" not in str(body["families"])


class TestInvalidate:
    """Test POST /api/admin/cache/invalidate."""

    def test_counts_evicts_every_family(
        self, client: TestClient, store: InMemoryKeyValueStore
    ) -> None:
        client.get("/api/admin/dashboard")

        response = client.post("/api/admin/cache/invalidate", json={"counts": True})

        assert response.status_code == 200
        assert response.json()["deleted_count"] == 5
        assert store.data == {}

    def test_single_key(self, client: TestClient, store: InMemoryKeyValueStore) -> None:
        store.data[CacheKeys.total_items()] = 3

        response = client.post(
            "/api/admin/cache/invalidate", json={"key": CacheKeys.total_items()}
        )

        assert response.json()["deleted"] == [CacheKeys.total_items()]
        assert store.data == {}

    def test_pattern(self, client: TestClient, store: InMemoryKeyValueStore) -> None:
        store.data[CacheKeys.total_items()] = 3
        store.data[CacheKeys.dashboard_stats()] = {}

        response = client.post("/api/admin/cache/invalidate", json={"pattern": "cache:count:*"})

        assert response.json()["deleted"] == [CacheKeys.total_items()]
        assert list(store.data) == [CacheKeys.dashboard_stats()]

    def test_key_outside_namespace_is_rejected(
        self, client: TestClient, store: InMemoryKeyValueStore
    ) -> None:
        store.data["session:abc"] = 1

        response = client.post("/api/admin/cache/invalidate", json={"keys": ["session:abc"]})

        assert response.status_code == 400
        assert response.json()["code"] == "BadRequest"
        assert "session:abc" in store.data

    def test_key_without_qualifier_is_rejected(
        self, client: TestClient, store: InMemoryKeyValueStore
    ) -> None:
        store.data["cache:count"] = 1

        response = client.post("/api/admin/cache/invalidate", json={"key": "cache:count"})

        assert response.status_code == 400
        assert "cache:<domain>:<qualifier>" in response.json()["message"]
        assert "cache:count" in store.data

    def test_pattern_outside_namespace_is_rejected(self, client: TestClient) -> None:
        response = client.post("/api/admin/cache/invalidate", json={"pattern": "*"})
        assert response.status_code == 400

    def test_requires_exactly_one_target(self, client: TestClient) -> None:
        assert client.post("/api/admin/cache/invalidate", json={}).status_code == 422
        response = client.post(
            "/api/admin/cache/invalidate", json={"key": "cache:x:y", "counts": True}
        )
        assert response.status_code == 422

    def test_delete_failures_are_reported(
        self, client: TestClient, store: InMemoryKeyValueStore
    ) -> None:
        """A failing store still answers 200 with the failed keys."""
        store.fail("delete", CacheKeys.recent_items())

        body = client.post("/api/admin/cache/invalidate", json={"counts": True}).json()

        assert body["failed"] == [CacheKeys.recent_items()]
        assert body["deleted_count"] == 4


class TestWarmup:
    """Test POST /api/admin/cache/warmup."""

    def test_warmup_populates_counts(self, client: TestClient) -> None:
        response = client.post("/api/admin/cache/warmup")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["families"]["total_items"] is True
        assert body["families"]["campus_counts"] is True
        assert body["families"]["recent_items"] is True

    def test_failed_warmup_is_500(self, client: TestClient, counter: FakeItemCounter) -> None:
        counter.errors["*"] = RuntimeError("db down")

        response = client.post("/api/admin/cache/warmup")

        assert response.status_code == 500
        assert response.json()["code"] == "InternalServerError"

    def test_concurrent_warmup_is_409(self, client: TestClient, runtime: CacheRuntime) -> None:
        runtime.warmer._warming = True

        response = client.post("/api/admin/cache/warmup")

        assert response.status_code == 409
        assert response.json()["code"] == "Conflict"
