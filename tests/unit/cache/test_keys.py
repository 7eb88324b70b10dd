"""Tests for cache key generation."""

from siteindex.cache.keys import CacheKeys, KeyFamily
from siteindex.cache.policy import CachePolicy


class TestCacheKeys:
    """Test cache key generation."""

    def test_count_keys(self) -> None:
        """Count families live under cache:count."""
        assert CacheKeys.total_items() == "cache:count:total_items"
        assert CacheKeys.campus_counts() == "cache:count:campus_counts"
        assert CacheKeys.recent_items() == "cache:count:recent_items"

    def test_health_and_dashboard_keys(self) -> None:
        """Health and dashboard keys follow cache:<domain>:<qualifier>."""
        assert CacheKeys.health_record_count() == "cache:health:record_count"
        assert CacheKeys.dashboard_stats() == "cache:dashboard:stats"

    def test_stats_counter_keys(self) -> None:
        """Hit/miss hashes are namespaced too."""
        assert CacheKeys.stats_counter("hits") == "cache:stats:hits"
        assert CacheKeys.stats_counter("misses") == "cache:stats:misses"

    def test_every_family_has_a_distinct_key(self) -> None:
        """No two families share a key."""
        keys = [CacheKeys.for_family(family) for family in KeyFamily]
        assert len(set(keys)) == len(KeyFamily)

    def test_parse_valid_key(self) -> None:
        """Valid key is parsed correctly."""
        result = CacheKeys.parse_key("cache:dashboard:stats")
        assert result == {"prefix": "cache", "domain": "dashboard", "qualifier": "stats"}

    def test_parse_keeps_colons_in_qualifier(self) -> None:
        """Only the first two separators split the key."""
        result = CacheKeys.parse_key("cache:items:campus:Main:letter:A")
        assert result is not None
        assert result["qualifier"] == "campus:Main:letter:A"

    def test_parse_invalid_key_returns_none(self) -> None:
        """Invalid keys return None."""
        assert CacheKeys.parse_key("invalid") is None
        assert CacheKeys.parse_key("other:count:total_items") is None
        assert CacheKeys.parse_key("cache::total_items") is None

    def test_item_list_keys(self) -> None:
        """Listing keys encode whichever filters are set."""
        assert CacheKeys.item_list() == "cache:items:all"
        assert CacheKeys.item_list(letter="A") == "cache:items:letter:A"
        assert CacheKeys.item_list(campus="Main") == "cache:items:campus:Main"
        assert CacheKeys.item_list(campus="Main", letter="A") == "cache:items:campus:Main:letter:A"

    def test_item_search_keys(self) -> None:
        """Search keys ignore query case and default the campus to all."""
        assert CacheKeys.item_search("LiBrary") == "cache:items:search:library:all"
        assert CacheKeys.item_search("lib", "Main") == "cache:items:search:lib:Main"
        assert CacheKeys.item_search_pattern() == "cache:items:search:*"

    def test_item_lists_containing(self) -> None:
        """An item appears in the unfiltered, letter, campus and combined listings."""
        assert CacheKeys.item_lists_containing("A", "Main") == [
            "cache:items:all",
            "cache:items:letter:A",
            "cache:items:campus:Main",
            "cache:items:campus:Main:letter:A",
        ]

    def test_is_namespaced(self) -> None:
        """Only cache: keys and patterns are inside the namespace."""
        assert CacheKeys.is_namespaced("cache:count:*")
        assert not CacheKeys.is_namespaced("*")
        assert not CacheKeys.is_namespaced("session:abc")


class TestCachePolicy:
    """Test TTL policy per family."""

    def test_default_ttls(self) -> None:
        """Defaults are 30/30/5/5/15 minutes."""
        policy = CachePolicy()
        assert policy.ttl_for(KeyFamily.TOTAL_ITEMS) == 1800
        assert policy.ttl_for(KeyFamily.CAMPUS_COUNTS) == 1800
        assert policy.ttl_for(KeyFamily.RECENT_ITEMS) == 300
        assert policy.ttl_for(KeyFamily.HEALTH_COUNT) == 300
        assert policy.ttl_for(KeyFamily.DASHBOARD_STATS) == 900

    def test_from_settings(self) -> None:
        """TTLs are taken from settings."""
        from siteindex.config import Settings

        settings = Settings(ttl_total_items=60, ttl_dashboard_stats=30)
        policy = CachePolicy.from_settings(settings)
        assert policy.total_items == 60
        assert policy.dashboard_stats == 30
        assert policy.recent_items == 300
