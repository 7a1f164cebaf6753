"""Tests for the in-memory read-model cache."""

import time

from lmslocal.services.cache import CacheService, get_cache_service


class TestCacheService:
    """Tests for CacheService."""

    def test_get_and_set(self):
        cache = CacheService(ttl=60)
        cache.set(cache.key(1, "standings"), {'players': []})

        assert cache.get("1:standings") == {'players': []}
        assert cache.get("2:standings") is None

    def test_cache_types_are_separate(self):
        cache = CacheService(ttl=60)
        cache.set("1:round-5", "stats", cache_type="statistics")

        assert cache.get("1:round-5") is None
        assert cache.get("1:round-5", cache_type="statistics") == "stats"

    def test_invalidate_competition(self):
        cache = CacheService(ttl=60)
        cache.set("1:standings", "a")
        cache.set("1:round-5", "b", cache_type="statistics")
        cache.set("11:standings", "c")

        removed = cache.invalidate_competition(1)

        assert removed == 2
        assert cache.get("1:standings") is None
        assert cache.get("11:standings") == "c"

    def test_entries_expire(self):
        cache = CacheService(ttl=1)
        cache.set("1:standings", "a")

        time.sleep(1.1)

        assert cache.get("1:standings") is None

    def test_stats_and_clear(self):
        cache = CacheService(ttl=60)
        cache.set("1:standings", "a")

        assert cache.stats()['standings']['size'] == 1
        cache.clear()
        assert cache.stats()['standings']['size'] == 0

    def test_global_instance(self):
        assert get_cache_service() is get_cache_service()
