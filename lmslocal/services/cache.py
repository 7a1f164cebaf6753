"""In-memory caching of computed standings with TTL support."""

from functools import lru_cache
from typing import Any, Optional
from cachetools import TTLCache
import threading

from lmslocal.config import get_settings


class CacheService:
    """Thread-safe in-memory cache for read models.

    Entries are keyed by "<competition_id>:<detail>" so everything cached for
    a competition can be dropped at once when its picks or results change.
    """

    def __init__(self, ttl: Optional[int] = None) -> None:
        """Initialize cache stores.

        Args:
            ttl: Entry lifetime in seconds (defaults to STANDINGS_CACHE_TTL)
        """
        if ttl is None:
            ttl = get_settings().STANDINGS_CACHE_TTL

        self._standings_cache: TTLCache = TTLCache(maxsize=500, ttl=ttl)
        self._statistics_cache: TTLCache = TTLCache(maxsize=1000, ttl=ttl)

        self._lock = threading.RLock()

    def _get_cache(self, cache_type: str) -> TTLCache:
        """Get the appropriate cache based on type."""
        caches = {
            "standings": self._standings_cache,
            "statistics": self._statistics_cache,
        }
        return caches.get(cache_type, self._standings_cache)

    @staticmethod
    def key(competition_id: int, detail: Any = "") -> str:
        return f"{competition_id}:{detail}"

    def get(self, key: str, cache_type: str = "standings") -> Optional[Any]:
        """Get a value from the cache.

        Returns:
            Cached value or None if not found/expired
        """
        with self._lock:
            return self._get_cache(cache_type).get(key)

    def set(self, key: str, value: Any, cache_type: str = "standings") -> None:
        with self._lock:
            self._get_cache(cache_type)[key] = value

    def invalidate_competition(self, competition_id: int) -> int:
        """Drop every entry cached for a competition.

        Returns:
            Number of entries removed
        """
        prefix = f"{competition_id}:"
        removed = 0
        with self._lock:
            for cache in (self._standings_cache, self._statistics_cache):
                for key in [k for k in list(cache.keys()) if k.startswith(prefix)]:
                    cache.pop(key, None)
                    removed += 1
        return removed

    def clear(self) -> None:
        with self._lock:
            self._standings_cache.clear()
            self._statistics_cache.clear()

    def stats(self) -> dict[str, dict[str, int]]:
        """Get cache statistics."""
        with self._lock:
            return {
                "standings": {
                    "size": len(self._standings_cache),
                    "maxsize": self._standings_cache.maxsize,
                },
                "statistics": {
                    "size": len(self._statistics_cache),
                    "maxsize": self._statistics_cache.maxsize,
                },
            }


@lru_cache
def get_cache_service() -> CacheService:
    """Get the global cache service instance."""
    return CacheService()
