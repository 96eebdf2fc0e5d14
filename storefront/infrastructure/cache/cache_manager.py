"""
Caching layer for read-mostly catalog lookups

Entries are grouped by scope (the token context that produced them) so a
whole scope can be dropped when that context changes. Carts are never
cached here.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

from storefront.infrastructure.utilities.constants import CacheSettings

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """A memoised value with an absolute expiry time"""

    key: str
    value: Any
    expires_at: float
    created_at: float = field(default_factory=time.time)

    def is_expired(self, now: Optional[float] = None) -> bool:
        return self.expires_at <= (now if now is not None else time.time())


class InMemoryCache:
    """Simple in-memory cache with TTL support"""

    def __init__(self, default_ttl: float = CacheSettings.DEFAULT_TTL_SECONDS):
        self._cache: Dict[str, CacheEntry] = {}
        self._default_ttl = default_ttl
        self._stats = {
            "hits": 0,
            "misses": 0,
            "sets": 0,
            "deletes": 0,
        }

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache"""
        entry = self._cache.get(key)
        if entry is not None:
            if not entry.is_expired():
                self._stats["hits"] += 1
                return entry.value
            # Remove expired entry
            del self._cache[key]

        self._stats["misses"] += 1
        return None

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Set value in cache"""
        if ttl is None:
            ttl = self._default_ttl

        self._cache[key] = CacheEntry(key=key, value=value, expires_at=time.time() + ttl)
        self._stats["sets"] += 1

    def delete(self, key: str) -> bool:
        """Delete key from cache"""
        if key in self._cache:
            del self._cache[key]
            self._stats["deletes"] += 1
            return True
        return False

    def delete_prefix(self, prefix: str) -> int:
        """Delete every key starting with prefix and return the count removed"""
        doomed = [key for key in self._cache if key.startswith(prefix)]
        for key in doomed:
            del self._cache[key]
        self._stats["deletes"] += len(doomed)
        return len(doomed)

    def clear(self) -> None:
        """Clear all cache entries"""
        self._cache.clear()
        self._stats = {k: 0 for k in self._stats}

    def cleanup_expired(self) -> int:
        """Remove expired entries and return count removed"""
        current_time = time.time()
        expired_keys = [
            key for key, entry in self._cache.items() if entry.is_expired(current_time)
        ]

        for key in expired_keys:
            del self._cache[key]

        return len(expired_keys)

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics"""
        total_requests = self._stats["hits"] + self._stats["misses"]
        hit_rate = (
            (self._stats["hits"] / total_requests * 100) if total_requests > 0 else 0
        )

        return {
            **self._stats,
            "total_requests": total_requests,
            "hit_rate": round(hit_rate, 2),
            "cache_size": len(self._cache),
        }


class CacheManager:
    """Central cache manager for catalog data"""

    def __init__(self, default_ttl: float = CacheSettings.DEFAULT_TTL_SECONDS):
        self.catalog_cache = InMemoryCache(default_ttl=default_ttl)
        self._logger = logging.getLogger(self.__class__.__name__)

    @staticmethod
    def scoped_key(scope: str, key: str) -> str:
        return f"{scope}:{key}"

    def get(self, scope: str, key: str) -> Optional[Any]:
        return self.catalog_cache.get(self.scoped_key(scope, key))

    def set(self, scope: str, key: str, value: Any, ttl: Optional[float] = None) -> None:
        self.catalog_cache.set(self.scoped_key(scope, key), value, ttl)

    async def get_or_load(
        self,
        scope: str,
        key: str,
        loader: Callable[[], Awaitable[Any]],
        ttl: Optional[float] = None,
    ) -> Any:
        """Return the cached value or await loader() and cache its result"""
        cached_value = self.get(scope, key)
        if cached_value is not None:
            return cached_value

        value = await loader()
        if value is not None:
            self.set(scope, key, value, ttl)
        return value

    def invalidate_scope(self, scope: str) -> int:
        """Drop every entry produced under a token scope"""
        removed = self.catalog_cache.delete_prefix(f"{scope}:")
        if removed:
            self._logger.info("Invalidated %d cached entries in scope %s", removed, scope)
        return removed

    def get_all_stats(self) -> Dict[str, Dict[str, Any]]:
        """Get statistics for all caches"""
        return {"catalog": self.catalog_cache.get_stats()}
