"""
Cache infrastructure module
"""

from .cache_manager import CacheEntry, CacheManager, InMemoryCache

__all__ = [
    "CacheEntry",
    "CacheManager",
    "InMemoryCache",
]
