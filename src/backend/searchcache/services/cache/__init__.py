"""Cache stores for search results."""

from .store import (
    CacheEntry,
    CacheStore,
    InMemoryCacheStore,
    RedisCacheStore,
    create_cache_store,
)

__all__ = [
    "CacheEntry",
    "CacheStore",
    "InMemoryCacheStore",
    "RedisCacheStore",
    "create_cache_store",
]
