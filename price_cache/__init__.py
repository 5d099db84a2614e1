"""
Price Cache Package - Expiring key -> value store.

Backends:
- InMemoryCacheStore: per-process, lock-guarded
- SqlCacheStore: shared price_cache table (SQLAlchemy)
- DisabledCacheStore: permanent miss

Quick Start:
    from price_cache import CacheKey, create_cache_store

    cache = create_cache_store(get_config())
    key = CacheKey.current("defillama", "ethereum:0xabc")
    await cache.set(key, 1.23, ttl_seconds=300)
    value = await cache.get(key)
"""

from price_cache.base import BaseCacheStore
from price_cache.disabled import DisabledCacheStore
from price_cache.factory import create_cache_store
from price_cache.keys import CacheKey, CacheOperation, render_key
from price_cache.memory import InMemoryCacheStore
from price_cache.models import CacheEntry


__all__ = [
    "BaseCacheStore",
    "CacheEntry",
    "CacheKey",
    "CacheOperation",
    "DisabledCacheStore",
    "InMemoryCacheStore",
    "create_cache_store",
    "render_key",
]
