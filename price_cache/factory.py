"""
Price Cache - Store factory.

Builds the configured backend once at startup. Anything that
goes wrong here degrades to the disabled store with a warning.
"""

import logging
from typing import Optional

from core.clock import ClockProtocol
from core.config import CacheSettings, EngineConfig
from core.exceptions import CacheBackendError
from price_cache.base import BaseCacheStore
from price_cache.disabled import DisabledCacheStore
from price_cache.memory import InMemoryCacheStore


logger = logging.getLogger(__name__)


def create_cache_store(
    config: Optional[EngineConfig] = None,
    clock: Optional[ClockProtocol] = None,
) -> BaseCacheStore:
    """
    Create the cache store described by config.cache.

    Returns:
        InMemoryCacheStore, SqlCacheStore or DisabledCacheStore
    """
    settings = config.cache if config else CacheSettings()

    if not settings.enabled or settings.backend == "disabled":
        logger.warning("Price cache disabled; every lookup goes to providers")
        return DisabledCacheStore()

    if settings.backend == "memory":
        logger.info(f"Using in-memory price cache (max_entries={settings.max_entries})")
        return InMemoryCacheStore(max_entries=settings.max_entries, clock=clock)

    if settings.backend == "sql":
        if not settings.database_url:
            logger.warning("SQL price cache requested without a database URL, cache disabled")
            return DisabledCacheStore()
        try:
            # Imported lazily so memory-only deployments never touch SQLAlchemy
            from price_cache.sql import SqlCacheStore
            store = SqlCacheStore.from_url(settings.database_url, clock=clock)
        except CacheBackendError as e:
            logger.warning(f"SQL price cache unavailable, cache disabled: {e}")
            return DisabledCacheStore()
        logger.info("Using shared SQL price cache")
        return store

    logger.warning(f"Unknown cache backend '{settings.backend}', cache disabled")
    return DisabledCacheStore()
