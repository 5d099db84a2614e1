"""
Price Cache - Disabled store.

Same interface, permanent miss. Used when caching is turned off
or the configured backend cannot be initialised.
"""

from typing import Any, Dict, Sequence, Tuple

from price_cache.base import BaseCacheStore


class DisabledCacheStore(BaseCacheStore):
    """Every read misses, every write is dropped."""

    backend_name = "disabled"

    async def _read_many(self, keys: Sequence[str]) -> Dict[str, Any]:
        return {}

    async def _write_many(self, entries: Sequence[Tuple[str, Any, float]]) -> None:
        return None

    async def _count_entries(self) -> int:
        return 0
