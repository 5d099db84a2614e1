"""
Price Cache - Abstract store.

All stores share one contract:
- A miss is indistinguishable from never-set and expired
- ttl_seconds <= 0 stores nothing
- Last write wins per key
- Backend failures degrade to miss / no-op and are never raised
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Optional, Sequence, Tuple

from price_cache.keys import KeyLike


logger = logging.getLogger(__name__)


CacheWrite = Tuple[KeyLike, Any, float]


class BaseCacheStore(ABC):
    """
    Abstract expiring key -> value store.

    Subclasses implement the _read/_write primitives; the public
    coroutines handle hit/miss accounting and TTL rules.
    """

    backend_name = "abstract"

    def __init__(self) -> None:
        self._hits = 0
        self._misses = 0

    # ─────────────────────────────────────────────────────────────
    # Primitives
    # ─────────────────────────────────────────────────────────────

    @abstractmethod
    async def _read_many(self, keys: Sequence[str]) -> Dict[str, Any]:
        """Unexpired values for the given rendered keys."""
        pass

    @abstractmethod
    async def _write_many(self, entries: Sequence[Tuple[str, Any, float]]) -> None:
        """Store rendered-key entries with positive TTLs."""
        pass

    @abstractmethod
    async def _count_entries(self) -> int:
        pass

    # ─────────────────────────────────────────────────────────────
    # Public API
    # ─────────────────────────────────────────────────────────────

    async def get(self, key: KeyLike) -> Optional[Any]:
        """Value for key, or None on miss."""
        found = await self.get_many([key])
        return found.get(key)

    async def set(self, key: KeyLike, value: Any, ttl_seconds: float) -> None:
        """Store value for ttl_seconds; non-positive TTL stores nothing."""
        await self.set_many([(key, value, ttl_seconds)])

    async def get_many(self, keys: Iterable[KeyLike]) -> Dict[KeyLike, Any]:
        """Partial map of hits; misses are omitted."""
        requested = list(keys)
        if not requested:
            return {}

        rendered = {str(k): k for k in requested}
        try:
            raw = await self._read_many(list(rendered))
        except Exception as e:
            logger.error(f"[cache:{self.backend_name}] Read failed: {e}")
            raw = {}

        result: Dict[KeyLike, Any] = {}
        for rendered_key, original in rendered.items():
            if rendered_key in raw and raw[rendered_key] is not None:
                result[original] = raw[rendered_key]

        self._hits += len(result)
        self._misses += len(rendered) - len(result)
        return result

    async def set_many(self, entries: Iterable[CacheWrite]) -> None:
        """Store several entries; entries with ttl <= 0 or None values are skipped."""
        writes = [
            (str(key), value, float(ttl))
            for key, value, ttl in entries
            if ttl is not None and ttl > 0 and value is not None
        ]
        if not writes:
            return
        try:
            await self._write_many(writes)
        except Exception as e:
            logger.error(f"[cache:{self.backend_name}] Write failed: {e}")

    async def stats(self) -> Dict[str, Any]:
        """Counters for monitoring."""
        try:
            entries = await self._count_entries()
        except Exception as e:
            logger.error(f"[cache:{self.backend_name}] Stats failed: {e}")
            entries = -1

        total = self._hits + self._misses
        hit_rate = (self._hits / total * 100) if total > 0 else 0

        return {
            "backend": self.backend_name,
            "entries": entries,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate_percent": round(hit_rate, 2),
        }

    async def close(self) -> None:
        """Release backend resources."""
        return None

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(backend={self.backend_name})>"
