"""
Price Cache - In-process memory store.

Per-process cache guarded by a threading.Lock so the same store
can be shared by the event loop and worker threads.
"""

import logging
import threading
from datetime import timedelta
from typing import Any, Dict, Optional, Sequence, Tuple

from core.clock import ClockFactory, ClockProtocol
from price_cache.base import BaseCacheStore
from price_cache.models import CacheEntry


logger = logging.getLogger(__name__)


class InMemoryCacheStore(BaseCacheStore):
    """
    Dictionary-backed expiring store.

    When the store grows past max_entries, expired entries are
    removed first; if still full, the entries closest to expiry
    are dropped.
    """

    backend_name = "memory"

    def __init__(
        self,
        max_entries: int = 10_000,
        clock: Optional[ClockProtocol] = None,
    ) -> None:
        super().__init__()
        self._max_entries = max(1, max_entries)
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def _now(self):
        return (self._clock or ClockFactory.get_clock()).now()

    async def _read_many(self, keys: Sequence[str]) -> Dict[str, Any]:
        now = self._now()
        found: Dict[str, Any] = {}
        with self._lock:
            for key in keys:
                entry = self._entries.get(key)
                if entry is None:
                    continue
                if entry.is_expired(now):
                    del self._entries[key]
                    continue
                found[key] = entry.value
        return found

    async def _write_many(self, entries: Sequence[Tuple[str, Any, float]]) -> None:
        now = self._now()
        with self._lock:
            for key, value, ttl in entries:
                self._entries[key] = CacheEntry(
                    key=key,
                    value=value,
                    created_at=now,
                    expires_at=now + timedelta(seconds=ttl),
                )
            if len(self._entries) > self._max_entries:
                self._evict(now)

    def _evict(self, now) -> None:
        """Caller holds the lock."""
        expired = [k for k, e in self._entries.items() if e.is_expired(now)]
        for key in expired:
            del self._entries[key]

        overflow = len(self._entries) - self._max_entries
        if overflow > 0:
            by_expiry = sorted(self._entries.values(), key=lambda e: e.expires_at)
            for entry in by_expiry[:overflow]:
                del self._entries[entry.key]

        logger.debug(
            f"[cache:memory] Evicted {len(expired)} expired, "
            f"{max(overflow, 0)} live entries"
        )

    async def _count_entries(self) -> int:
        now = self._now()
        with self._lock:
            return sum(1 for e in self._entries.values() if not e.is_expired(now))

    def clear(self) -> None:
        """Drop everything (tests only)."""
        with self._lock:
            self._entries.clear()
