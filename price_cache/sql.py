"""
Price Cache - Shared SQL store.

============================================================
PURPOSE
============================================================
Persists cache entries in the price_cache table so several
processes share one cache. SQLAlchemy sessions are synchronous
and run in a worker thread via asyncio.to_thread.

Any SQLAlchemy failure is logged by the base class and treated
as a miss / dropped write.

============================================================
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Sequence, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.engine import Engine

from core.clock import ClockFactory, ClockProtocol
from core.exceptions import CacheBackendError
from database.engine import (
    create_all_tables,
    create_database_engine,
    create_session_factory,
    transaction_scope,
)
from price_cache.base import BaseCacheStore
from storage.models.price_cache import PriceCacheRecord


logger = logging.getLogger(__name__)


class SqlCacheStore(BaseCacheStore):
    """
    SQLAlchemy-backed expiring store.

    Usage:
        store = SqlCacheStore.from_url("sqlite:///prices.db")
        await store.set(key, 1.23, ttl_seconds=300)
    """

    backend_name = "sql"

    def __init__(
        self,
        engine: Engine,
        clock: Optional[ClockProtocol] = None,
        create_tables: bool = True,
        owns_engine: bool = False,
    ) -> None:
        super().__init__()
        self._engine = engine
        self._clock = clock
        self._owns_engine = owns_engine
        self._session_factory = create_session_factory(engine)

        if create_tables:
            try:
                create_all_tables(engine)
            except Exception as e:
                raise CacheBackendError(
                    f"Cannot prepare price_cache table: {e}",
                    backend=self.backend_name,
                    cause=e,
                ) from e

    @classmethod
    def from_url(
        cls,
        database_url: str,
        clock: Optional[ClockProtocol] = None,
    ) -> "SqlCacheStore":
        """Build a store with its own engine."""
        try:
            engine = create_database_engine(database_url)
        except Exception as e:
            raise CacheBackendError(
                f"Cannot create engine: {e}",
                backend=cls.backend_name,
                cause=e,
            ) from e
        return cls(engine, clock=clock, owns_engine=True)

    def _now_epoch(self) -> float:
        return (self._clock or ClockFactory.get_clock()).timestamp()

    # ─────────────────────────────────────────────────────────────
    # Synchronous primitives (worker thread)
    # ─────────────────────────────────────────────────────────────

    def _read_sync(self, keys: Sequence[str], now_epoch: float) -> Dict[str, Any]:
        with transaction_scope(self._session_factory) as session:
            rows = session.execute(
                select(PriceCacheRecord.cache_key, PriceCacheRecord.value)
                .where(PriceCacheRecord.cache_key.in_(list(keys)))
                .where(PriceCacheRecord.expires_at_epoch > now_epoch)
            ).all()
        return {row.cache_key: row.value for row in rows}

    def _write_sync(self, entries: Sequence[Tuple[str, Any, float]], now_epoch: float) -> None:
        now = (self._clock or ClockFactory.get_clock()).now()
        with transaction_scope(self._session_factory) as session:
            for key, value, ttl in entries:
                session.merge(PriceCacheRecord(
                    cache_key=key,
                    value=value,
                    created_at=now,
                    expires_at_epoch=now_epoch + ttl,
                ))

    def _count_sync(self, now_epoch: float) -> int:
        with transaction_scope(self._session_factory) as session:
            return session.execute(
                select(func.count())
                .select_from(PriceCacheRecord)
                .where(PriceCacheRecord.expires_at_epoch > now_epoch)
            ).scalar_one()

    def _purge_sync(self, now_epoch: float) -> int:
        with transaction_scope(self._session_factory) as session:
            result = session.execute(
                delete(PriceCacheRecord)
                .where(PriceCacheRecord.expires_at_epoch <= now_epoch)
            )
            return result.rowcount or 0

    # ─────────────────────────────────────────────────────────────
    # Async wrappers
    # ─────────────────────────────────────────────────────────────

    async def _read_many(self, keys: Sequence[str]) -> Dict[str, Any]:
        return await asyncio.to_thread(self._read_sync, keys, self._now_epoch())

    async def _write_many(self, entries: Sequence[Tuple[str, Any, float]]) -> None:
        await asyncio.to_thread(self._write_sync, entries, self._now_epoch())

    async def _count_entries(self) -> int:
        return await asyncio.to_thread(self._count_sync, self._now_epoch())

    async def purge_expired(self) -> int:
        """
        Delete rows that have already expired.

        Maintenance only; reads already ignore expired rows.
        """
        try:
            removed = await asyncio.to_thread(self._purge_sync, self._now_epoch())
        except Exception as e:
            logger.error(f"[cache:sql] Purge failed: {e}")
            return 0
        logger.info(f"[cache:sql] Purged {removed} expired entries")
        return removed

    async def close(self) -> None:
        if self._owns_engine:
            await asyncio.to_thread(self._engine.dispose)
