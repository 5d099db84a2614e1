"""
Price Resolver - Shared cache-check / adapter-call / write-through loop.

Every resolver follows the same algorithm:
1. Walk the static adapter list for the requested operation
2. Skip adapters that cannot answer (kind, chain, API key)
3. Cache hit under the adapter's key -> return it (cached=True)
4. Cache miss -> call the adapter under its own timeout
5. Success -> write through with the adapter's TTL and return
6. Absence, failure or timeout -> next adapter
7. Exhausted -> None

A single adapter is never retried within one call and adapters are
never raced against each other.
"""

import asyncio
import logging
from datetime import date, datetime
from typing import Any, Callable, Optional, Union

from core.clock import ClockFactory, ClockProtocol, ensure_utc, start_of_day
from price_adapters.models import (
    AdapterIncident,
    AssetKind,
    AssetReference,
    PriceOperation,
    PricePoint,
)
from price_adapters.registry import AdapterRegistry
from price_cache.base import BaseCacheStore
from price_cache.disabled import DisabledCacheStore
from price_cache.keys import CacheKey


logger = logging.getLogger(__name__)


DEFAULT_ADAPTER_TIMEOUT = 10.0

When = Optional[Union[date, datetime]]


class BaseResolver:
    """
    Fallback resolver for one asset kind.

    Subclasses declare KIND and PIPELINES (operation -> ordered
    adapter names). The order is fixed; adapter health never
    reorders it.
    """

    KIND: AssetKind
    PIPELINES: dict[PriceOperation, tuple[str, ...]] = {}

    def __init__(
        self,
        registry: AdapterRegistry,
        cache: Optional[BaseCacheStore] = None,
        adapter_timeout: float = DEFAULT_ADAPTER_TIMEOUT,
        clock: Optional[ClockProtocol] = None,
        max_incidents: int = 500,
    ) -> None:
        self._registry = registry
        self._cache = cache if cache is not None else DisabledCacheStore()
        self._adapter_timeout = adapter_timeout
        self._clock = clock

        # Incident tracking
        self._incidents: list[AdapterIncident] = []
        self._max_incidents = max_incidents

        # Event callbacks
        self._on_incident_callbacks: list[Callable[[AdapterIncident], None]] = []
        self._on_fallback_callbacks: list[Callable[[str, str], None]] = []

    @property
    def name(self) -> str:
        return self.KIND.value

    @property
    def cache(self) -> BaseCacheStore:
        return self._cache

    def _now(self) -> datetime:
        return (self._clock or ClockFactory.get_clock()).now()

    def pipeline(self, operation: PriceOperation) -> list[Any]:
        """Registered adapters for an operation, in priority order."""
        return self._registry.resolve_order(list(self.PIPELINES.get(operation, ())))

    # ─────────────────────────────────────────────────────────────
    # Public operations
    # ─────────────────────────────────────────────────────────────

    async def current_price(self, asset: AssetReference) -> Optional[PricePoint]:
        """Latest price through the CURRENT pipeline."""
        return await self.resolve(PriceOperation.CURRENT, asset)

    async def price_at_date(self, asset: AssetReference, day: date) -> Optional[PricePoint]:
        """Price for a UTC calendar day through the AT_DATE pipeline."""
        if isinstance(day, datetime):
            day = ensure_utc(day).date()
        return await self.resolve(PriceOperation.AT_DATE, asset, day)

    async def price_at_instant(self, asset: AssetReference, instant: datetime) -> Optional[PricePoint]:
        """Price nearest to an instant through the AT_INSTANT pipeline."""
        return await self.resolve(PriceOperation.AT_INSTANT, asset, ensure_utc(instant))

    async def resolve(
        self,
        operation: PriceOperation,
        asset: AssetReference,
        at: When = None,
    ) -> Optional[PricePoint]:
        """
        Run the fallback loop for one query.

        Returns:
            PricePoint or None when every adapter came up empty
        """
        if asset.kind != self.KIND:
            raise ValueError(
                f"{self.__class__.__name__} cannot resolve {asset.kind.value} assets"
            )

        tried: list[str] = []
        for adapter in self.pipeline(operation):
            if not adapter.supports(asset, operation):
                continue

            key = self._cache_key(adapter.name, operation, asset, at)
            cached = await self._cache.get(key)
            if cached is not None:
                point = PricePoint.create(
                    cached,
                    as_of=self._as_of(operation, at),
                    source=adapter.name,
                    cached=True,
                )
                if point is not None:
                    logger.debug(f"[{adapter.name}] Cache hit {key}")
                    return point
                logger.warning(f"[{adapter.name}] Ignoring invalid cached value under {key}")

            point = await self._call(adapter, operation, asset, at)
            if point is not None:
                await self._cache.set(key, point.value, self._ttl_for(adapter, operation))
                if tried:
                    logger.info(
                        f"[{self.name}] {operation.value} {asset.key} resolved by "
                        f"{adapter.name} after {', '.join(tried)}"
                    )
                return point

            tried.append(adapter.name)
            self._notify_fallback(adapter.name, asset.key)

        logger.warning(
            f"[{self.name}] No {operation.value} price for {asset.key} "
            f"(tried: {', '.join(tried) or 'none'})"
        )
        return None

    # ─────────────────────────────────────────────────────────────
    # Adapter calls
    # ─────────────────────────────────────────────────────────────

    async def _call(
        self,
        adapter: Any,
        operation: PriceOperation,
        asset: AssetReference,
        at: When,
    ) -> Optional[PricePoint]:
        """One adapter call under its own timeout; failures become None."""
        try:
            result = await asyncio.wait_for(
                self._invoke(adapter, operation, asset, at),
                timeout=self._adapter_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"[{adapter.name}] {operation.value} timed out after {self._adapter_timeout}s"
            )
            self._log_incident(
                adapter.name,
                "timeout",
                f"Timed out after {self._adapter_timeout}s",
                asset,
                operation,
            )
            return None
        except Exception as e:
            logger.warning(f"[{adapter.name}] {operation.value} error: {e}")
            self._log_incident(adapter.name, "resolver_error", str(e), asset, operation)
            return None

        return self._validate(adapter.name, result, operation, at)

    async def _invoke(
        self,
        adapter: Any,
        operation: PriceOperation,
        asset: AssetReference,
        at: When,
    ) -> Any:
        if operation == PriceOperation.CURRENT:
            return await adapter.current_price(asset)
        if operation == PriceOperation.AT_DATE:
            return await adapter.price_at_date(asset, at)
        return await adapter.price_at_instant(asset, at)

    def _validate(
        self,
        source: str,
        result: Any,
        operation: PriceOperation,
        at: When,
    ) -> Optional[PricePoint]:
        """Re-check positivity so a misbehaving adapter never reaches cache or caller."""
        if result is None:
            return None
        if isinstance(result, PricePoint):
            point = PricePoint.create(
                result.value,
                as_of=result.as_of,
                source=result.source,
                is_fallback=result.is_fallback,
            )
        else:
            point = PricePoint.create(result, as_of=self._as_of(operation, at), source=source)
        if point is None:
            logger.warning(f"[{source}] Discarded invalid {operation.value} price {result!r}")
        return point

    # ─────────────────────────────────────────────────────────────
    # Keys and TTLs
    # ─────────────────────────────────────────────────────────────

    def _cache_key(
        self,
        source: str,
        operation: PriceOperation,
        asset: AssetReference,
        at: When,
    ) -> CacheKey:
        if operation == PriceOperation.CURRENT:
            return CacheKey.current(source, asset.key)
        if operation == PriceOperation.AT_DATE:
            return CacheKey.at_date(source, asset.key, at)
        return CacheKey.at_instant(source, asset.key, at)

    def _as_of(self, operation: PriceOperation, at: When) -> datetime:
        if operation == PriceOperation.CURRENT or at is None:
            return self._now()
        if isinstance(at, datetime):
            return ensure_utc(at)
        return start_of_day(at)

    @staticmethod
    def _ttl_for(adapter: Any, operation: PriceOperation) -> float:
        meta = adapter.metadata()
        if operation == PriceOperation.CURRENT:
            return meta.current_ttl_seconds
        return meta.historical_ttl_seconds

    # ─────────────────────────────────────────────────────────────
    # Incidents and callbacks
    # ─────────────────────────────────────────────────────────────

    def _log_incident(
        self,
        adapter_name: str,
        incident_type: str,
        message: str,
        asset: Optional[AssetReference] = None,
        operation: Optional[PriceOperation] = None,
    ) -> None:
        """Log an incident."""
        incident = AdapterIncident(
            adapter_name=adapter_name,
            incident_type=incident_type,
            timestamp=self._now(),
            error_message=message,
            asset_key=asset.key if asset is not None else None,
            operation=operation.value if operation is not None else None,
        )

        self._incidents.append(incident)

        if len(self._incidents) > self._max_incidents:
            self._incidents = self._incidents[-self._max_incidents:]

        for callback in self._on_incident_callbacks:
            try:
                callback(incident)
            except Exception as e:
                logger.error(f"Incident callback error: {e}")

    def _notify_fallback(self, adapter_name: str, asset_key: str) -> None:
        for callback in self._on_fallback_callbacks:
            try:
                callback(adapter_name, asset_key)
            except Exception as e:
                logger.error(f"Fallback callback error: {e}")

    def on_incident(self, callback: Callable[[AdapterIncident], None]) -> None:
        """Register callback for incidents."""
        self._on_incident_callbacks.append(callback)

    def on_fallback(self, callback: Callable[[str, str], None]) -> None:
        """Register callback(adapter_name, asset_key) fired when an adapter comes up empty."""
        self._on_fallback_callbacks.append(callback)

    def get_incidents(self, limit: int = 50) -> list[AdapterIncident]:
        """Get recent incidents."""
        return self._incidents[-limit:]

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(kind={self.KIND.value})>"
