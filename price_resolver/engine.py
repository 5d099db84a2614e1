"""
Price Engine - Facade dispatching asset references to resolvers.

    AssetReference
        ContractAsset       -> ContractTokenResolver
        CoinAsset           -> CoinResolver
        NftCollectionAsset  -> NftFloorResolver

One cache handle is created at startup and shared by every adapter
and resolver.
"""

import asyncio
import logging
from datetime import date, datetime
from typing import Any, Optional

import aiohttp

from core.clock import ClockFactory, ClockProtocol, ensure_utc
from core.config import EngineConfig, get_config
from performance_engine.models import Horizon, PriceSnapshotSet, Signal
from price_adapters.models import (
    AdapterIncident,
    AssetKind,
    AssetReference,
    CoinAsset,
    NftCollectionAsset,
    PricePoint,
)
from price_adapters.registry import AdapterRegistry, create_default_registry
from price_cache.base import BaseCacheStore
from price_cache.factory import create_cache_store
from price_resolver.base import DEFAULT_ADAPTER_TIMEOUT, BaseResolver
from price_resolver.coin import CoinResolver
from price_resolver.nft import NftFloorResolver
from price_resolver.token import ContractTokenResolver


logger = logging.getLogger(__name__)


class PriceEngine:
    """
    Entry point for price queries.

    Usage:
        engine = PriceEngine.from_config(get_config())
        point = await engine.current_price(CoinAsset("bitcoin"))
        ...
        await engine.close()
    """

    def __init__(
        self,
        registry: AdapterRegistry,
        cache: BaseCacheStore,
        config: Optional[EngineConfig] = None,
        clock: Optional[ClockProtocol] = None,
        owns_cache: bool = False,
    ) -> None:
        self._registry = registry
        self._cache = cache
        self._config = config or EngineConfig()
        self._clock = clock
        self._owns_cache = owns_cache

        timeout = self._config.providers.adapter_timeout_seconds or DEFAULT_ADAPTER_TIMEOUT
        common = {
            "cache": cache,
            "adapter_timeout": timeout,
            "clock": clock,
        }
        self._resolvers: dict[AssetKind, BaseResolver] = {
            AssetKind.CONTRACT: ContractTokenResolver(registry, **common),
            AssetKind.COIN: CoinResolver(registry, ttl=self._config.ttl, **common),
            AssetKind.NFT: NftFloorResolver(
                registry,
                ttl=self._config.ttl,
                max_concurrency=self._config.max_concurrent_resolutions,
                **common,
            ),
        }

    @classmethod
    def from_config(
        cls,
        config: Optional[EngineConfig] = None,
        cache: Optional[BaseCacheStore] = None,
        session: Optional[aiohttp.ClientSession] = None,
        clock: Optional[ClockProtocol] = None,
    ) -> "PriceEngine":
        """Engine with the default adapters, sharing one cache."""
        config = config or get_config()
        owns_cache = cache is None
        if cache is None:
            cache = create_cache_store(config, clock=clock)
        registry = create_default_registry(config, cache=cache, session=session, clock=clock)
        logger.info(
            f"Price engine ready: cache={cache.backend_name}, "
            f"adapters={', '.join(registry.list_adapters())}"
        )
        return cls(registry, cache, config=config, clock=clock, owns_cache=owns_cache)

    @property
    def registry(self) -> AdapterRegistry:
        return self._registry

    @property
    def cache(self) -> BaseCacheStore:
        return self._cache

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def clock(self) -> Optional[ClockProtocol]:
        return self._clock

    def _now(self) -> datetime:
        return (self._clock or ClockFactory.get_clock()).now()

    def resolver_for(self, asset: AssetReference) -> BaseResolver:
        return self._resolvers[asset.kind]

    # ─────────────────────────────────────────────────────────────
    # Point queries
    # ─────────────────────────────────────────────────────────────

    async def current_price(self, asset: AssetReference) -> Optional[PricePoint]:
        """Latest price (or NFT floor)."""
        return await self.resolver_for(asset).current_price(asset)

    async def price_at_date(self, asset: AssetReference, day: date) -> Optional[PricePoint]:
        """Price for a UTC calendar day."""
        return await self.resolver_for(asset).price_at_date(asset, day)

    async def price_at_instant(self, asset: AssetReference, instant: datetime) -> Optional[PricePoint]:
        """Price at an instant; NFT floors resolve at day granularity."""
        return await self.resolver_for(asset).price_at_instant(asset, instant)

    # ─────────────────────────────────────────────────────────────
    # Series
    # ─────────────────────────────────────────────────────────────

    async def nft_floor_series(self, asset: NftCollectionAsset, days: int) -> list[tuple[date, float]]:
        """Ascending daily floors for the last `days` days (1..365)."""
        resolver = self._resolvers[AssetKind.NFT]
        return await resolver.floor_series(asset, days)

    async def coin_price_series(
        self,
        asset: CoinAsset,
        start: datetime,
        end: datetime,
    ) -> list[tuple[datetime, float]]:
        """Ascending (time, price) pairs between two instants."""
        resolver = self._resolvers[AssetKind.COIN]
        return await resolver.price_series(asset, start, end)

    # ─────────────────────────────────────────────────────────────
    # Snapshots
    # ─────────────────────────────────────────────────────────────

    async def snapshot_set(
        self,
        asset: AssetReference,
        called_at: datetime,
        now: Optional[datetime] = None,
    ) -> PriceSnapshotSet:
        """
        Prices needed to score a call made at called_at.

        Horizon prices are only requested once the horizon has passed;
        the current price is always requested.
        """
        called_at = ensure_utc(called_at)
        now = ensure_utc(now) if now is not None else self._now()
        elapsed = now - called_at

        async def price_after(horizon: Horizon) -> Optional[PricePoint]:
            if elapsed < horizon.duration:
                return None
            return await self.price_at_instant(asset, called_at + horizon.duration)

        call, d1, d7, d28, current = await asyncio.gather(
            self.price_at_instant(asset, called_at),
            price_after(Horizon.D1),
            price_after(Horizon.D7),
            price_after(Horizon.D28),
            self.current_price(asset),
        )
        return PriceSnapshotSet(
            call_price=_value(call),
            price_1d=_value(d1),
            price_7d=_value(d7),
            price_28d=_value(d28),
            current_price=_value(current),
        )

    async def snapshot_for_signal(self, signal: Signal, now: Optional[datetime] = None) -> PriceSnapshotSet:
        if signal.asset is None:
            return PriceSnapshotSet()
        return await self.snapshot_set(signal.asset, signal.called_at, now)

    # ─────────────────────────────────────────────────────────────
    # Observability
    # ─────────────────────────────────────────────────────────────

    def on_fallback(self, callback) -> None:
        """Register callback(adapter_name, asset_key) on every resolver."""
        for resolver in self._resolvers.values():
            resolver.on_fallback(callback)

    def on_incident(self, callback) -> None:
        """Register an incident callback on every resolver."""
        for resolver in self._resolvers.values():
            resolver.on_incident(callback)

    def get_incidents(self, limit: int = 50) -> list[AdapterIncident]:
        """Adapter and resolver incidents, newest last."""
        incidents = list(self._registry.get_incidents(limit))
        for resolver in self._resolvers.values():
            incidents.extend(resolver.get_incidents(limit))
        incidents.sort(key=lambda i: i.timestamp)
        return incidents[-limit:]

    async def get_stats(self) -> dict[str, Any]:
        return {
            "cache": await self._cache.stats(),
            "adapters": self._registry.get_stats(),
        }

    # ─────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────

    async def close(self) -> None:
        """Close adapters, and the cache when this engine created it."""
        await self._registry.close()
        if self._owns_cache:
            await self._cache.close()

    async def __aenter__(self) -> "PriceEngine":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


def _value(point: Optional[PricePoint]) -> Optional[float]:
    return point.value if point is not None else None
