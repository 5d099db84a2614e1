"""
Coin Resolver - Layer-1 coins addressed by CoinGecko id.

Pipelines:
- current: DefiLlama (coingecko:<id>)
- at instant: CoinGecko -> DefiLlama
- at date: DefiLlama

Also serves charting series from CoinGecko's market_chart/range.
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from core.clock import ensure_utc, to_unix_seconds
from core.config import TtlPolicy
from price_adapters.base import from_unix_seconds
from price_adapters.models import AssetKind, CoinAsset, PriceOperation, coerce_price
from price_cache.keys import CacheKey, CacheOperation
from price_resolver.base import BaseResolver


logger = logging.getLogger(__name__)


class CoinResolver(BaseResolver):
    """Resolver for CoinAsset references."""

    KIND = AssetKind.COIN
    PIPELINES = {
        PriceOperation.CURRENT: ("defillama",),
        PriceOperation.AT_INSTANT: ("coingecko", "defillama"),
        PriceOperation.AT_DATE: ("defillama",),
    }

    SERIES_SOURCE = "coingecko"

    def __init__(self, *args, ttl: Optional[TtlPolicy] = None, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._ttl = ttl or TtlPolicy()

    async def price_series(
        self,
        asset: CoinAsset,
        start: datetime,
        end: datetime,
    ) -> list[tuple[datetime, float]]:
        """
        Ascending (time, price) pairs between two instants.

        Returns [] when the range is empty or the provider has nothing.
        """
        start, end = ensure_utc(start), ensure_utc(end)
        if end <= start:
            return []

        adapter = self._registry.get(self.SERIES_SOURCE)
        if adapter is None:
            logger.warning(f"[{self.name}] No {self.SERIES_SOURCE} adapter registered")
            return []

        key = CacheKey(
            CacheOperation.SERIES,
            self.SERIES_SOURCE,
            asset.key,
            at=start,
            interval=str(to_unix_seconds(end)),
        )
        cached = await self._cache.get(key)
        if isinstance(cached, list):
            logger.debug(f"[{self.name}] Cache hit {key}")
            return decode_timed_series(cached)

        try:
            series = await asyncio.wait_for(
                adapter.price_series(asset, start, end),
                timeout=self._adapter_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"[{adapter.name}] Series timed out after {self._adapter_timeout}s")
            self._log_incident(adapter.name, "timeout", "Series timed out", asset)
            return []

        series = [(ts, price) for ts, price in series if coerce_price(price) is not None]
        if series:
            await self._cache.set(
                key,
                [[to_unix_seconds(ts), price] for ts, price in series],
                self._ttl.chart,
            )
        return series


def decode_timed_series(raw: list) -> list[tuple[datetime, float]]:
    """[[unix_seconds, price], ...] -> ascending (datetime, price) pairs."""
    series = []
    for item in raw:
        try:
            price = coerce_price(item[1])
            if price is not None:
                series.append((from_unix_seconds(float(item[0])), price))
        except (TypeError, ValueError, IndexError):
            continue
    series.sort(key=lambda p: p[0])
    return series
