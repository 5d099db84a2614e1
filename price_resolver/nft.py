"""
NFT Floor Resolver - Collection floor prices in native units.

Pipelines:
- current: Reservoir -> Moralis -> OpenSea
- at date: Reservoir -> Moralis -> OpenSea (same-day sales)
           -> current floor, flagged is_fallback=True
- at instant: resolved at day granularity

Degraded history:
    When no provider has history for a day, today's floor stands in.
    Such points carry is_fallback=True and are cached under their own
    key with the short current TTL, so real history can replace them
    on the next request. A report whose call / 1d / 7d / 28d / current
    floors are all identical is showing this degradation.
"""

import asyncio
import logging
from datetime import date, datetime, timedelta
from typing import Optional

from core.clock import ensure_utc
from core.config import TtlPolicy
from price_adapters.models import AssetKind, NftCollectionAsset, PriceOperation, PricePoint
from price_cache.keys import CacheKey, CacheOperation
from price_cache.models import decode_series, encode_series
from price_resolver.base import BaseResolver


logger = logging.getLogger(__name__)


NFT_PIPELINE = ("reservoir", "moralis", "opensea")


class NftFloorResolver(BaseResolver):
    """Resolver for NftCollectionAsset references."""

    KIND = AssetKind.NFT
    PIPELINES = {
        PriceOperation.CURRENT: NFT_PIPELINE,
        PriceOperation.AT_DATE: NFT_PIPELINE,
    }

    FALLBACK_SOURCE = "nft"
    SERIES_SOURCE = "opensea"
    MIN_SERIES_DAYS = 1
    MAX_SERIES_DAYS = 365

    # Below this share of resolved days the sales-derived series wins
    SERIES_COVERAGE_THRESHOLD = 0.3

    def __init__(
        self,
        *args,
        ttl: Optional[TtlPolicy] = None,
        max_concurrency: int = 5,
        **kwargs,
    ) -> None:
        super().__init__(*args, **kwargs)
        self._ttl = ttl or TtlPolicy()
        self._max_concurrency = max(1, max_concurrency)

    # ─────────────────────────────────────────────────────────────
    # Floors
    # ─────────────────────────────────────────────────────────────

    async def historical_floor(self, asset: NftCollectionAsset, day: date) -> Optional[PricePoint]:
        """Real history only: no current-floor substitution."""
        if isinstance(day, datetime):
            day = ensure_utc(day).date()
        return await self.resolve(PriceOperation.AT_DATE, asset, day)

    async def price_at_date(self, asset: NftCollectionAsset, day: date) -> Optional[PricePoint]:
        """Floor for a day, falling back to the current floor."""
        if isinstance(day, datetime):
            day = ensure_utc(day).date()

        point = await self.historical_floor(asset, day)
        if point is not None:
            return point

        key = CacheKey(CacheOperation.FALLBACK, self.FALLBACK_SOURCE, asset.key, at=day)
        cached = await self._cache.get(key)
        if isinstance(cached, dict):
            point = PricePoint.create(
                cached.get("value"),
                as_of=self._now(),
                source=str(cached.get("source") or self.FALLBACK_SOURCE),
                cached=True,
                is_fallback=True,
            )
            if point is not None:
                logger.debug(f"[{self.name}] Cache hit {key}")
                return point

        current = await self.current_price(asset)
        if current is None:
            return None

        logger.info(
            f"[{self.name}] No history for {asset.key} on {day.isoformat()}, "
            f"using current floor from {current.source}"
        )
        await self._cache.set(
            key,
            {"value": current.value, "source": current.source},
            self._ttl.current,
        )
        return current.as_fallback()

    async def price_at_instant(self, asset: NftCollectionAsset, instant: datetime) -> Optional[PricePoint]:
        """Floors are daily; an instant resolves to its UTC day."""
        return await self.price_at_date(asset, ensure_utc(instant).date())

    # ─────────────────────────────────────────────────────────────
    # Series
    # ─────────────────────────────────────────────────────────────

    async def floor_series(self, asset: NftCollectionAsset, days: int) -> list[tuple[date, float]]:
        """
        Ascending (day, floor) pairs for the last `days` days up to today.

        Per-day history is resolved with bounded concurrency. When fewer
        than 30% of the days resolve, OpenSea's sales-derived series is
        used instead (if it has anything).

        Raises:
            ValueError: days outside 1..365
        """
        if not self.MIN_SERIES_DAYS <= days <= self.MAX_SERIES_DAYS:
            raise ValueError(
                f"days must be between {self.MIN_SERIES_DAYS} and {self.MAX_SERIES_DAYS}"
            )

        today = self._now().date()
        start = today - timedelta(days=days)

        key = CacheKey(
            CacheOperation.SERIES,
            self.FALLBACK_SOURCE,
            asset.key,
            at=today,
            interval=f"{days}d",
        )
        cached = await self._cache.get(key)
        if isinstance(cached, list):
            logger.debug(f"[{self.name}] Cache hit {key}")
            return decode_series(cached)

        series = await self._daily_history(asset, start, today)

        if len(series) < days * self.SERIES_COVERAGE_THRESHOLD:
            logger.info(
                f"[{self.name}] Limited history for {asset.key} "
                f"({len(series)} of {days} days), trying {self.SERIES_SOURCE} sales"
            )
            sales_series = await self._sales_series(asset, start, today)
            if sales_series:
                series = sales_series

        if series:
            await self._cache.set(key, encode_series(series), self._ttl.chart)
        return series

    async def _daily_history(
        self,
        asset: NftCollectionAsset,
        start: date,
        end: date,
    ) -> list[tuple[date, float]]:
        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def resolve_day(day: date) -> Optional[tuple[date, float]]:
            async with semaphore:
                point = await self.historical_floor(asset, day)
            return (day, point.value) if point is not None else None

        span = (end - start).days
        days = [start + timedelta(days=offset) for offset in range(span + 1)]
        results = await asyncio.gather(*(resolve_day(day) for day in days))
        return [item for item in results if item is not None]

    async def _sales_series(
        self,
        asset: NftCollectionAsset,
        start: date,
        end: date,
    ) -> list[tuple[date, float]]:
        adapter = self._registry.get(self.SERIES_SOURCE)
        if adapter is None:
            return []
        try:
            # Pagination may take several requests; allow one timeout per page
            series = await asyncio.wait_for(
                adapter.floor_series(asset, start, end),
                timeout=self._adapter_timeout * getattr(adapter, "SERIES_MAX_PAGES", 1),
            )
        except asyncio.TimeoutError:
            logger.warning(f"[{adapter.name}] Series timed out")
            self._log_incident(adapter.name, "timeout", "Series timed out", asset)
            return []
        return sorted(series, key=lambda item: item[0])
