"""
OpenSea Price Adapter - NFT floors on the broadest set of chains.

Requires OPENSEA_API_KEY.

OpenSea addresses collections by slug, so every lookup first maps
chain + contract to a slug (memoized in the shared cache).
Historical floors are approximated from sales: the cheapest sale
of a day stands in for that day's floor.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from core.clock import start_of_day, to_unix_seconds
from price_adapters.base import BasePriceAdapter, from_unix_seconds
from price_adapters.exceptions import NormalizationError, PriceAdapterError
from price_adapters.models import (
    AdapterMetadata,
    AssetKind,
    AssetReference,
    Chain,
    HistoricalPrecision,
    NftCollectionAsset,
    PriceOperation,
)
from price_cache.keys import CacheKey, CacheOperation
from price_cache.models import decode_series, encode_series


logger = logging.getLogger(__name__)


class OpenSeaAdapter(BasePriceAdapter):
    """OpenSea API v2 adapter."""

    BASE_URL = "https://api.opensea.io/api/v2"

    # Chain -> OpenSea chain identifier
    CHAIN_NAMES = {
        Chain.ETHEREUM: "ethereum",
        Chain.BASE: "base",
        Chain.BSC: "bsc",
        Chain.POLYGON: "matic",
        Chain.ARBITRUM: "arbitrum",
        Chain.OPTIMISM: "optimism",
        Chain.AVALANCHE: "avalanche",
        Chain.HYPERLIQUID: "hyperevm",
        Chain.SOLANA: "solana",
    }

    DAY_EVENTS_LIMIT = 50
    SERIES_PAGE_LIMIT = 200
    SERIES_MAX_PAGES = 50

    @property
    def name(self) -> str:
        """Unique identifier."""
        return "opensea"

    def metadata(self) -> AdapterMetadata:
        """Return adapter metadata."""
        return AdapterMetadata(
            name=self.name,
            display_name="OpenSea",
            asset_kinds=[AssetKind.NFT],
            supported_chains=list(self.CHAIN_NAMES.keys()),
            supports_current=True,
            historical_precision=HistoricalPrecision.DAY,
            requires_api_key=True,
            base_url=self.BASE_URL,
            current_ttl_seconds=self._ttl.current,
            historical_ttl_seconds=self._ttl.historical,
        )

    def _headers(self) -> dict[str, str]:
        return {
            "accept": "application/json",
            "x-api-key": self._api_key or "",
        }

    # ─────────────────────────────────────────────────────────────
    # Slug lookup
    # ─────────────────────────────────────────────────────────────

    async def collection_slug(self, asset: AssetReference) -> Optional[str]:
        """Collection slug for a contract, memoized in the shared cache."""
        memo_key = CacheKey(CacheOperation.SLUG, self.name, asset.key)
        cached = await self._memo_get(memo_key)
        if isinstance(cached, str) and cached:
            return cached

        chain_name = self.CHAIN_NAMES[asset.chain]
        payload = await self._get_json(
            f"{self.BASE_URL}/chain/{chain_name}/contract/{asset.address}",
            headers=self._headers(),
        )
        slug = payload.get("collection") if isinstance(payload, dict) else None
        if not isinstance(slug, str) or not slug:
            logger.info(f"[{self.name}] No collection found for {asset.key}")
            return None

        await self._memo_set(memo_key, slug, self._ttl.slug)
        return slug

    # ─────────────────────────────────────────────────────────────
    # Price hooks
    # ─────────────────────────────────────────────────────────────

    async def _fetch_current(self, asset: AssetReference) -> Optional[float]:
        slug = await self.collection_slug(asset)
        if slug is None:
            return None
        payload = await self._get_json(
            f"{self.BASE_URL}/collections/{slug}/stats",
            headers=self._headers(),
        )
        total = payload.get("total") if isinstance(payload, dict) else None
        if not isinstance(total, dict):
            raise NormalizationError(
                "Missing 'total' stats",
                adapter_name=self.name,
                raw_data=payload,
                field_name="total",
            )
        return self._price(total.get("floor_price"))

    async def _fetch_at_date(self, asset: AssetReference, day: date) -> Optional[float]:
        slug = await self.collection_slug(asset)
        if slug is None:
            return None
        after = to_unix_seconds(start_of_day(day))
        before = to_unix_seconds(start_of_day(day + timedelta(days=1)))

        payload = await self._get_json(
            f"{self.BASE_URL}/events/collection/{slug}",
            params={
                "event_type": "sale",
                "after": str(after),
                "before": str(before),
                "limit": str(self.DAY_EVENTS_LIMIT),
            },
            headers=self._headers(),
        )
        events = payload.get("asset_events") if isinstance(payload, dict) else None
        prices = [p for p in (sale_price(e) for e in (events or [])) if p is not None]
        return min(prices) if prices else None

    # ─────────────────────────────────────────────────────────────
    # Sales-derived series
    # ─────────────────────────────────────────────────────────────

    async def floor_series(
        self,
        asset: NftCollectionAsset,
        start: date,
        end: date,
    ) -> list[tuple[date, float]]:
        """
        Ascending (day, cheapest sale) pairs between two dates.

        Paginates sale events up to SERIES_MAX_PAGES pages. Never
        raises: failures give whatever was collected, or [].
        """
        if not self.supports(asset, PriceOperation.AT_DATE):
            return []

        memo_key = CacheKey(
            CacheOperation.SERIES,
            self.name,
            asset.key,
            at=start,
            interval=end.isoformat(),
        )
        cached = await self._memo_get(memo_key)
        if isinstance(cached, list):
            return decode_series(cached)

        try:
            slug = await self.collection_slug(asset)
        except PriceAdapterError as e:
            self._on_error(e, asset)
            return []
        if slug is None:
            return []

        after = to_unix_seconds(start_of_day(start))
        before = to_unix_seconds(datetime.combine(end, time(23, 59, 59), tzinfo=timezone.utc))

        minimum_by_day: dict[date, float] = {}
        cursor: Optional[str] = None
        pages = 0

        while pages < self.SERIES_MAX_PAGES:
            params = {
                "event_type": "sale",
                "after": str(after),
                "before": str(before),
                "limit": str(self.SERIES_PAGE_LIMIT),
            }
            if cursor:
                params["next"] = cursor
            try:
                payload = await self._get_json(
                    f"{self.BASE_URL}/events/collection/{slug}",
                    params=params,
                    headers=self._headers(),
                )
            except PriceAdapterError as e:
                logger.warning(f"[{self.name}] Series page {pages + 1} failed: {e}")
                self._on_error(e, asset)
                break

            pages += 1
            events = payload.get("asset_events") if isinstance(payload, dict) else None
            events = events or []
            for event in events:
                price = sale_price(event)
                stamp = event.get("event_timestamp") if isinstance(event, dict) else None
                if price is None or stamp is None:
                    continue
                try:
                    day = from_unix_seconds(float(stamp)).date()
                except (TypeError, ValueError, OverflowError):
                    continue
                if day not in minimum_by_day or price < minimum_by_day[day]:
                    minimum_by_day[day] = price

            cursor = payload.get("next") if isinstance(payload, dict) else None
            if not cursor or not events:
                break

        if pages >= self.SERIES_MAX_PAGES:
            logger.info(f"[{self.name}] Series stopped at page limit for {asset.key}")

        series = sorted(minimum_by_day.items())
        if series:
            await self._memo_set(memo_key, encode_series(series), self._ttl.chart)
        return series


def sale_price(event: Any) -> Optional[float]:
    """payment.quantity / 10**payment.decimals, positive only."""
    if not isinstance(event, dict):
        return None
    payment = event.get("payment")
    if not isinstance(payment, dict):
        return None
    quantity = payment.get("quantity")
    decimals = payment.get("decimals")
    if quantity is None or decimals is None:
        return None
    try:
        value = Decimal(str(quantity)) / (Decimal(10) ** int(decimals))
    except (InvalidOperation, TypeError, ValueError):
        return None
    return BasePriceAdapter._price(value)

