"""
CoinGecko Price Adapter - Coin-metadata feed.

Used for Layer-1 coins at a precise instant. Current prices for
coins are served by the aggregated feed, so this adapter does not
answer them.

Free tier limits:
- roughly 10-30 calls/minute without a key
- pro host and key parameter when COINGECKO_API_KEY is set
"""

import logging
from datetime import datetime
from typing import Any, Optional

from core.clock import ensure_utc, to_unix_seconds
from price_adapters.base import BasePriceAdapter, from_unix_seconds
from price_adapters.exceptions import NormalizationError, PriceAdapterError
from price_adapters.models import (
    AdapterMetadata,
    AssetKind,
    AssetReference,
    CoinAsset,
    HistoricalPrecision,
)


logger = logging.getLogger(__name__)


class CoinGeckoAdapter(BasePriceAdapter):
    """CoinGecko market_chart/range adapter."""

    FREE_BASE_URL = "https://api.coingecko.com/api/v3"
    PRO_BASE_URL = "https://pro-api.coingecko.com/api/v3"

    # Half-width of the window searched around an instant
    INSTANT_WINDOW_SECONDS = 1800

    # Request spacing the provider tolerates
    FREE_MIN_INTERVAL_SECONDS = 2.0
    KEYED_MIN_INTERVAL_SECONDS = 0.2

    @property
    def name(self) -> str:
        """Unique identifier."""
        return "coingecko"

    @property
    def base_url(self) -> str:
        return self.PRO_BASE_URL if self.has_api_key else self.FREE_BASE_URL

    @property
    def min_request_interval(self) -> float:
        if self.has_api_key:
            return self.KEYED_MIN_INTERVAL_SECONDS
        return self.FREE_MIN_INTERVAL_SECONDS

    def metadata(self) -> AdapterMetadata:
        """Return adapter metadata."""
        return AdapterMetadata(
            name=self.name,
            display_name="CoinGecko",
            asset_kinds=[AssetKind.COIN],
            supports_current=False,
            historical_precision=HistoricalPrecision.INSTANT,
            requires_api_key=False,
            rate_limit_per_second=1.0 / self.min_request_interval,
            base_url=self.base_url,
            current_ttl_seconds=self._ttl.current,
            historical_ttl_seconds=self._ttl.historical,
        )

    def _params(self, **params: Any) -> dict[str, Any]:
        params = {k: str(v) for k, v in params.items()}
        if self._api_key:
            params["x_cg_pro_api_key"] = self._api_key
        return params

    async def _market_chart_range(
        self,
        coin_id: str,
        start_ts: int,
        end_ts: int,
    ) -> list[tuple[float, Optional[float]]]:
        """[(unix_seconds, price or None)] for the window."""
        payload = await self._get_json(
            f"{self.base_url}/coins/{coin_id}/market_chart/range",
            params=self._params(vs_currency="usd", **{"from": start_ts, "to": end_ts}),
        )
        if not isinstance(payload, dict):
            raise NormalizationError(
                "Expected an object",
                adapter_name=self.name,
                raw_data=payload,
            )
        prices = payload.get("prices") or []
        points = []
        for item in prices:
            if not isinstance(item, (list, tuple)) or len(item) < 2:
                continue
            try:
                ts_seconds = float(item[0]) / 1000.0
            except (TypeError, ValueError):
                continue
            points.append((ts_seconds, self._price(item[1])))
        return points

    async def _fetch_at_instant(self, asset: AssetReference, instant: datetime) -> Optional[float]:
        if not isinstance(asset, CoinAsset):
            return None
        target = to_unix_seconds(instant)
        points = await self._market_chart_range(
            asset.provider_id,
            target - self.INSTANT_WINDOW_SECONDS,
            target + self.INSTANT_WINDOW_SECONDS,
        )
        return nearest_price(points, target, self.INSTANT_WINDOW_SECONDS)

    async def price_series(
        self,
        asset: CoinAsset,
        start: datetime,
        end: datetime,
    ) -> list[tuple[datetime, float]]:
        """
        Ascending (time, price) pairs between two instants.

        Fail-soft: errors give an empty list.
        """
        start, end = ensure_utc(start), ensure_utc(end)
        if end <= start:
            return []
        try:
            points = await self._market_chart_range(
                asset.provider_id,
                to_unix_seconds(start),
                to_unix_seconds(end),
            )
        except PriceAdapterError as e:
            self._on_error(e, asset)
            return []
        except Exception as e:
            self._on_error(
                PriceAdapterError(f"Unexpected error: {e}", adapter_name=self.name, original_error=e),
                asset,
            )
            return []
        self._on_success()
        series = [
            (from_unix_seconds(ts), price)
            for ts, price in sorted(points, key=lambda p: p[0])
            if price is not None
        ]
        return series


def nearest_price(
    points: list[tuple[float, Optional[float]]],
    target: float,
    max_distance: Optional[float] = None,
) -> Optional[float]:
    """Valid price whose timestamp is closest to target."""
    best: Optional[float] = None
    best_diff = float("inf")
    for ts, price in points:
        if price is None:
            continue
        diff = abs(ts - target)
        if max_distance is not None and diff > max_distance:
            continue
        if diff < best_diff:
            best_diff = diff
            best = price
    return best

