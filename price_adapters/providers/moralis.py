"""
Moralis Price Adapter - NFT floors with ~30 days of daily history.

Requires MORALIS_API_KEY. Without a key the adapter reports itself
unsupported and never touches the network.
"""

import logging
from datetime import date
from typing import Any, Optional

from core.clock import from_iso8601, start_of_day
from price_adapters.base import BasePriceAdapter
from price_adapters.exceptions import NormalizationError
from price_adapters.models import (
    AdapterMetadata,
    AssetKind,
    AssetReference,
    Chain,
    HistoricalPrecision,
)


logger = logging.getLogger(__name__)


WEI_PER_ETHER = 10 ** 18

# Integer strings at least this long are wei amounts
WEI_STRING_MIN_LENGTH = 11


class MoralisAdapter(BasePriceAdapter):
    """Moralis NFT floor-price adapter."""

    BASE_URL = "https://deep-index.moralis.io/api/v2.2"

    CHAIN_IDS = {
        Chain.ETHEREUM: "0x1",
        Chain.BASE: "0x2105",
        Chain.BSC: "0x38",
    }

    HISTORY_DEPTH_DAYS = 30
    MAX_POINT_DISTANCE_SECONDS = 3 * 86400

    @property
    def name(self) -> str:
        """Unique identifier."""
        return "moralis"

    def metadata(self) -> AdapterMetadata:
        """Return adapter metadata."""
        return AdapterMetadata(
            name=self.name,
            display_name="Moralis NFT API",
            asset_kinds=[AssetKind.NFT],
            supported_chains=list(self.CHAIN_IDS.keys()),
            supports_current=True,
            historical_precision=HistoricalPrecision.DAY,
            history_depth_days=self.HISTORY_DEPTH_DAYS,
            requires_api_key=True,
            base_url=self.BASE_URL,
            current_ttl_seconds=self._ttl.current,
            historical_ttl_seconds=self._ttl.historical,
        )

    def _headers(self) -> dict[str, str]:
        return {
            "accept": "application/json",
            "X-API-Key": self._api_key or "",
        }

    async def _fetch_current(self, asset: AssetReference) -> Optional[float]:
        payload = await self._get_json(
            f"{self.BASE_URL}/nft/{asset.address}/floor-price",
            params={"chain": self.CHAIN_IDS[asset.chain]},
            headers=self._headers(),
        )
        if not isinstance(payload, dict):
            raise NormalizationError(
                "Expected an object",
                adapter_name=self.name,
                raw_data=payload,
            )
        raw = payload.get("floor_price") or payload.get("floorPrice") or payload.get("price")
        return parse_floor(raw)

    async def _fetch_at_date(self, asset: AssetReference, day: date) -> Optional[float]:
        age_days = (self._now().date() - day).days
        if age_days > self.HISTORY_DEPTH_DAYS + 3:
            logger.debug(f"[{self.name}] {day} is beyond history depth")
            return None

        payload = await self._get_json(
            f"{self.BASE_URL}/nft/{asset.address}/floor-price/historical",
            params={"chain": self.CHAIN_IDS[asset.chain], "interval": "1d"},
            headers=self._headers(),
        )
        points = payload.get("result") if isinstance(payload, dict) else None
        if not isinstance(points, list):
            return None

        target = start_of_day(day).timestamp()
        best: Optional[float] = None
        best_diff = float("inf")
        for item in points:
            if not isinstance(item, dict) or not item.get("timestamp"):
                continue
            try:
                ts = from_iso8601(str(item["timestamp"])).timestamp()
            except ValueError:
                continue
            diff = abs(ts - target)
            if diff <= self.MAX_POINT_DISTANCE_SECONDS and diff < best_diff:
                best_diff = diff
                best = parse_floor(item.get("floor_price"))
        return best


def parse_floor(raw: Any) -> Optional[float]:
    """
    Floor in native units.

    Moralis sometimes returns wei as a long integer string; those
    are divided by 1e18.
    """
    if isinstance(raw, str):
        text = raw.strip()
        if text.isdigit() and len(text) >= WEI_STRING_MIN_LENGTH:
            return BasePriceAdapter._price(int(text) / WEI_PER_ETHER)
        return BasePriceAdapter._price(text)
    return BasePriceAdapter._price(raw)
