"""
Reservoir Price Adapter - NFT floors with long daily history.

Floors are in the chain's native currency. The API key is
optional and raises rate limits when present.
"""

import logging
from datetime import date, datetime, time, timezone
from typing import Any, Optional

from core.clock import to_unix_seconds
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


class ReservoirAdapter(BasePriceAdapter):
    """Reservoir collections adapter."""

    # Chain -> API host
    CHAIN_HOSTS = {
        Chain.ETHEREUM: "https://api.reservoir.tools",
        Chain.BASE: "https://api-base.reservoir.tools",
        Chain.BSC: "https://api-bsc.reservoir.tools",
        Chain.POLYGON: "https://api-polygon.reservoir.tools",
        Chain.ARBITRUM: "https://api-arbitrum.reservoir.tools",
        Chain.OPTIMISM: "https://api-optimism.reservoir.tools",
    }

    @property
    def name(self) -> str:
        """Unique identifier."""
        return "reservoir"

    def metadata(self) -> AdapterMetadata:
        """Return adapter metadata."""
        return AdapterMetadata(
            name=self.name,
            display_name="Reservoir",
            asset_kinds=[AssetKind.NFT],
            supported_chains=list(self.CHAIN_HOSTS.keys()),
            supports_current=True,
            historical_precision=HistoricalPrecision.DAY,
            requires_api_key=False,
            base_url=self.CHAIN_HOSTS[Chain.ETHEREUM],
            current_ttl_seconds=self._ttl.current,
            historical_ttl_seconds=self._ttl.historical,
        )

    def _headers(self) -> dict[str, str]:
        headers = {"accept": "application/json"}
        if self._api_key:
            headers["x-api-key"] = self._api_key
        return headers

    async def _fetch_current(self, asset: AssetReference) -> Optional[float]:
        host = self.CHAIN_HOSTS[asset.chain]
        payload = await self._get_json(
            f"{host}/collections/v7",
            params={"id": asset.address, "includeFloorAsk": "true"},
            headers=self._headers(),
        )
        collections = _dig(payload, "collections") or []
        if not collections:
            return None
        return self._price(_dig(collections[0], "floorAsk", "price", "amount", "native"))

    async def _fetch_at_date(self, asset: AssetReference, day: date) -> Optional[float]:
        host = self.CHAIN_HOSTS[asset.chain]
        start_ts = to_unix_seconds(datetime.combine(day, time.min, tzinfo=timezone.utc))
        end_ts = to_unix_seconds(datetime.combine(day, time(23, 59, 59), tzinfo=timezone.utc))

        payload = await self._get_json(
            f"{host}/collections/stats/history/v1",
            params={
                "collection": asset.address,
                "startTimestamp": str(start_ts),
                "endTimestamp": str(end_ts),
                "period": "1d",
            },
            headers=self._headers(),
        )
        stats = _dig(payload, "stats")
        if not isinstance(stats, list) or not stats:
            return None
        return closest_stat_floor(stats, end_ts)


def _dig(data: Any, *path: str) -> Any:
    """Nested dict lookup that tolerates missing levels."""
    current = data
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def closest_stat_floor(stats: list[Any], target_ts: int) -> Optional[float]:
    """
    Floor of the stat nearest target_ts: floorSale, else floorAsk.

    Raises:
        NormalizationError: if no stat carries a timestamp
    """
    dated = []
    for stat in stats:
        if not isinstance(stat, dict):
            continue
        try:
            dated.append((abs(float(stat.get("timestamp")) - target_ts), stat))
        except (TypeError, ValueError):
            continue
    if not dated:
        raise NormalizationError(
            "No timestamped stats",
            adapter_name="reservoir",
            raw_data=stats,
            field_name="stats[].timestamp",
        )

    _, closest = min(dated, key=lambda item: item[0])
    floor = BasePriceAdapter._price(_dig(closest, "floorSale", "price"))
    if floor is None:
        floor = BasePriceAdapter._price(_dig(closest, "floorAsk", "price"))
    return floor
