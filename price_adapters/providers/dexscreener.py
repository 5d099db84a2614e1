"""
DexScreener Price Adapter - DEX pair feed.

Fallback for newly launched tokens the aggregated feed does not
know yet. Current prices only: DexScreener has no historical
price endpoint.
"""

import logging
from typing import Any, Optional

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


class DexScreenerAdapter(BasePriceAdapter):
    """DexScreener token pairs adapter."""

    BASE_URL = "https://api.dexscreener.com/latest/dex"

    # Chain -> DexScreener chainId
    CHAIN_IDS = {
        Chain.ETHEREUM: "ethereum",
        Chain.BASE: "base",
        Chain.SOLANA: "solana",
        Chain.BSC: "bsc",
        Chain.POLYGON: "polygon",
        Chain.ARBITRUM: "arbitrum",
        Chain.OPTIMISM: "optimism",
        Chain.AVALANCHE: "avalanche",
        Chain.HYPERLIQUID: "hyperliquid",
        Chain.PLASMA: "plasma",
    }

    @property
    def name(self) -> str:
        """Unique identifier."""
        return "dexscreener"

    def metadata(self) -> AdapterMetadata:
        """Return adapter metadata."""
        return AdapterMetadata(
            name=self.name,
            display_name="DexScreener",
            asset_kinds=[AssetKind.CONTRACT],
            supported_chains=list(self.CHAIN_IDS.keys()),
            supports_current=True,
            historical_precision=HistoricalPrecision.NONE,
            requires_api_key=False,
            rate_limit_per_second=5.0,
            base_url=self.BASE_URL,
            current_ttl_seconds=self._ttl.dex,
            historical_ttl_seconds=self._ttl.historical,
        )

    async def _fetch_current(self, asset: AssetReference) -> Optional[float]:
        payload = await self._get_json(f"{self.BASE_URL}/tokens/{asset.address}")
        if not isinstance(payload, dict):
            raise NormalizationError(
                "Expected an object",
                adapter_name=self.name,
                raw_data=payload,
            )
        pairs = payload.get("pairs") or []
        return best_pair_price(pairs, self.CHAIN_IDS.get(asset.chain))


def _liquidity_usd(pair: dict[str, Any]) -> float:
    liquidity = pair.get("liquidity") or {}
    try:
        return float(liquidity.get("usd") or 0)
    except (TypeError, ValueError):
        return 0.0


def best_pair_price(pairs: list[Any], chain_id: Optional[str]) -> Optional[float]:
    """
    priceUsd of the deepest pool.

    Pairs on the requested chain win over pairs elsewhere; among
    them the highest liquidity.usd wins. Pairs without a usable
    priceUsd are skipped.
    """
    candidates = [p for p in pairs if isinstance(p, dict)]
    if chain_id:
        on_chain = [p for p in candidates if str(p.get("chainId", "")).lower() == chain_id]
        if on_chain:
            candidates = on_chain

    for pair in sorted(candidates, key=_liquidity_usd, reverse=True):
        price = BasePriceAdapter._price(pair.get("priceUsd"))
        if price is not None:
            return price
    return None
