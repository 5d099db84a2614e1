"""
DefiLlama Price Adapter - Aggregated multi-chain price feed.

Serves contract tokens by chain:address and Layer-1 coins by
coingecko:<id>. No API key required.

Historical lookups probe a few neighbouring timestamps because
the feed has gaps for thinly traded tokens:
- by date: the day itself, then +/- 1, 2, 3 days
- by instant: the instant itself, then +/- 1 hour, +/- 1 day
"""

import logging
from datetime import date, datetime
from typing import Any, Optional

from core.clock import start_of_day, to_unix_seconds
from price_adapters.base import BasePriceAdapter
from price_adapters.exceptions import (
    ChainNotSupportedError,
    FetchError,
    NormalizationError,
    PriceAdapterError,
    RateLimitError,
)
from price_adapters.models import (
    AdapterMetadata,
    AssetKind,
    AssetReference,
    Chain,
    CoinAsset,
    HistoricalPrecision,
)


logger = logging.getLogger(__name__)


class DefiLlamaAdapter(BasePriceAdapter):
    """DefiLlama coins API adapter."""

    BASE_URL = "https://coins.llama.fi"

    # Chain -> DefiLlama chain prefix
    CHAIN_PREFIXES = {
        Chain.ETHEREUM: "ethereum",
        Chain.BASE: "base",
        Chain.SOLANA: "solana",
        Chain.BSC: "bsc",
        Chain.PLASMA: "plasma",
        Chain.HYPERLIQUID: "hyperliquid",
        Chain.POLYGON: "polygon",
        Chain.ARBITRUM: "arbitrum",
        Chain.OPTIMISM: "optimism",
        Chain.AVALANCHE: "avax",
    }

    DAY_OFFSETS = (0, -1, 1, -2, 2, -3, 3)
    INSTANT_OFFSETS_SECONDS = (0, -3600, 3600, -86400, 86400)

    @property
    def name(self) -> str:
        """Unique identifier."""
        return "defillama"

    def metadata(self) -> AdapterMetadata:
        """Return adapter metadata."""
        return AdapterMetadata(
            name=self.name,
            display_name="DefiLlama Coins",
            asset_kinds=[AssetKind.CONTRACT, AssetKind.COIN],
            supported_chains=list(self.CHAIN_PREFIXES.keys()),
            supports_current=True,
            historical_precision=HistoricalPrecision.INSTANT,
            requires_api_key=False,
            base_url=self.BASE_URL,
            current_ttl_seconds=self._ttl.current,
            historical_ttl_seconds=self._ttl.historical,
        )

    def price_key(self, asset: AssetReference) -> str:
        """chain:address or coingecko:<id> as DefiLlama expects it."""
        if isinstance(asset, CoinAsset):
            return f"coingecko:{asset.provider_id}"
        prefix = self.CHAIN_PREFIXES.get(asset.chain)
        if prefix is None:
            raise ChainNotSupportedError(
                f"Chain {asset.chain.value} not supported",
                adapter_name=self.name,
                chain=asset.chain.value,
                supported_chains=[c.value for c in self.CHAIN_PREFIXES],
            )
        return f"{prefix}:{asset.address}"

    def _extract(self, payload: Any, price_key: str) -> Optional[float]:
        """Find the coin entry whose key matches price_key ignoring case."""
        if not isinstance(payload, dict):
            raise NormalizationError(
                "Expected an object",
                adapter_name=self.name,
                raw_data=payload,
            )
        coins = payload.get("coins") or {}
        if not isinstance(coins, dict):
            raise NormalizationError(
                "Malformed 'coins' field",
                adapter_name=self.name,
                raw_data=payload,
                field_name="coins",
            )
        wanted = price_key.lower()
        for key, entry in coins.items():
            if key.lower() == wanted and isinstance(entry, dict):
                return self._price(entry.get("price"))
        return None

    async def _fetch_current(self, asset: AssetReference) -> Optional[float]:
        key = self.price_key(asset)
        payload = await self._get_json(f"{self.BASE_URL}/prices/current/{key}")
        return self._extract(payload, key)

    async def _fetch_at_date(self, asset: AssetReference, day: date) -> Optional[float]:
        base_ts = to_unix_seconds(start_of_day(day))
        timestamps = [base_ts + offset * 86400 for offset in self.DAY_OFFSETS]
        return await self._probe(asset, timestamps)

    async def _fetch_at_instant(self, asset: AssetReference, instant: datetime) -> Optional[float]:
        base_ts = to_unix_seconds(instant)
        timestamps = [base_ts + offset for offset in self.INSTANT_OFFSETS_SECONDS]
        return await self._probe(asset, timestamps)

    async def _probe(self, asset: AssetReference, timestamps: list[int]) -> Optional[float]:
        """
        First price found across candidate timestamps.

        A failed probe moves on to the next timestamp; rate limiting
        stops the search. If every probe failed the last error is
        raised so it is recorded.
        """
        key = self.price_key(asset)
        last_error: Optional[PriceAdapterError] = None
        failures = 0

        for ts in timestamps:
            try:
                payload = await self._get_json(f"{self.BASE_URL}/prices/historical/{ts}/{key}")
                price = self._extract(payload, key)
            except RateLimitError:
                raise
            except (FetchError, NormalizationError) as e:
                logger.debug(f"[{self.name}] Probe at {ts} failed: {e}")
                last_error = e
                failures += 1
                continue

            if price is not None:
                return price

        if last_error is not None and failures == len(timestamps):
            raise last_error
        return None
