"""
Price Adapters Package - Pluggable price provider layer.

One adapter per provider family:
- DefiLlama: contract tokens and coins, current + historical
- CoinGecko: coins at a precise instant, price series
- DexScreener: long-tail DEX pairs, current only
- Reservoir / Moralis / OpenSea: NFT collection floors

Features:
- Isolated, replaceable adapters
- Fail-soft: every public operation returns PricePoint or None
- Health tracking and incident log per adapter
- Auxiliary memoization through the injected cache

Quick Start:
    from price_adapters import DefiLlamaAdapter, ContractAsset, Chain

    async with DefiLlamaAdapter() as llama:
        point = await llama.current_price(
            ContractAsset(Chain.ETHEREUM, "0x..."),
        )
        if point:
            print(point.value)

Adding New Adapters:
    class NewAdapter(BasePriceAdapter):
        @property
        def name(self) -> str:
            return "new_adapter"

        def metadata(self): ...
        async def _fetch_current(self, asset): ...
"""

from price_adapters.base import BasePriceAdapter
from price_adapters.exceptions import (
    ChainNotSupportedError,
    FetchError,
    NormalizationError,
    PriceAdapterError,
    RateLimitError,
)
from price_adapters.models import (
    AdapterHealth,
    AdapterIncident,
    AdapterMetadata,
    AdapterStatus,
    AssetKind,
    AssetReference,
    Chain,
    CoinAsset,
    ContractAsset,
    HistoricalPrecision,
    NftCollectionAsset,
    PriceOperation,
    PricePoint,
    parse_asset_reference,
)
from price_adapters.providers import (
    CoinGeckoAdapter,
    DefiLlamaAdapter,
    DexScreenerAdapter,
    MoralisAdapter,
    OpenSeaAdapter,
    ReservoirAdapter,
)
from price_adapters.registry import AdapterRegistry, create_default_registry


__version__ = "1.0.0"

__all__ = [
    # Base
    "BasePriceAdapter",

    # Models
    "AdapterHealth",
    "AdapterIncident",
    "AdapterMetadata",
    "AdapterStatus",
    "AssetKind",
    "AssetReference",
    "Chain",
    "CoinAsset",
    "ContractAsset",
    "HistoricalPrecision",
    "NftCollectionAsset",
    "PriceOperation",
    "PricePoint",
    "parse_asset_reference",

    # Exceptions
    "PriceAdapterError",
    "FetchError",
    "NormalizationError",
    "RateLimitError",
    "ChainNotSupportedError",

    # Providers
    "CoinGeckoAdapter",
    "DefiLlamaAdapter",
    "DexScreenerAdapter",
    "MoralisAdapter",
    "OpenSeaAdapter",
    "ReservoirAdapter",

    # Registry
    "AdapterRegistry",
    "create_default_registry",
]
