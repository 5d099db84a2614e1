"""
Contract Token Resolver - Fungible tokens addressed by chain + contract.

Pipelines:
- current: DefiLlama -> DexScreener (long-tail pairs)
- at date / at instant: DefiLlama only

Historical queries never substitute the current price.
"""

from price_adapters.models import AssetKind, PriceOperation
from price_resolver.base import BaseResolver


class ContractTokenResolver(BaseResolver):
    """Resolver for ContractAsset references."""

    KIND = AssetKind.CONTRACT
    PIPELINES = {
        PriceOperation.CURRENT: ("defillama", "dexscreener"),
        PriceOperation.AT_DATE: ("defillama",),
        PriceOperation.AT_INSTANT: ("defillama",),
    }
