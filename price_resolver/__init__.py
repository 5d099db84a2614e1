"""
Price Resolver Package - Priority-ordered, fail-soft price resolution.

Each asset kind has a fixed resolver with static adapter lists per
operation. Resolution walks the list, consulting and populating the
shared cache, and returns the first valid price or None.

Quick Start:
    from core import get_config
    from price_adapters import CoinAsset
    from price_resolver import PriceEngine

    async with PriceEngine.from_config(get_config()) as engine:
        point = await engine.price_at_instant(CoinAsset("ethereum"), called_at)
"""

from price_resolver.base import DEFAULT_ADAPTER_TIMEOUT, BaseResolver
from price_resolver.coin import CoinResolver
from price_resolver.engine import PriceEngine
from price_resolver.nft import NftFloorResolver
from price_resolver.token import ContractTokenResolver


__all__ = [
    "DEFAULT_ADAPTER_TIMEOUT",
    "BaseResolver",
    "CoinResolver",
    "ContractTokenResolver",
    "NftFloorResolver",
    "PriceEngine",
]
