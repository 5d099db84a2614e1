"""
Price providers.

Each module wraps one external price API behind BasePriceAdapter.
"""

from price_adapters.providers.coingecko import CoinGeckoAdapter
from price_adapters.providers.defillama import DefiLlamaAdapter
from price_adapters.providers.dexscreener import DexScreenerAdapter
from price_adapters.providers.moralis import MoralisAdapter
from price_adapters.providers.opensea import OpenSeaAdapter
from price_adapters.providers.reservoir import ReservoirAdapter


__all__ = [
    "CoinGeckoAdapter",
    "DefiLlamaAdapter",
    "DexScreenerAdapter",
    "MoralisAdapter",
    "OpenSeaAdapter",
    "ReservoirAdapter",
]
