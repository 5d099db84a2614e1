"""
Price Adapter Registry - Named adapters sharing one session and cache.

Features:
- Adapter registration and lookup by name
- Aggregated health, metadata and incident views
- One place to close every adapter's HTTP session

Ordering is NOT decided here: each resolver holds its own static
priority list of adapter names.
"""

import logging
from typing import Any, Callable, Optional

import aiohttp

from core.clock import ClockProtocol
from core.config import EngineConfig
from price_adapters.base import BasePriceAdapter
from price_adapters.models import AdapterHealth, AdapterIncident, AdapterMetadata, AdapterStatus


logger = logging.getLogger(__name__)


class AdapterRegistry:
    """
    Central registry for price adapters.

    Usage:
        registry = create_default_registry(config, cache)
        defillama = registry.get("defillama")
        ...
        await registry.close()
    """

    def __init__(self) -> None:
        self._adapters: dict[str, BasePriceAdapter] = {}

    def register(self, adapter: BasePriceAdapter) -> None:
        """Register (or replace) an adapter under its name."""
        name = adapter.name
        if name in self._adapters:
            logger.warning(f"Adapter '{name}' already registered, replacing")
        self._adapters[name] = adapter
        logger.info(f"Registered price adapter '{name}'")

    def unregister(self, name: str) -> Optional[BasePriceAdapter]:
        """Unregister an adapter."""
        adapter = self._adapters.pop(name, None)
        if adapter is not None:
            logger.info(f"Unregistered adapter '{name}'")
        return adapter

    def get(self, name: str) -> Optional[BasePriceAdapter]:
        """Get a specific adapter by name."""
        return self._adapters.get(name)

    def resolve_order(self, names: list[str]) -> list[BasePriceAdapter]:
        """Registered adapters for the given names, in the given order."""
        return [self._adapters[n] for n in names if n in self._adapters]

    def list_adapters(self) -> list[str]:
        """List all registered adapter names."""
        return list(self._adapters)

    def wrap_all(self, wrapper: Callable[[BasePriceAdapter], Any]) -> "AdapterRegistry":
        """
        New registry whose adapters are wrapper(adapter).

        Used by orchestration layers (e.g. backfill throttling);
        wrapped adapters must keep the adapter interface.
        """
        wrapped = AdapterRegistry()
        for adapter in self._adapters.values():
            wrapped._adapters[adapter.name] = wrapper(adapter)
        return wrapped

    def get_all_metadata(self) -> dict[str, AdapterMetadata]:
        """Get metadata for all adapters."""
        return {name: adapter.metadata() for name, adapter in self._adapters.items()}

    def get_all_health(self) -> dict[str, AdapterHealth]:
        """Get health for all adapters."""
        return {name: adapter.get_health() for name, adapter in self._adapters.items()}

    def get_incidents(self, limit: int = 50) -> list[AdapterIncident]:
        """Most recent incidents across adapters, newest last."""
        incidents: list[AdapterIncident] = []
        for adapter in self._adapters.values():
            incidents.extend(adapter.get_incidents(limit))
        incidents.sort(key=lambda i: i.timestamp)
        return incidents[-limit:]

    def get_stats(self) -> dict[str, Any]:
        """Get registry statistics."""
        health_summary = {}
        for status in AdapterStatus:
            health_summary[status.value] = sum(
                1 for a in self._adapters.values()
                if a.get_health().status == status
            )
        return {
            "total_adapters": len(self._adapters),
            "health_summary": health_summary,
            "adapters": {
                name: {
                    "status": adapter.get_health().status.value,
                    "is_usable": adapter.is_usable(),
                    "asset_kinds": [k.value for k in adapter.metadata().asset_kinds],
                }
                for name, adapter in self._adapters.items()
            },
        }

    async def close(self) -> None:
        """Close all resources."""
        for adapter in self._adapters.values():
            try:
                await adapter.close()
            except Exception as e:
                logger.error(f"Error closing adapter {adapter.name}: {e}")
        logger.info("Price adapter registry closed")

    async def __aenter__(self) -> "AdapterRegistry":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()


def create_default_registry(
    config: EngineConfig,
    cache: Optional[Any] = None,
    session: Optional[aiohttp.ClientSession] = None,
    clock: Optional[ClockProtocol] = None,
) -> AdapterRegistry:
    """
    Registry with every built-in provider configured from config.

    Adapters missing an API key are still registered; they report
    themselves unsupported until a key is configured.
    """
    from price_adapters.providers import (
        CoinGeckoAdapter,
        DefiLlamaAdapter,
        DexScreenerAdapter,
        MoralisAdapter,
        OpenSeaAdapter,
        ReservoirAdapter,
    )

    providers = config.providers
    common = {
        "timeout": providers.adapter_timeout_seconds,
        "session": session,
        "cache": cache,
        "ttl": config.ttl,
        "clock": clock,
    }

    registry = AdapterRegistry()
    registry.register(DefiLlamaAdapter(**common))
    registry.register(CoinGeckoAdapter(api_key=providers.coingecko_api_key, **common))
    registry.register(DexScreenerAdapter(**common))
    registry.register(ReservoirAdapter(api_key=providers.reservoir_api_key, **common))
    registry.register(MoralisAdapter(api_key=providers.moralis_api_key, **common))
    registry.register(OpenSeaAdapter(api_key=providers.opensea_api_key, **common))

    for name in ("moralis", "opensea"):
        adapter = registry.get(name)
        if adapter is not None and not adapter.has_api_key:
            logger.warning(f"[{name}] No API key configured, adapter inactive")

    return registry
