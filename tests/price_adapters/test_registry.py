"""
Adapter Registry Tests.

============================================================
PURPOSE
============================================================
Verify adapter registration, ordering and default wiring.

============================================================
"""

import pytest

from core.config import EngineConfig, ProviderSettings
from price_adapters.models import AdapterStatus
from price_adapters.providers import DefiLlamaAdapter, DexScreenerAdapter
from price_adapters.registry import AdapterRegistry, create_default_registry


@pytest.fixture
def registry():
    """Registry with two keyless adapters."""
    registry = AdapterRegistry()
    registry.register(DefiLlamaAdapter())
    registry.register(DexScreenerAdapter())
    return registry


# ============================================================
# REGISTRY
# ============================================================

class TestAdapterRegistry:
    """Tests for AdapterRegistry."""

    def test_register_and_get(self, registry):
        """Test lookup by name."""
        assert registry.get("defillama").name == "defillama"
        assert registry.get("missing") is None
        assert registry.list_adapters() == ["defillama", "dexscreener"]

    def test_resolve_order_follows_names(self, registry):
        """Test ordering comes from the caller and unknown names are dropped."""
        ordered = registry.resolve_order(["dexscreener", "coingecko", "defillama"])

        assert [a.name for a in ordered] == ["dexscreener", "defillama"]

    def test_unregister(self, registry):
        """Test removing an adapter."""
        removed = registry.unregister("dexscreener")

        assert removed.name == "dexscreener"
        assert registry.list_adapters() == ["defillama"]

    def test_wrap_all_returns_new_registry(self, registry):
        """Test wrapping leaves the original registry untouched."""
        wrapped = registry.wrap_all(lambda adapter: ("wrapped", adapter))

        assert wrapped.get("defillama")[0] == "wrapped"
        assert registry.get("defillama").name == "defillama"

    def test_stats(self, registry):
        """Test stats before any request."""
        stats = registry.get_stats()

        assert stats["total_adapters"] == 2
        assert stats["health_summary"][AdapterStatus.UNKNOWN.value] == 2

    @pytest.mark.asyncio
    async def test_close(self, registry):
        """Test closing without open sessions."""
        async with registry:
            pass


class TestDefaultRegistry:
    """Tests for create_default_registry."""

    def test_all_providers_registered(self):
        """Test every built-in provider is present."""
        registry = create_default_registry(EngineConfig())

        assert set(registry.list_adapters()) == {
            "defillama", "coingecko", "dexscreener", "reservoir", "moralis", "opensea",
        }

    def test_keys_and_timeout_applied(self):
        """Test provider keys and timeout reach the adapters."""
        config = EngineConfig(providers=ProviderSettings(
            moralis_api_key="m",
            adapter_timeout_seconds=3.0,
        ))

        registry = create_default_registry(config)

        assert registry.get("moralis").has_api_key
        assert not registry.get("opensea").has_api_key
        assert registry.get("defillama")._timeout == 3.0
