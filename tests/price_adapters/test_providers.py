"""
Price Provider Adapter Tests.

============================================================
PURPOSE
============================================================
Verify provider adapters without touching the network.

TEST PRINCIPLES:
- _get_json is patched; no HTTP is performed
- Adapters never raise from public operations
- Unsupported requests never reach the network

============================================================
"""

import asyncio
from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest

from core.clock import MockClock, start_of_day, to_unix_seconds
from price_adapters.exceptions import FetchError, NormalizationError, RateLimitError
from price_adapters.models import (
    AdapterStatus,
    Chain,
    CoinAsset,
    ContractAsset,
    NftCollectionAsset,
)
from price_adapters.providers.coingecko import CoinGeckoAdapter, nearest_price
from price_adapters.providers.defillama import DefiLlamaAdapter
from price_adapters.providers.dexscreener import DexScreenerAdapter, best_pair_price
from price_adapters.providers.moralis import MoralisAdapter, parse_floor
from price_adapters.providers.opensea import OpenSeaAdapter, sale_price
from price_adapters.providers.reservoir import ReservoirAdapter, closest_stat_floor
from price_cache.memory import InMemoryCacheStore


NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)

TOKEN = ContractAsset(Chain.ETHEREUM, "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48")
COIN = CoinAsset("bitcoin")
NFT = NftCollectionAsset(Chain.ETHEREUM, "0xBC4CA0EdA7647A8aB7C2061c2E118A18a936f13D")


@pytest.fixture
def clock():
    """Fixed mock clock."""
    return MockClock(NOW)


# ============================================================
# BASE BEHAVIOUR
# ============================================================

class TestFailSoft:
    """Tests for fail-soft public operations."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        FetchError("HTTP 500", adapter_name="defillama", status_code=500),
        RateLimitError("Rate limit exceeded", adapter_name="defillama"),
        asyncio.TimeoutError(),
        RuntimeError("boom"),
    ])
    async def test_failures_become_none(self, clock, error):
        """Test every failure is reported as absence."""
        adapter = DefiLlamaAdapter(clock=clock)

        with patch.object(adapter, "_get_json", new=AsyncMock(side_effect=error)):
            assert await adapter.current_price(TOKEN) is None

        assert adapter.get_health().error_count == 1
        assert len(adapter.get_incidents()) == 1

    @pytest.mark.asyncio
    async def test_rate_limit_marks_status(self, clock):
        """Test 429 flips status to RATE_LIMITED."""
        adapter = DefiLlamaAdapter(clock=clock)
        error = RateLimitError("Rate limit exceeded", adapter_name="defillama", retry_after_seconds=30)

        with patch.object(adapter, "_get_json", new=AsyncMock(side_effect=error)):
            await adapter.current_price(TOKEN)

        health = adapter.get_health()
        assert health.status == AdapterStatus.RATE_LIMITED
        assert health.rate_limit_reset == NOW + timedelta(seconds=30)

    @pytest.mark.asyncio
    async def test_degrades_after_consecutive_failures(self, clock):
        """Test repeated failures degrade the adapter."""
        adapter = DefiLlamaAdapter(clock=clock)
        mock = AsyncMock(side_effect=FetchError("HTTP 502", adapter_name="defillama"))

        with patch.object(adapter, "_get_json", new=mock):
            for _ in range(adapter.DEGRADED_THRESHOLD):
                await adapter.current_price(TOKEN)

        assert adapter.get_health().status == AdapterStatus.DEGRADED

    @pytest.mark.asyncio
    async def test_non_positive_price_dropped(self, clock):
        """Test a zero price is not returned."""
        adapter = DefiLlamaAdapter(clock=clock)
        payload = {"coins": {f"ethereum:{TOKEN.address}": {"price": 0}}}

        with patch.object(adapter, "_get_json", new=AsyncMock(return_value=payload)):
            assert await adapter.current_price(TOKEN) is None


# ============================================================
# DEFILLAMA
# ============================================================

class TestDefiLlamaAdapter:
    """Tests for DefiLlamaAdapter."""

    @pytest.mark.asyncio
    async def test_current_matches_key_ignoring_case(self, clock):
        """Test the response key may differ in case from the request."""
        adapter = DefiLlamaAdapter(clock=clock)
        payload = {"coins": {f"ethereum:{TOKEN.address.lower()}": {"price": 0.9998}}}

        with patch.object(adapter, "_get_json", new=AsyncMock(return_value=payload)) as mock:
            point = await adapter.current_price(TOKEN)

        assert point.value == 0.9998
        assert point.source == "defillama"
        assert point.as_of == NOW
        assert mock.await_args.args[0].endswith(f"/prices/current/ethereum:{TOKEN.address}")

    @pytest.mark.asyncio
    async def test_coin_key(self, clock):
        """Test coins use the coingecko: prefix."""
        adapter = DefiLlamaAdapter(clock=clock)

        assert adapter.price_key(COIN) == "coingecko:bitcoin"

    @pytest.mark.asyncio
    async def test_date_probes_neighbouring_days(self, clock):
        """Test empty days are skipped until a price is found."""
        adapter = DefiLlamaAdapter(clock=clock)
        empty = {"coins": {}}
        found = {"coins": {"coingecko:bitcoin": {"price": 65000}}}

        with patch.object(
            adapter, "_get_json", new=AsyncMock(side_effect=[empty, empty, found])
        ) as mock:
            point = await adapter.price_at_date(COIN, date(2024, 5, 1))

        assert point.value == 65000.0
        assert point.as_of == start_of_day(date(2024, 5, 1))
        assert mock.await_count == 3
        base = to_unix_seconds(start_of_day(date(2024, 5, 1)))
        assert f"/historical/{base + 86400}/" in mock.await_args.args[0]

    @pytest.mark.asyncio
    async def test_probe_continues_past_fetch_errors(self, clock):
        """Test one failing probe does not end the search."""
        adapter = DefiLlamaAdapter(clock=clock)
        found = {"coins": {"coingecko:bitcoin": {"price": 64000}}}
        mock = AsyncMock(side_effect=[FetchError("HTTP 500", adapter_name="defillama"), found])

        with patch.object(adapter, "_get_json", new=mock):
            point = await adapter.price_at_instant(COIN, NOW)

        assert point.value == 64000.0

    @pytest.mark.asyncio
    async def test_probe_stops_on_rate_limit(self, clock):
        """Test rate limiting aborts the probe sequence."""
        adapter = DefiLlamaAdapter(clock=clock)
        mock = AsyncMock(side_effect=RateLimitError("Rate limit exceeded", adapter_name="defillama"))

        with patch.object(adapter, "_get_json", new=mock):
            assert await adapter.price_at_date(COIN, date(2024, 5, 1)) is None

        assert mock.await_count == 1

    @pytest.mark.asyncio
    async def test_nft_unsupported_without_request(self, clock):
        """Test NFT assets never hit the network."""
        adapter = DefiLlamaAdapter(clock=clock)
        mock = AsyncMock()

        with patch.object(adapter, "_get_json", new=mock):
            assert await adapter.current_price(NFT) is None

        mock.assert_not_awaited()


# ============================================================
# COINGECKO
# ============================================================

class TestCoinGeckoAdapter:
    """Tests for CoinGeckoAdapter."""

    def test_nearest_price(self):
        """Test the closest valid point wins."""
        points = [(100.0, 1.0), (190.0, None), (205.0, 2.0), (400.0, 3.0)]

        assert nearest_price(points, 200) == 2.0
        assert nearest_price(points, 1000, max_distance=100) is None

    @pytest.mark.asyncio
    async def test_instant_uses_window(self, clock):
        """Test the instant query uses a +/- window and picks the nearest point."""
        adapter = CoinGeckoAdapter(clock=clock)
        target = to_unix_seconds(NOW)
        payload = {"prices": [[(target - 600) * 1000, 100.0], [(target + 60) * 1000, 101.0]]}

        with patch.object(adapter, "_get_json", new=AsyncMock(return_value=payload)) as mock:
            point = await adapter.price_at_instant(COIN, NOW)

        assert point.value == 101.0
        params = mock.await_args.kwargs["params"]
        assert params["from"] == str(target - adapter.INSTANT_WINDOW_SECONDS)
        assert params["to"] == str(target + adapter.INSTANT_WINDOW_SECONDS)

    @pytest.mark.asyncio
    async def test_no_current_price(self, clock):
        """Test current prices are not served."""
        adapter = CoinGeckoAdapter(clock=clock)

        assert await adapter.current_price(COIN) is None

    def test_pro_host_with_key(self):
        """Test the key switches host and request spacing."""
        adapter = CoinGeckoAdapter(api_key="cg")

        assert adapter.base_url == CoinGeckoAdapter.PRO_BASE_URL
        assert adapter.min_request_interval == CoinGeckoAdapter.KEYED_MIN_INTERVAL_SECONDS

    @pytest.mark.asyncio
    async def test_price_series_sorted_and_filtered(self, clock):
        """Test series output is ascending with invalid prices removed."""
        adapter = CoinGeckoAdapter(clock=clock)
        payload = {"prices": [[3000_000, 3.0], [1000_000, 1.0], [2000_000, 0]]}

        with patch.object(adapter, "_get_json", new=AsyncMock(return_value=payload)):
            series = await adapter.price_series(COIN, NOW - timedelta(days=1), NOW)

        assert [price for _, price in series] == [1.0, 3.0]
        assert series[0][0] == datetime(1970, 1, 1, 0, 16, 40, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_price_series_fail_soft(self, clock):
        """Test series errors give an empty list."""
        adapter = CoinGeckoAdapter(clock=clock)
        mock = AsyncMock(side_effect=FetchError("HTTP 500", adapter_name="coingecko"))

        with patch.object(adapter, "_get_json", new=mock):
            assert await adapter.price_series(COIN, NOW - timedelta(days=1), NOW) == []


# ============================================================
# DEXSCREENER
# ============================================================

class TestDexScreenerAdapter:
    """Tests for DexScreenerAdapter."""

    def test_deepest_pool_on_chain_wins(self):
        """Test chain preference then liquidity ordering."""
        pairs = [
            {"chainId": "bsc", "priceUsd": "9.0", "liquidity": {"usd": 10_000_000}},
            {"chainId": "ethereum", "priceUsd": "1.01", "liquidity": {"usd": 5_000}},
            {"chainId": "ethereum", "priceUsd": "1.00", "liquidity": {"usd": 900_000}},
        ]

        assert best_pair_price(pairs, "ethereum") == 1.00

    def test_skips_pairs_without_price(self):
        """Test unusable pairs are skipped."""
        pairs = [
            {"chainId": "base", "priceUsd": None, "liquidity": {"usd": 1_000_000}},
            {"chainId": "base", "priceUsd": "0.5", "liquidity": {"usd": 10}},
        ]

        assert best_pair_price(pairs, "base") == 0.5
        assert best_pair_price([], "base") is None

    @pytest.mark.asyncio
    async def test_no_history(self, clock):
        """Test historical requests are unsupported."""
        adapter = DexScreenerAdapter(clock=clock)
        mock = AsyncMock()

        with patch.object(adapter, "_get_json", new=mock):
            assert await adapter.price_at_date(TOKEN, date(2024, 1, 1)) is None

        mock.assert_not_awaited()


# ============================================================
# NFT PROVIDERS
# ============================================================

class TestReservoirAdapter:
    """Tests for ReservoirAdapter."""

    def test_closest_stat_prefers_floor_sale(self):
        """Test the nearest stat and floorSale preference."""
        stats = [
            {"timestamp": 1000, "floorSale": {"price": 5.0}},
            {"timestamp": 2000, "floorSale": {"price": None}, "floorAsk": {"price": 7.5}},
        ]

        assert closest_stat_floor(stats, 1100) == 5.0
        assert closest_stat_floor(stats, 1900) == 7.5

    def test_untimestamped_stats_raise(self):
        """Test malformed stats are a normalization error."""
        with pytest.raises(NormalizationError):
            closest_stat_floor([{"floorSale": {"price": 1}}], 0)

    @pytest.mark.asyncio
    async def test_current_floor(self, clock):
        """Test floorAsk native amount is read."""
        adapter = ReservoirAdapter(clock=clock)
        payload = {"collections": [{"floorAsk": {"price": {"amount": {"native": 11.2}}}}]}

        with patch.object(adapter, "_get_json", new=AsyncMock(return_value=payload)):
            point = await adapter.current_price(NFT)

        assert point.value == 11.2

    @pytest.mark.asyncio
    async def test_unsupported_chain(self, clock):
        """Test chains without a host are skipped."""
        adapter = ReservoirAdapter(clock=clock)

        assert await adapter.current_price(NftCollectionAsset(Chain.SOLANA, "abc")) is None


class TestMoralisAdapter:
    """Tests for MoralisAdapter."""

    @pytest.mark.parametrize("raw,expected", [
        ("12500000000000000000", 12.5),
        ("12.5", 12.5),
        (3, 3.0),
        ("0", None),
        (None, None),
    ])
    def test_parse_floor(self, raw, expected):
        """Test wei strings and plain values."""
        assert parse_floor(raw) == expected

    @pytest.mark.asyncio
    async def test_requires_key(self, clock):
        """Test no request is made without an API key."""
        adapter = MoralisAdapter(clock=clock)
        mock = AsyncMock()

        with patch.object(adapter, "_get_json", new=mock):
            assert await adapter.current_price(NFT) is None

        mock.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_history_nearest_point(self, clock):
        """Test the closest daily point is chosen."""
        adapter = MoralisAdapter(api_key="m", clock=clock)
        payload = {"result": [
            {"timestamp": "2024-06-09T00:00:00Z", "floor_price": "9.0"},
            {"timestamp": "2024-06-10T00:00:00Z", "floor_price": "10.0"},
        ]}

        with patch.object(adapter, "_get_json", new=AsyncMock(return_value=payload)):
            point = await adapter.price_at_date(NFT, date(2024, 6, 10))

        assert point.value == 10.0

    @pytest.mark.asyncio
    async def test_history_beyond_depth_skipped(self, clock):
        """Test old dates are not requested."""
        adapter = MoralisAdapter(api_key="m", clock=clock)
        mock = AsyncMock()

        with patch.object(adapter, "_get_json", new=mock):
            assert await adapter.price_at_date(NFT, date(2024, 1, 1)) is None

        mock.assert_not_awaited()


class TestOpenSeaAdapter:
    """Tests for OpenSeaAdapter."""

    def test_sale_price(self):
        """Test quantity is scaled by decimals."""
        event = {"payment": {"quantity": "1500000000000000000", "decimals": 18}}

        assert sale_price(event) == 1.5
        assert sale_price({"payment": {"quantity": "0", "decimals": 18}}) is None
        assert sale_price({}) is None

    @pytest.mark.asyncio
    async def test_date_uses_cheapest_sale(self, clock):
        """Test the minimum same-day sale stands in for the floor."""
        adapter = OpenSeaAdapter(api_key="os", clock=clock, cache=InMemoryCacheStore(clock=clock))
        events = {"asset_events": [
            {"payment": {"quantity": "3000000000000000000", "decimals": 18}},
            {"payment": {"quantity": "2000000000000000000", "decimals": 18}},
        ]}
        mock = AsyncMock(side_effect=[{"collection": "boredapeyachtclub"}, events])

        with patch.object(adapter, "_get_json", new=mock):
            point = await adapter.price_at_date(NFT, date(2024, 6, 1))

        assert point.value == 2.0
        assert "/events/collection/boredapeyachtclub" in mock.await_args.args[0]

    @pytest.mark.asyncio
    async def test_slug_memoized(self, clock):
        """Test the slug lookup is served from the shared cache on repeat."""
        cache = InMemoryCacheStore(clock=clock)
        adapter = OpenSeaAdapter(api_key="os", clock=clock, cache=cache)
        mock = AsyncMock(return_value={"collection": "boredapeyachtclub"})

        with patch.object(adapter, "_get_json", new=mock):
            assert await adapter.collection_slug(NFT) == "boredapeyachtclub"
            assert await adapter.collection_slug(NFT) == "boredapeyachtclub"

        assert mock.await_count == 1

    @pytest.mark.asyncio
    async def test_floor_series_daily_minimum(self, clock):
        """Test sale events collapse to one minimum per day."""
        adapter = OpenSeaAdapter(api_key="os", clock=clock)
        day1 = to_unix_seconds(datetime(2024, 6, 1, 10, tzinfo=timezone.utc))
        day2 = to_unix_seconds(datetime(2024, 6, 2, 10, tzinfo=timezone.utc))
        page = {"asset_events": [
            {"event_timestamp": day2, "payment": {"quantity": "4", "decimals": 0}},
            {"event_timestamp": day1, "payment": {"quantity": "6", "decimals": 0}},
            {"event_timestamp": day1 + 60, "payment": {"quantity": "5", "decimals": 0}},
        ]}
        mock = AsyncMock(side_effect=[{"collection": "bayc"}, page])

        with patch.object(adapter, "_get_json", new=mock):
            series = await adapter.floor_series(NFT, date(2024, 6, 1), date(2024, 6, 2))

        assert series == [(date(2024, 6, 1), 5.0), (date(2024, 6, 2), 4.0)]

    @pytest.mark.asyncio
    async def test_floor_series_without_key(self, clock):
        """Test the series is empty without a key."""
        adapter = OpenSeaAdapter(clock=clock)

        assert await adapter.floor_series(NFT, date(2024, 6, 1), date(2024, 6, 2)) == []
