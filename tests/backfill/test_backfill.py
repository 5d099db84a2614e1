"""
Backfill Tests.

============================================================
PURPOSE
============================================================
Verify provider throttling and the cache-warming runner.

TEST PRINCIPLES:
- Time is faked; no real sleeping in spacing tests
- Throttled adapters keep the adapter interface
- Warmed answers land in the shared cache

============================================================
"""

import asyncio
from datetime import date, datetime, timedelta, timezone

import pytest

from backfill.runner import BackfillReport, BackfillRunner, BackfillTask
from backfill.throttle import (
    COINGECKO_FREE_POLICY,
    COINGECKO_KEYED_POLICY,
    ProviderThrottle,
    ThrottledAdapter,
    ThrottlePolicy,
    default_policies,
)
from core.clock import MockClock
from core.config import EngineConfig, ProviderSettings
from price_adapters.models import AssetKind
from price_cache.keys import CacheKey
from price_cache.memory import InMemoryCacheStore
from price_resolver.engine import PriceEngine

from tests.price_resolver.test_resolvers import COIN, NOW, TOKEN, StubAdapter, build_registry


class FakeTime:
    """Monotonic clock whose sleep just advances time."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


# ============================================================
# POLICIES
# ============================================================

class TestThrottlePolicy:
    """Tests for ThrottlePolicy."""

    def test_validation(self):
        """Test invalid policies are rejected."""
        with pytest.raises(ValueError):
            ThrottlePolicy(max_concurrency=0)
        with pytest.raises(ValueError):
            ThrottlePolicy(min_interval_seconds=-1)

    def test_coingecko_policy_follows_key(self):
        """Test keyed CoinGecko gets the faster policy."""
        keyed = EngineConfig(providers=ProviderSettings(coingecko_api_key="cg"))

        assert default_policies(EngineConfig())["coingecko"] == COINGECKO_FREE_POLICY
        assert default_policies(keyed)["coingecko"] == COINGECKO_KEYED_POLICY


# ============================================================
# THROTTLE
# ============================================================

class TestProviderThrottle:
    """Tests for ProviderThrottle."""

    @pytest.mark.asyncio
    async def test_spacing_between_starts(self):
        """Test consecutive starts are at least min_interval apart."""
        fake = FakeTime()
        throttle = ProviderThrottle(
            "coingecko",
            ThrottlePolicy(max_concurrency=1, min_interval_seconds=2.0),
            monotonic=fake.monotonic,
            sleep=fake.sleep,
        )

        for _ in range(3):
            async with throttle:
                pass

        assert fake.sleeps == [2.0, 2.0]
        assert throttle.acquired == 3
        assert throttle.in_flight == 0

    @pytest.mark.asyncio
    async def test_no_wait_when_spaced_naturally(self):
        """Test no sleep when enough time has already passed."""
        fake = FakeTime()
        throttle = ProviderThrottle(
            "defillama",
            ThrottlePolicy(max_concurrency=1, min_interval_seconds=1.0),
            monotonic=fake.monotonic,
            sleep=fake.sleep,
        )

        async with throttle:
            pass
        fake.now += 5
        async with throttle:
            pass

        assert fake.sleeps == []

    @pytest.mark.asyncio
    async def test_concurrency_bound(self):
        """Test no more than max_concurrency calls run at once."""
        throttle = ProviderThrottle("reservoir", ThrottlePolicy(max_concurrency=2, min_interval_seconds=0))
        peak = 0

        async def work():
            nonlocal peak
            async with throttle:
                peak = max(peak, throttle.in_flight)
                await asyncio.sleep(0.01)

        await asyncio.gather(*(work() for _ in range(6)))

        assert peak == 2
        assert throttle.acquired == 6


class TestThrottledAdapter:
    """Tests for ThrottledAdapter."""

    @pytest.mark.asyncio
    async def test_delegates_through_throttle(self):
        """Test price calls pass through the throttle and other attributes delegate."""
        stub = StubAdapter("defillama", [AssetKind.CONTRACT], current=1.0)
        stub.extra = "value"
        throttle = ProviderThrottle("defillama", ThrottlePolicy(max_concurrency=1, min_interval_seconds=0))
        wrapped = ThrottledAdapter(stub, throttle)

        point = await wrapped.current_price(TOKEN)

        assert point.value == 1.0
        assert wrapped.name == "defillama"
        assert wrapped.wrapped is stub
        assert wrapped.extra == "value"
        assert wrapped.metadata().name == "defillama"
        assert throttle.acquired == 1


# ============================================================
# RUNNER
# ============================================================

class TestBackfillRunner:
    """Tests for BackfillRunner."""

    def make_base(self, clock, cache, **stub_kwargs):
        llama = StubAdapter("defillama", [AssetKind.CONTRACT, AssetKind.COIN], **stub_kwargs)
        return PriceEngine(build_registry(llama), cache, config=EngineConfig(), clock=clock)

    @pytest.mark.asyncio
    async def test_warms_cache(self):
        """Test resolved answers land in the shared cache."""
        clock = MockClock(NOW)
        cache = InMemoryCacheStore(clock=clock)
        instant = NOW - timedelta(days=3)
        runner = BackfillRunner(
            lambda: self.make_base(clock, cache, current=5.0, historical=lambda at: 4.0),
            policies={"defillama": ThrottlePolicy(max_concurrency=2, min_interval_seconds=0)},
        )

        report = await runner.run([
            BackfillTask(COIN, instants=[instant], dates=[date(2024, 6, 1)], include_current=True),
        ])

        assert report.requested == 3
        assert report.resolved == 3
        assert report.missing == []
        assert report.success_rate == pytest.approx(100.0)
        assert await cache.get(CacheKey.at_instant("defillama", COIN.key, instant)) == 4.0
        assert await cache.get(CacheKey.at_date("defillama", COIN.key, date(2024, 6, 1))) == 4.0
        assert runner.throttles["defillama"].acquired == 3

    @pytest.mark.asyncio
    async def test_reports_missing_and_cached(self):
        """Test misses are listed and cache hits counted."""
        clock = MockClock(NOW)
        cache = InMemoryCacheStore(clock=clock)
        await cache.set(CacheKey.current("defillama", TOKEN.key), 2.0, 300)
        runner = BackfillRunner(
            lambda: self.make_base(clock, cache, current=None, historical=None),
            policies={},
        )

        report = await runner.run([
            BackfillTask(TOKEN, dates=[date(2024, 6, 1)], include_current=True),
        ])

        assert report.resolved == 1
        assert report.from_cache == 1
        assert report.missing == [f"{TOKEN.key}@2024-06-01"]

    @pytest.mark.asyncio
    async def test_timeout_extended_by_queue_time(self):
        """Test throttled engines allow time for queueing."""
        clock = MockClock(NOW)
        base = self.make_base(clock, InMemoryCacheStore(clock=clock))
        runner = BackfillRunner(lambda: base, queue_timeout_seconds=60)

        engine = runner.build_engine(base)

        assert engine.config.providers.adapter_timeout_seconds == pytest.approx(70.0)
        assert engine.cache is base.cache
        assert isinstance(engine.registry.get("defillama"), ThrottledAdapter)

    def test_empty_report(self):
        """Test an empty report has a zero success rate."""
        assert BackfillReport().success_rate == 0.0
