"""
Performance Report Tests.

============================================================
PURPOSE
============================================================
Verify report assembly over a stubbed price engine.

============================================================
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from core.clock import MockClock
from performance_engine.models import Horizon, PriceSnapshotSet, Signal
from price_adapters.models import Chain, CoinAsset, NftCollectionAsset
from reporting.performance_report import PerformanceReportBuilder


NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)
BTC = CoinAsset("bitcoin")
PUNKS = NftCollectionAsset(Chain.ETHEREUM, "0xb47e3cd837dDF8e4c57F05d70Ab865de6e193BBB")


@pytest.fixture
def engine():
    """Engine double keyed by asset."""
    prices = {
        BTC.key: PriceSnapshotSet(100.0, 110.0, 120.0, 130.0, 150.0),
        PUNKS.key: PriceSnapshotSet(40.0, 40.0, 40.0, 40.0, 40.0),
    }
    mock = MagicMock()
    mock.snapshot_set = AsyncMock(side_effect=lambda asset, called_at, now: prices[asset.key])
    return mock


def old_signal(signal_id, asset, sentiment="bullish"):
    return Signal(signal_id, sentiment, NOW - timedelta(days=40), asset=asset)


# ============================================================
# BUILDER
# ============================================================

class TestPerformanceReportBuilder:
    """Tests for PerformanceReportBuilder."""

    @pytest.mark.asyncio
    async def test_builds_summaries(self, engine):
        """Test per-asset and overall summaries."""
        builder = PerformanceReportBuilder(engine, clock=MockClock(NOW))

        report = await builder.build([
            old_signal("a", BTC),
            old_signal("b", BTC, "bearish"),
            old_signal("c", PUNKS),
        ])

        assert report.overall.total_signals == 3
        assert set(report.by_asset) == {BTC.key, PUNKS.key}
        assert report.by_asset[BTC.key].summary_for(Horizon.D1).average_return_pct == pytest.approx(10.0)
        assert report.by_asset[BTC.key].summary_for(Horizon.D1).correct_count == 1
        assert report.generated_at == NOW

    @pytest.mark.asyncio
    async def test_skips_signals_without_asset(self, engine):
        """Test unresolvable signals are listed, not scored."""
        builder = PerformanceReportBuilder(engine, clock=MockClock(NOW))

        report = await builder.build([
            Signal("orphan", "bullish", NOW - timedelta(days=3), asset_label="Some Token"),
            old_signal("a", BTC),
        ])

        assert report.skipped_signals == ["orphan"]
        assert report.overall.total_signals == 1
        assert engine.snapshot_set.await_count == 1

    @pytest.mark.asyncio
    async def test_flags_degraded_nft_history(self, engine):
        """Test flat NFT history is flagged on the signal and the asset."""
        builder = PerformanceReportBuilder(engine, clock=MockClock(NOW))

        report = await builder.build([old_signal("c", PUNKS), old_signal("a", BTC)])

        flagged = {item.signal.signal_id: item.degraded_history for item in report.signal_results}
        assert flagged == {"c": True, "a": False}
        assert report.degraded_assets == [PUNKS.key]

    @pytest.mark.asyncio
    async def test_empty_input(self, engine):
        """Test an empty batch yields an empty report."""
        builder = PerformanceReportBuilder(engine, clock=MockClock(NOW))

        report = await builder.build([])

        assert report.overall.total_signals == 0
        assert report.to_dict()["overall_display"] == {"short_term": "--", "long_term": "--"}

    @pytest.mark.asyncio
    async def test_explicit_now_passed_to_engine(self, engine):
        """Test the evaluation time is forwarded to snapshot resolution."""
        builder = PerformanceReportBuilder(engine)
        evaluated_at = datetime(2024, 7, 1, tzinfo=timezone.utc)

        await builder.build([old_signal("a", BTC)], now=evaluated_at)

        assert engine.snapshot_set.await_args.args[2] == evaluated_at

    @pytest.mark.asyncio
    async def test_to_dict_display(self, engine):
        """Test rendered percentages in the serialized report."""
        builder = PerformanceReportBuilder(engine, clock=MockClock(NOW))

        report = await builder.build([old_signal("a", BTC)])
        data = report.to_dict()

        assert data["signals"][0]["short_term_display"] == "+15%"
        assert data["signals"][0]["long_term_display"] == "+40%"

    def test_invalid_concurrency(self, engine):
        """Test max_concurrency must be positive."""
        with pytest.raises(ValueError):
            PerformanceReportBuilder(engine, max_concurrency=0)
