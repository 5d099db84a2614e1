"""
Reporting - Performance Report.

============================================================
RESPONSIBILITY
============================================================
Scores a batch of signals against resolved prices.

- Groups signals by asset
- Resolves a PriceSnapshotSet per signal through the PriceEngine
- Evaluates each signal with the Performance Engine
- Summarizes per asset and overall

============================================================
DESIGN PRINCIPLES
============================================================
- Bounded fan-out (asyncio.Semaphore)
- Missing prices are a normal, renderable state
- Degraded NFT history is flagged, never hidden

============================================================
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Optional

from core.clock import ClockFactory, ClockProtocol, ensure_utc
from performance_engine.aggregator import aggregate_performance, summarize_by_asset
from performance_engine.calculator import evaluate_signal
from performance_engine.formatting import format_performance
from performance_engine.models import (
    AggregatePerformance,
    PerformanceResult,
    PriceSnapshotSet,
    Signal,
)
from price_adapters.models import AssetKind


logger = logging.getLogger(__name__)


DEFAULT_MAX_CONCURRENCY = 5


@dataclass
class SignalReport:
    """One evaluated signal."""
    signal: Signal
    snapshots: PriceSnapshotSet
    result: PerformanceResult
    degraded_history: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "signal_id": self.signal.signal_id,
            "asset_key": self.signal.asset_key,
            "asset_label": self.signal.asset_label,
            "sentiment": self.signal.sentiment.value,
            "called_at": self.signal.called_at.isoformat(),
            "snapshots": self.snapshots.to_dict(),
            "performance": self.result.to_dict(),
            "short_term_display": format_performance(self.result.short_term),
            "long_term_display": format_performance(self.result.long_term),
            "degraded_history": self.degraded_history,
        }


@dataclass
class PerformanceReport:
    """Scored signals with per-asset and overall summaries."""
    generated_at: datetime
    overall: AggregatePerformance
    by_asset: dict[str, AggregatePerformance] = field(default_factory=dict)
    signal_results: list[SignalReport] = field(default_factory=list)
    degraded_assets: list[str] = field(default_factory=list)
    skipped_signals: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "generated_at": self.generated_at.isoformat(),
            "overall": self.overall.to_dict(),
            "overall_display": {
                "short_term": format_performance(self.overall.short_term),
                "long_term": format_performance(self.overall.long_term),
            },
            "by_asset": {key: summary.to_dict() for key, summary in self.by_asset.items()},
            "signals": [item.to_dict() for item in self.signal_results],
            "degraded_assets": list(self.degraded_assets),
            "skipped_signals": list(self.skipped_signals),
        }


class PerformanceReportBuilder:
    """
    Builds a PerformanceReport from signals.

    Usage:
        builder = PerformanceReportBuilder(engine, max_concurrency=5)
        report = await builder.build(signals)
    """

    def __init__(
        self,
        engine: Any,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        clock: Optional[ClockProtocol] = None,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self._engine = engine
        self._max_concurrency = max_concurrency
        self._clock = clock

    def _now(self) -> datetime:
        return (self._clock or ClockFactory.get_clock()).now()

    async def build(
        self,
        signals: Iterable[Signal],
        now: Optional[datetime] = None,
    ) -> PerformanceReport:
        """
        Resolve, evaluate and summarize.

        Signals without an asset are skipped and listed in the report.
        """
        now = ensure_utc(now) if now is not None else self._now()

        by_asset: dict[str, list[Signal]] = {}
        skipped: list[str] = []
        for signal in signals:
            if signal.asset is None:
                logger.info(f"Skipping signal {signal.signal_id}: no asset ({signal.asset_label or 'unlabelled'})")
                skipped.append(signal.signal_id)
                continue
            by_asset.setdefault(signal.asset.key, []).append(signal)

        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def score(signal: Signal) -> SignalReport:
            async with semaphore:
                snapshots = await self._engine.snapshot_set(signal.asset, signal.called_at, now)
            result = evaluate_signal(signal, snapshots, now)
            degraded = signal.asset.kind == AssetKind.NFT and snapshots.has_flat_history()
            return SignalReport(
                signal=signal,
                snapshots=snapshots,
                result=result,
                degraded_history=degraded,
            )

        ordered = [signal for group in by_asset.values() for signal in group]
        signal_reports = list(await asyncio.gather(*(score(s) for s in ordered)))

        results_by_asset: dict[str, list[PerformanceResult]] = {key: [] for key in by_asset}
        degraded_assets: list[str] = []
        for item in signal_reports:
            key = item.signal.asset.key
            results_by_asset[key].append(item.result)
            if item.degraded_history and key not in degraded_assets:
                degraded_assets.append(key)

        for key in degraded_assets:
            logger.warning(f"No historical floor data for {key}: prices repeat the current floor")

        report = PerformanceReport(
            generated_at=now,
            overall=aggregate_performance(item.result for item in signal_reports),
            by_asset=summarize_by_asset(results_by_asset),
            signal_results=signal_reports,
            degraded_assets=degraded_assets,
            skipped_signals=skipped,
        )
        logger.info(
            f"Performance report: {report.overall.total_signals} signals, "
            f"{len(by_asset)} assets, {len(skipped)} skipped"
        )
        return report
