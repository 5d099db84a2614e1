"""
Performance Engine Package - Scores directional calls from price snapshots.

Pure computation: no network, no cache, no clock lookups. Callers pass
`now` explicitly.

Quick Start:
    from performance_engine import Signal, PriceSnapshotSet, evaluate_signal

    result = evaluate_signal(signal, snapshots, now)
    result.result_for(Horizon.D7).return_pct
"""

from performance_engine.aggregator import (
    aggregate_by_asset,
    aggregate_performance,
    summarize_by_asset,
)
from performance_engine.calculator import (
    compute_return,
    evaluate_signal,
    is_directionally_correct,
    mean_of,
)
from performance_engine.formatting import format_performance
from performance_engine.models import (
    AggregatePerformance,
    Horizon,
    HorizonResult,
    HorizonSummary,
    PerformanceResult,
    PriceSnapshotSet,
    Sentiment,
    Signal,
)


__all__ = [
    # Models
    "AggregatePerformance",
    "Horizon",
    "HorizonResult",
    "HorizonSummary",
    "PerformanceResult",
    "PriceSnapshotSet",
    "Sentiment",
    "Signal",

    # Computation
    "compute_return",
    "evaluate_signal",
    "is_directionally_correct",
    "mean_of",

    # Aggregation
    "aggregate_by_asset",
    "aggregate_performance",
    "summarize_by_asset",

    # Display
    "format_performance",
]
