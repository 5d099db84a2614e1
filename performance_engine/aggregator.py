"""
Performance Engine - Aggregation.

Each horizon is averaged only over the signals where its return is
defined; absent returns never enter a denominator.
"""

from typing import Iterable, Mapping

from performance_engine.calculator import mean_of
from performance_engine.models import (
    LONG_TERM_HORIZONS,
    SHORT_TERM_HORIZONS,
    AggregatePerformance,
    Horizon,
    HorizonSummary,
    PerformanceResult,
)


def summarize_horizon(results: list[PerformanceResult], horizon: Horizon) -> HorizonSummary:
    returns = []
    correct = 0
    for result in results:
        horizon_result = result.horizons.get(horizon)
        if horizon_result is None or horizon_result.return_pct is None:
            continue
        returns.append(horizon_result.return_pct)
        if horizon_result.directionally_correct:
            correct += 1
    return HorizonSummary(
        horizon=horizon,
        average_return_pct=mean_of(returns),
        sample_count=len(returns),
        correct_count=correct,
    )


def aggregate_performance(results: Iterable[PerformanceResult]) -> AggregatePerformance:
    """
    Aggregate signal results.

    short_term is the mean of the defined 1d and 7d horizon means,
    long_term the mean of the defined 28d and all-time horizon means.
    """
    results = list(results)
    horizons = {h: summarize_horizon(results, h) for h in Horizon}
    return AggregatePerformance(
        horizons=horizons,
        short_term=mean_of(horizons[h].average_return_pct for h in SHORT_TERM_HORIZONS),
        long_term=mean_of(horizons[h].average_return_pct for h in LONG_TERM_HORIZONS),
        total_signals=len(results),
    )


def summarize_by_asset(
    results_by_asset: Mapping[str, Iterable[PerformanceResult]],
) -> dict[str, AggregatePerformance]:
    """Per-asset summaries keyed like the input."""
    return {
        asset_key: aggregate_performance(results)
        for asset_key, results in results_by_asset.items()
    }


def aggregate_by_asset(
    results_by_asset: Mapping[str, Iterable[PerformanceResult]],
) -> AggregatePerformance:
    """One overall summary across every asset's signals."""
    flattened: list[PerformanceResult] = []
    for results in results_by_asset.values():
        flattened.extend(results)
    return aggregate_performance(flattened)
