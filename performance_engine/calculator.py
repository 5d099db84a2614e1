"""
Performance Engine - Single signal evaluation.

Pure functions, no I/O. For each horizon h:
    horizon_reached = (now - called_at) >= duration(h)
    return_pct      = (p - c) / c * 100    when reached, c > 0 and p present
    correct         = return_pct >= 0      for bullish
                      return_pct < 0       for bearish
"""

from datetime import datetime
from typing import Iterable, Optional

from core.clock import ensure_utc
from performance_engine.models import (
    LONG_TERM_HORIZONS,
    SHORT_TERM_HORIZONS,
    Horizon,
    HorizonResult,
    PerformanceResult,
    PriceSnapshotSet,
    Sentiment,
    Signal,
)


def compute_return(call_price: Optional[float], horizon_price: Optional[float]) -> Optional[float]:
    """Percent change from call to horizon; None unless both exist and call > 0."""
    if call_price is None or horizon_price is None:
        return None
    if call_price <= 0:
        return None
    return (horizon_price - call_price) / call_price * 100


def is_directionally_correct(sentiment: Sentiment, return_pct: Optional[float]) -> Optional[bool]:
    """A flat price counts for bullish and against bearish."""
    if return_pct is None:
        return None
    if sentiment == Sentiment.BULLISH:
        return return_pct >= 0
    return return_pct < 0


def mean_of(values: Iterable[Optional[float]]) -> Optional[float]:
    """Mean of the present values, None if there are none."""
    present = [v for v in values if v is not None]
    if not present:
        return None
    return sum(present) / len(present)


def evaluate_horizon(
    signal: Signal,
    snapshots: PriceSnapshotSet,
    horizon: Horizon,
    now: datetime,
) -> HorizonResult:
    reached = (ensure_utc(now) - signal.called_at) >= horizon.duration
    return_pct = None
    if reached:
        return_pct = compute_return(snapshots.call_price, snapshots.price_for(horizon))
    return HorizonResult(
        horizon=horizon,
        return_pct=return_pct,
        horizon_reached=reached,
        directionally_correct=is_directionally_correct(signal.sentiment, return_pct),
    )


def evaluate_signal(
    signal: Signal,
    snapshots: PriceSnapshotSet,
    now: datetime,
) -> PerformanceResult:
    """
    Evaluate every horizon of one signal.

    Args:
        signal: The call being scored
        snapshots: Resolved prices (any may be None)
        now: Evaluation instant

    Returns:
        PerformanceResult; missing prices only leave returns undefined
    """
    now = ensure_utc(now)
    horizons = {h: evaluate_horizon(signal, snapshots, h, now) for h in Horizon}

    return PerformanceResult(
        signal_id=signal.signal_id,
        sentiment=signal.sentiment,
        asset_key=signal.asset_key,
        evaluated_at=now,
        horizons=horizons,
        short_term=mean_of(horizons[h].return_pct for h in SHORT_TERM_HORIZONS),
        long_term=mean_of(horizons[h].return_pct for h in LONG_TERM_HORIZONS),
    )
