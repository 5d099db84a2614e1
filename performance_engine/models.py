"""
Performance Engine - Data Models.

Signals are supplied by the caller and never mutated. Every price is
Optional: an absent price excludes a data point, it never counts as zero.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import Any, Optional, Union

from core.clock import ensure_utc
from price_adapters.models import AssetReference


class Sentiment(Enum):
    """Direction of a call."""
    BULLISH = "bullish"
    BEARISH = "bearish"

    @classmethod
    def parse(cls, value: Union[str, "Sentiment"]) -> "Sentiment":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown sentiment: {value!r}") from None


class Horizon(Enum):
    """Evaluation horizons."""
    D1 = "1d"
    D7 = "7d"
    D28 = "28d"
    ALL_TIME = "all_time"

    @property
    def duration(self) -> timedelta:
        """Minimum signal age before the horizon counts."""
        return _HORIZON_DURATIONS[self]


_HORIZON_DURATIONS = {
    Horizon.D1: timedelta(days=1),
    Horizon.D7: timedelta(days=7),
    Horizon.D28: timedelta(days=28),
    # All-time reads the current price but only once the call is 28 days old
    Horizon.ALL_TIME: timedelta(days=28),
}

SHORT_TERM_HORIZONS = (Horizon.D1, Horizon.D7)
LONG_TERM_HORIZONS = (Horizon.D28, Horizon.ALL_TIME)


@dataclass(frozen=True)
class Signal:
    """A public directional call on an asset."""
    signal_id: str
    sentiment: Sentiment
    called_at: datetime
    asset: Optional[AssetReference] = None
    asset_label: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "sentiment", Sentiment.parse(self.sentiment))
        object.__setattr__(self, "called_at", ensure_utc(self.called_at))

    @classmethod
    def from_noted_date(
        cls,
        signal_id: str,
        sentiment: Union[str, Sentiment],
        noted: date,
        asset: Optional[AssetReference] = None,
        asset_label: str = "",
    ) -> "Signal":
        """Signal known only by its day: called at noon UTC."""
        if isinstance(noted, datetime):
            noted = ensure_utc(noted).date()
        return cls(
            signal_id=signal_id,
            sentiment=sentiment,
            called_at=datetime.combine(noted, time(12, 0), tzinfo=timezone.utc),
            asset=asset,
            asset_label=asset_label,
        )

    @property
    def asset_key(self) -> Optional[str]:
        return self.asset.key if self.asset is not None else None

    def horizon_instant(self, horizon: Horizon) -> datetime:
        return self.called_at + horizon.duration


@dataclass(frozen=True)
class PriceSnapshotSet:
    """Resolved prices for one signal."""
    call_price: Optional[float] = None
    price_1d: Optional[float] = None
    price_7d: Optional[float] = None
    price_28d: Optional[float] = None
    current_price: Optional[float] = None

    def price_for(self, horizon: Horizon) -> Optional[float]:
        if horizon == Horizon.D1:
            return self.price_1d
        if horizon == Horizon.D7:
            return self.price_7d
        if horizon == Horizon.D28:
            return self.price_28d
        return self.current_price

    def values(self) -> list[Optional[float]]:
        return [self.call_price, self.price_1d, self.price_7d, self.price_28d, self.current_price]

    def is_empty(self) -> bool:
        return all(v is None for v in self.values())

    def has_flat_history(self) -> bool:
        """
        True when call, 1d, 7d, 28d and current are all present and equal.

        This is the signature of NFT history that fell back to today's floor.
        """
        values = self.values()
        if any(v is None for v in values):
            return False
        return len(set(values)) == 1

    def to_dict(self) -> dict[str, Optional[float]]:
        return {
            "call_price": self.call_price,
            "price_1d": self.price_1d,
            "price_7d": self.price_7d,
            "price_28d": self.price_28d,
            "current_price": self.current_price,
        }


@dataclass(frozen=True)
class HorizonResult:
    """Outcome of one horizon for one signal."""
    horizon: Horizon
    return_pct: Optional[float]
    horizon_reached: bool
    directionally_correct: Optional[bool]

    def to_dict(self) -> dict[str, Any]:
        return {
            "horizon": self.horizon.value,
            "return_pct": self.return_pct,
            "horizon_reached": self.horizon_reached,
            "directionally_correct": self.directionally_correct,
        }


@dataclass
class PerformanceResult:
    """Per-horizon outcome of one signal."""
    signal_id: str
    sentiment: Sentiment
    asset_key: Optional[str]
    evaluated_at: datetime
    horizons: dict[Horizon, HorizonResult] = field(default_factory=dict)
    short_term: Optional[float] = None
    long_term: Optional[float] = None

    def result_for(self, horizon: Horizon) -> HorizonResult:
        return self.horizons[horizon]

    def return_for(self, horizon: Horizon) -> Optional[float]:
        result = self.horizons.get(horizon)
        return result.return_pct if result is not None else None

    def has_any_return(self) -> bool:
        return any(r.return_pct is not None for r in self.horizons.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "signal_id": self.signal_id,
            "sentiment": self.sentiment.value,
            "asset_key": self.asset_key,
            "evaluated_at": self.evaluated_at.isoformat(),
            "horizons": {h.value: r.to_dict() for h, r in self.horizons.items()},
            "short_term": self.short_term,
            "long_term": self.long_term,
        }


@dataclass(frozen=True)
class HorizonSummary:
    """Aggregate of one horizon across signals."""
    horizon: Horizon
    average_return_pct: Optional[float]
    sample_count: int
    correct_count: int

    @property
    def accuracy_pct(self) -> Optional[float]:
        if self.sample_count == 0:
            return None
        return self.correct_count / self.sample_count * 100

    def to_dict(self) -> dict[str, Any]:
        return {
            "horizon": self.horizon.value,
            "average_return_pct": self.average_return_pct,
            "sample_count": self.sample_count,
            "correct_count": self.correct_count,
            "accuracy_pct": self.accuracy_pct,
        }


@dataclass
class AggregatePerformance:
    """Summary over a collection of signals."""
    horizons: dict[Horizon, HorizonSummary]
    short_term: Optional[float]
    long_term: Optional[float]
    total_signals: int

    def summary_for(self, horizon: Horizon) -> HorizonSummary:
        return self.horizons[horizon]

    def to_dict(self) -> dict[str, Any]:
        return {
            "short_term": self.short_term,
            "long_term": self.long_term,
            "total_signals": self.total_signals,
            "horizons": {h.value: s.to_dict() for h, s in self.horizons.items()},
        }
