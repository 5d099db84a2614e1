"""
Price Cache - Models.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any


@dataclass(frozen=True)
class CacheEntry:
    """
    A stored value with its absolute expiry.

    Entries are replaced on write, never mutated.
    """
    key: str
    value: Any
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        """Expired at or after expires_at."""
        return now >= self.expires_at

    def age_seconds(self, now: datetime) -> float:
        return (now - self.created_at).total_seconds()


def encode_series(series: list[tuple[date, float]]) -> list[list[Any]]:
    """JSON form of a daily series: [[date_iso, price], ...]."""
    return [[day.isoformat(), price] for day, price in series]


def decode_series(raw: list[Any]) -> list[tuple[date, float]]:
    """Inverse of encode_series; malformed rows are skipped."""
    series = []
    for item in raw:
        try:
            series.append((date.fromisoformat(item[0]), float(item[1])))
        except (TypeError, ValueError, IndexError):
            continue
    return series
