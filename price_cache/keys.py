"""
Price Cache - Cache keys.

Two logically identical queries must always render the same key:
- instants render as whole unix seconds
- dates render as ISO YYYY-MM-DD
- asset keys are already lowercased by the asset reference
"""

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Optional, Union

from core.clock import to_unix_seconds


KEY_PREFIX = "price"


class CacheOperation(Enum):
    """What a cached value answers."""
    CURRENT = "current"
    AT_DATE = "date"
    AT_INSTANT = "instant"
    FALLBACK = "fallback"
    SERIES = "series"
    SLUG = "slug"


@dataclass(frozen=True)
class CacheKey:
    """Structured cache key; use str(key) for storage."""
    operation: CacheOperation
    source: str
    asset_key: str
    at: Optional[Union[date, datetime]] = None
    interval: Optional[str] = None

    def __str__(self) -> str:
        parts = [KEY_PREFIX, self.operation.value, self.source, self.asset_key]
        if self.at is not None:
            parts.append(_render_at(self.at))
        if self.interval is not None:
            parts.append(self.interval)
        return ":".join(parts)

    @classmethod
    def current(cls, source: str, asset_key: str) -> "CacheKey":
        return cls(CacheOperation.CURRENT, source, asset_key)

    @classmethod
    def at_date(cls, source: str, asset_key: str, day: date) -> "CacheKey":
        return cls(CacheOperation.AT_DATE, source, asset_key, at=_as_date(day))

    @classmethod
    def at_instant(cls, source: str, asset_key: str, instant: datetime) -> "CacheKey":
        return cls(CacheOperation.AT_INSTANT, source, asset_key, at=instant)


def _as_date(value: Union[date, datetime]) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def _render_at(value: Union[date, datetime]) -> str:
    # datetime is a subclass of date, so test it first
    if isinstance(value, datetime):
        return str(to_unix_seconds(value))
    return value.isoformat()


KeyLike = Union[CacheKey, str]


def render_key(key: KeyLike) -> str:
    """Storage string for a structured or pre-rendered key."""
    return str(key)
