"""
Price Cache Model.

============================================================
PURPOSE
============================================================
One row per cache key, shared by every engine process that
points at the same database.

Expiry is stored as a unix epoch float so comparisons behave
identically on SQLite (no timezone support) and PostgreSQL.

============================================================
"""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, Float, String
from sqlalchemy.orm import Mapped, mapped_column

from storage.models.base import Base, CreatedAtMixin


class PriceCacheRecord(Base, CreatedAtMixin):
    """Cached price payload with absolute expiry."""

    __tablename__ = "price_cache"

    cache_key: Mapped[str] = mapped_column(
        String(512),
        primary_key=True,
        comment="Deterministic colon-joined cache key",
    )

    value: Mapped[Any] = mapped_column(
        JSON,
        nullable=False,
        comment="JSON payload: float price or [[date_iso, price], ...] series",
    )

    expires_at_epoch: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        index=True,
        comment="Absolute expiry as unix seconds",
    )

    def is_expired(self, now_epoch: float) -> bool:
        return now_epoch >= self.expires_at_epoch

    @property
    def expires_at(self) -> datetime:
        return datetime.fromtimestamp(self.expires_at_epoch, tz=timezone.utc)

    def __repr__(self) -> str:
        return f"<PriceCacheRecord(key={self.cache_key}, expires_at={self.expires_at_epoch})>"
