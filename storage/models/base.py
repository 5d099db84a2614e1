"""
Base ORM Model and Mixins.

============================================================
PURPOSE
============================================================
Provides the declarative base and common mixins used by all
ORM models of the price engine.

============================================================
COMPONENTS
============================================================
- Base: SQLAlchemy declarative base for all models
- CreatedAtMixin: Creation timestamp column

============================================================
"""

from datetime import datetime

from sqlalchemy import DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """
    Declarative base for all ORM models.

    Datetimes are always stored timezone-aware.
    """

    type_annotation_map = {
        datetime: DateTime(timezone=True),
    }


class CreatedAtMixin:
    """
    Mixin providing a creation timestamp.

    Cache rows are replaced, never updated in place, so only the
    creation time is tracked.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        comment="Record creation timestamp (UTC)"
    )
