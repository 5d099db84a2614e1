"""
Storage Models Package.

ORM models for the price engine database.

============================================================
MODEL ORGANIZATION
============================================================

- base.py: Declarative base and mixins
- price_cache.py: PriceCacheRecord (shared expiring cache)

============================================================
"""

from storage.models.base import Base, CreatedAtMixin
from storage.models.price_cache import PriceCacheRecord


__all__ = [
    "Base",
    "CreatedAtMixin",
    "PriceCacheRecord",
]
