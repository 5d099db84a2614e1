"""
Database Package Initialization.

============================================================
SHARED PRICE CACHE PERSISTENCE
============================================================

Engine and transaction management for the SQL-backed price
cache. Table definitions live in storage.models.

============================================================
"""

from .engine import (
    # Declarative base
    Base,

    # Engine creation
    create_database_engine,

    # Session management
    create_session_factory,
    transaction_scope,

    # Initialization
    create_all_tables,

    # Exceptions
    DatabasePersistenceError,
)


__all__ = [
    "Base",
    "create_database_engine",
    "create_session_factory",
    "transaction_scope",
    "create_all_tables",
    "DatabasePersistenceError",
]
