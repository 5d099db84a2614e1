"""
Database Engine Tests.

============================================================
PURPOSE
============================================================
Verify engine creation and transaction boundaries for the
SQL-backed price cache.

TEST PRINCIPLES:
- In-memory SQLite only
- Commit on success, rollback on any error
- Callers always supply their own session factory

============================================================
"""

from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

import database
from database.engine import (
    DatabasePersistenceError,
    create_all_tables,
    create_database_engine,
    create_session_factory,
    transaction_scope,
)
from storage.models.price_cache import PriceCacheRecord


NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def factory():
    """Session factory over a fresh in-memory database."""
    engine = create_database_engine("sqlite:///:memory:")
    create_all_tables(engine)
    yield create_session_factory(engine)
    engine.dispose()


def make_record(key: str) -> PriceCacheRecord:
    return PriceCacheRecord(cache_key=key, value=1.0, created_at=NOW, expires_at_epoch=1e12)


def count_records(factory) -> int:
    with transaction_scope(factory) as session:
        return session.execute(select(func.count()).select_from(PriceCacheRecord)).scalar_one()


# ============================================================
# TRANSACTION SCOPE
# ============================================================

class TestTransactionScope:
    """Tests for transaction_scope."""

    def test_commits_on_success(self, factory):
        """Test rows written inside the scope are persisted."""
        with transaction_scope(factory) as session:
            session.add(make_record("a"))

        assert count_records(factory) == 1

    def test_database_error_rolls_back(self, factory):
        """Test SQLAlchemy errors roll back and surface as DatabasePersistenceError."""
        with pytest.raises(DatabasePersistenceError):
            with transaction_scope(factory) as session:
                session.add(make_record("a"))
                session.flush()
                raise SQLAlchemyError("boom")

        assert count_records(factory) == 0

    def test_other_errors_propagate(self, factory):
        """Test non-database errors roll back and propagate unchanged."""
        with pytest.raises(ValueError):
            with transaction_scope(factory) as session:
                session.add(make_record("a"))
                session.flush()
                raise ValueError("bad value")

        assert count_records(factory) == 0

    def test_factory_is_required(self):
        """Test there is no process-wide session to fall back on."""
        with pytest.raises(TypeError):
            with transaction_scope():
                pass


class TestPackageSurface:
    """Tests for the database package exports."""

    def test_exports(self):
        """Test only the engine, session and table helpers are exported."""
        assert set(database.__all__) == {
            "Base",
            "create_database_engine",
            "create_session_factory",
            "transaction_scope",
            "create_all_tables",
            "DatabasePersistenceError",
        }
