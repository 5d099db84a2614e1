"""
Database Persistence Layer - Core Engine.

============================================================
SHARED PRICE CACHE PERSISTENCE
============================================================

Engine and session management for the SQL-backed price cache.

Requirements:
- SQLAlchemy 2.0 ORM
- Explicit transaction management
- Connection pooling for server databases
- Single shared connection for in-memory SQLite (tests)

============================================================
"""

import logging
from typing import Generator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import QueuePool, StaticPool

from storage.models.base import Base


logger = logging.getLogger(__name__)


# =============================================================
# DATABASE ENGINE
# =============================================================


def _redact(url: str) -> str:
    return url.split("@")[-1]


def create_database_engine(
    database_url: str,
    pool_size: int = 5,
    max_overflow: int = 10,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    echo: bool = False,
) -> Engine:
    """
    Create SQLAlchemy engine with connection pooling.

    Args:
        database_url: SQLAlchemy URL
        pool_size: Number of connections to keep in pool
        max_overflow: Max connections beyond pool_size
        pool_timeout: Seconds to wait for available connection
        pool_recycle: Recycle connections after N seconds
        echo: Log SQL statements

    Returns:
        SQLAlchemy Engine
    """
    logger.info(f"Creating database engine for: {_redact(database_url)}")

    if database_url.startswith("sqlite"):
        # One shared connection so in-memory databases survive across sessions
        engine = create_engine(
            database_url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
            echo=echo,
        )
    else:
        engine = create_engine(
            database_url,
            poolclass=QueuePool,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            pool_pre_ping=True,
            echo=echo,
        )

    @event.listens_for(engine, "connect")
    def on_connect(dbapi_conn, connection_record):
        logger.debug("Database connection established")

    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    """Session factory bound to a specific engine."""
    return sessionmaker(
        bind=engine,
        autoflush=False,
        expire_on_commit=False,
    )


# =============================================================
# SESSION MANAGEMENT
# =============================================================


@contextmanager
def transaction_scope(factory: sessionmaker) -> Generator[Session, None, None]:
    """
    Context manager for explicit transaction boundaries.

    Commits only if no exception occurs.
    Rolls back on ANY exception.

    Usage:
        with transaction_scope(factory) as session:
            session.merge(record)
            # Commits automatically at end
    """
    session = factory()
    try:
        yield session
        session.commit()
    except SQLAlchemyError as e:
        logger.error(f"Database transaction failed, rolling back: {e}")
        session.rollback()
        raise DatabasePersistenceError(f"Transaction failed: {e}") from e
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# =============================================================
# DATABASE INITIALIZATION
# =============================================================


def create_all_tables(engine: Engine) -> None:
    """
    Create all tables defined in ORM models.

    Raises:
        DatabasePersistenceError if table creation fails
    """
    # Registers the models with Base.metadata
    from storage import models  # noqa: F401

    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables ensured")
    except SQLAlchemyError as e:
        logger.error(f"Failed to create database tables: {e}")
        raise DatabasePersistenceError(f"Table creation failed: {e}") from e


# =============================================================
# CUSTOM EXCEPTIONS
# =============================================================


class DatabasePersistenceError(Exception):
    """Raised when database persistence fails."""
    pass


__all__ = [
    "Base",
    "create_database_engine",
    "create_session_factory",
    "transaction_scope",
    "create_all_tables",
    "DatabasePersistenceError",
]
