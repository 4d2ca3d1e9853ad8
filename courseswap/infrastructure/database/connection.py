# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Database connection management using SQLAlchemy async.

This module provides async connections for the swap database, which stores
swap requests and matches alongside the profile, course, time slot and
enrollment tables the swap engine reads.

Uses SQLAlchemy 2.0 async API with the asyncpg driver. SQLite URLs
(sqlite+aiosqlite) are accepted for local runs and tests.

Example:
    from courseswap.infrastructure.database.connection import (
        init_database,
        get_session,
    )

    # Initialize at application startup
    await init_database(settings)

    # Use in request handlers
    async with get_session() as session:
        result = await session.execute(select(SwapRequestRecord))
        requests = result.scalars().all()
"""

import logging
import threading
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, AsyncIterator, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from courseswap.infrastructure.database.models import Base

if TYPE_CHECKING:
    from courseswap.core.config.settings import Settings

logger = logging.getLogger(__name__)

# Module-level state for the application's connection
_engine: Optional[AsyncEngine] = None
_sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None


class DatabaseError(Exception):
    """Base exception for database operations.

    Attributes:
        message: Human-readable error description.
        original_error: The underlying SQLAlchemy or database error.
    """

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        """Initialize the database error.

        Args:
            message: Human-readable error description.
            original_error: The underlying exception that caused this error.
        """
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


def _engine_options(settings: "Settings") -> dict[str, Any]:
    """Build create_async_engine keyword arguments for the configured URL."""
    options: dict[str, Any] = {"echo": settings.debug and settings.log_level == "DEBUG"}
    if not settings.database.uses_sqlite:
        # SQLite uses a static/singleton pool that rejects sizing arguments
        options.update(
            pool_size=settings.database.pool_size,
            max_overflow=settings.database.max_overflow,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
    return options


def build_engine(settings: "Settings") -> AsyncEngine:
    """Create an async engine for the configured database.

    Raises:
        DatabaseError: If the engine cannot be created.
    """
    try:
        return create_async_engine(settings.database.url, **_engine_options(settings))
    except SQLAlchemyError as e:
        raise DatabaseError("Failed to create database engine", e) from e


def build_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create the sessionmaker used by services and workers."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_database(settings: "Settings") -> None:
    """Initialize the database connection pool.

    This should be called once at application startup.

    Args:
        settings: Application settings containing database configuration.

    Raises:
        DatabaseError: If connection pool creation fails.
    """
    global _engine, _sessionmaker

    _engine = build_engine(settings)
    _sessionmaker = build_sessionmaker(_engine)
    logger.info("Database engine initialized (sqlite=%s)", settings.database.uses_sqlite)


async def close_database() -> None:
    """Close the database connection pool.

    This should be called at application shutdown.
    """
    global _engine, _sessionmaker

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _sessionmaker = None


def get_engine() -> AsyncEngine:
    """Get the database async engine.

    Raises:
        DatabaseError: If the database has not been initialized.
    """
    if _engine is None:
        raise DatabaseError("Database not initialized. Call init_database() first.")
    return _engine


def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    """Get the database sessionmaker.

    Raises:
        DatabaseError: If the database has not been initialized.
    """
    if _sessionmaker is None:
        raise DatabaseError("Database not initialized. Call init_database() first.")
    return _sessionmaker


@asynccontextmanager
async def get_session() -> AsyncIterator[AsyncSession]:
    """Get an async session.

    The session is automatically committed on success and rolled back
    on exception.

    Yields:
        AsyncSession for database operations.

    Raises:
        DatabaseError: If the database has not been initialized or
            if a database operation fails.

    Example:
        async with get_session() as session:
            service = SwapService(session, store, directory)
            await service.sweep()
    """
    sessionmaker = get_sessionmaker()

    async with sessionmaker() as session:
        try:
            yield session
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            raise DatabaseError("Database operation failed", e) from e
        except Exception:
            await session.rollback()
            raise


async def check_database_connection() -> bool:
    """Check if the database is reachable.

    Returns:
        True if the database is reachable, False otherwise.
    """
    if _engine is None:
        return False

    try:
        async with _engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError:
        return False


async def create_schema(engine: AsyncEngine | None = None) -> None:
    """Create all tables that do not exist yet.

    Args:
        engine: Engine to use, defaults to the initialized module engine.

    Raises:
        DatabaseError: If table creation fails.
    """
    engine = engine or get_engine()
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except SQLAlchemyError as e:
        raise DatabaseError("Failed to create database schema", e) from e


# =============================================================================
# WORKER THREAD-LOCAL CONNECTIONS
# =============================================================================

# Each Dramatiq worker thread runs its own event loop (see tasks/base.py),
# and async engines are bound to the loop that created them.
_thread_local = threading.local()


def get_worker_sessionmaker() -> async_sessionmaker[AsyncSession]:
    """Get a sessionmaker bound to the current worker thread.

    The engine is created lazily on first use in each thread.

    Example:
        @dramatiq.actor
        def my_task():
            async def _process():
                async with get_worker_sessionmaker()() as session:
                    ...
            return run_async(_process())
    """
    sessionmaker = getattr(_thread_local, "sessionmaker", None)

    if sessionmaker is None:
        from courseswap.core.config import get_settings

        engine = build_engine(get_settings())
        sessionmaker = build_sessionmaker(engine)
        _thread_local.engine = engine
        _thread_local.sessionmaker = sessionmaker

    return sessionmaker


def clear_thread_db_connections() -> None:
    """Drop the current thread's cached engine and sessionmaker.

    Called by run_async() when a new event loop is created for a thread.
    The engine is not disposed because its loop may already be closed.
    """
    _thread_local.engine = None
    _thread_local.sessionmaker = None
