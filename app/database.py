"""
Database Configuration Module

This module sets up SQLAlchemy 2.0 (asyncio extension) for the service.

Why async?
==========
Every review submission performs two dependent writes. Store I/O suspends
the request task instead of blocking a worker thread, so many concurrent
submissions can be in flight on one event loop. Production uses asyncpg,
tests use aiosqlite.

Session Management Pattern
==========================
Stores receive the session *factory*, not a session. Each store operation
opens its own session and transaction and closes it when the operation
ends, so no connection is held between the steps of a workflow:

    async with session_factory() as session:
        async with session.begin():
            ...
"""

import logging

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.config import get_settings

logger = logging.getLogger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


# =============================================================================
# Base Model Class
# =============================================================================
class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    Alembic uses Base.metadata to discover tables for migrations.
    """
    pass


# =============================================================================
# Engine and Session Factory
# =============================================================================
def get_engine() -> AsyncEngine:
    """
    Return the process-wide async engine, creating it on first use.

    The engine owns the connection pool shared by every workflow instance.
    Creation is lazy so importing the app never opens a connection.
    """
    global _engine
    if _engine is None:
        settings = get_settings()
        if settings.uses_sqlite:
            options = {"connect_args": {"check_same_thread": False}}
        else:
            options = {
                "pool_size": settings.db_pool_size,
                "max_overflow": settings.db_max_overflow,
                "pool_pre_ping": True,  # Verify connections are alive before using
            }
        _engine = create_async_engine(
            settings.database_url,
            echo=settings.debug,  # Log SQL in debug mode
            **options,
        )
        logger.info("Database engine created")
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """
    Session factory dependency.

    expire_on_commit=False keeps loaded attributes readable after a
    transaction commits, which stores rely on when converting rows to
    response schemas.
    """
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            expire_on_commit=False,
            autoflush=False,
        )
    return _session_factory


async def dispose_engine() -> None:
    """Close pooled connections on shutdown (no-op if never connected)."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        logger.info("Database engine disposed")
    _engine = None
    _session_factory = None


# =============================================================================
# Utility Functions
# =============================================================================
async def create_tables(engine: AsyncEngine | None = None) -> None:
    """
    Create all database tables.

    WARNING: In production, use Alembic migrations instead!
    """
    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_tables(engine: AsyncEngine | None = None) -> None:
    """
    Drop all database tables.

    DANGER: This deletes all data! Only use in development and tests.
    """
    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
