"""
Async database session management for the CRM scoring engine.

Provides async engine, session factory, and a transactional session helper.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
    AsyncEngine,
)

from .models import Base

logger = logging.getLogger(__name__)

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def normalize_url(database_url: str) -> str:
    """Ensure an async driver is named in the URL."""
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if database_url.startswith("sqlite://"):
        return database_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return database_url


async def init_db(
    database_url: str,
    pool_size: int = 5,
    max_overflow: int = 10,
) -> async_sessionmaker[AsyncSession]:
    """
    Initialize the async database engine and create tables.

    Args:
        database_url: PostgreSQL (asyncpg) or SQLite (aiosqlite) connection string
        pool_size: Connection pool size, ignored for SQLite
        max_overflow: Max overflow connections, ignored for SQLite

    Returns:
        The session factory
    """
    global _engine, _session_factory

    database_url = normalize_url(database_url)
    kwargs = {}
    if not database_url.startswith("sqlite"):
        kwargs = {"pool_size": pool_size, "max_overflow": max_overflow}

    _engine = create_async_engine(database_url, echo=False, **kwargs)

    _session_factory = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    # Create tables (use Alembic in production)
    async with _engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Database initialized")
    return _session_factory


async def close_db():
    """Close the database engine."""
    global _engine, _session_factory
    if _engine:
        await _engine.dispose()
        logger.info("Database connection closed")
    _engine = None
    _session_factory = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    if not _session_factory:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _session_factory


@asynccontextmanager
async def transaction(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> AsyncIterator[AsyncSession]:
    """Yield a session that commits on success and rolls back on error."""
    factory = session_factory or get_session_factory()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
