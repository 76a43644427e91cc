"""SQLAlchemy 2.x async database setup using asyncpg.

This module defines the async engine and session factory but does not
hard-code any connection credentials.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .config import settings


engine: AsyncEngine = create_async_engine(
    settings.db.url,
    echo=settings.db.echo,
    pool_size=settings.db.pool_size,
    max_overflow=settings.db.max_overflow,
)

# One session per storage read; the search pipeline runs its fetches concurrently
# and an AsyncSession must not be shared between concurrent tasks.
AsyncSessionMaker = async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)
