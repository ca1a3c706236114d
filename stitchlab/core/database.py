"""Async SQLAlchemy 2.0 engine, sessions and the declarative base.

The API and the refresh CLI share one engine per process. Request handlers
get a session through :func:`get_db`; scripts and background refreshes use
:func:`session_scope`.
"""

from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from stitchlab.core.config import get_settings


class Base(DeclarativeBase):
    """Declarative base for production tables and rollup rows."""


@lru_cache
def get_engine() -> AsyncEngine:
    """Create the async engine from settings (one pool per process).

    SQLite URLs (local runs and tests) get the driver's default pool; server
    databases get a pre-pinged, bounded pool.
    """
    settings = get_settings()
    options: dict[str, Any] = {"echo": settings.debug}
    if not settings.database_url.startswith("sqlite"):
        options.update(
            pool_pre_ping=True,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
        )
    return create_async_engine(settings.database_url, **options)


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the process engine."""
    return async_sessionmaker(
        get_engine(),
        class_=AsyncSession,
        expire_on_commit=False,
    )


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """Session that commits when the block exits cleanly and rolls back otherwise."""
    async with get_session_maker()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a request-scoped session.

    Yields:
        AsyncSession committed after the handler returns.
    """
    async with session_scope() as session:
        yield session
