"""
Database engine and session helpers.

The engine and session factory are owned by the ServiceContext; routes get a
session through the ``get_db`` dependency.
"""
from typing import AsyncIterator

from fastapi import Request
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from notifyhub.config import Settings


def engine_options(url: str, settings: Settings | None = None) -> dict:
    """Pool and driver options for the given database URL."""
    if url.startswith("sqlite"):
        return {}

    kwargs = {"pool_pre_ping": True}
    if settings is not None:
        kwargs.update(
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_timeout=settings.DB_POOL_TIMEOUT,
            echo=False,
        )
        if "+asyncpg" in url:
            # asyncpg per-statement timeout, in seconds
            kwargs["connect_args"] = {"command_timeout": settings.DB_COMMAND_TIMEOUT}
    return kwargs


def build_engine(url: str, settings: Settings | None = None) -> AsyncEngine:
    """Create the async engine with a bounded connection pool."""
    return create_async_engine(url, **engine_options(url, settings))


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """FastAPI dependency yielding a session from the app's service context."""
    session_factory = request.app.state.context.session_factory
    async with session_factory() as session:
        yield session
