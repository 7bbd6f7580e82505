"""Engine, session factory and the per-request read scope."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .config import FetchSettings, get_settings


logger = logging.getLogger(__name__)


def create_engine(settings: FetchSettings | None = None) -> AsyncEngine:
    settings = settings or get_settings()
    logger.debug("creating engine for %s", settings.database_url)

    return create_async_engine(settings.database_url, echo=settings.echo_sql)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


@asynccontextmanager
async def read_scope(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """Yield a session inside one transaction for a single retrieval.

    The session begins its transaction on the first statement, is private
    to the caller, and is rolled back and closed on exit: retrievals never
    write.
    """
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.rollback()
