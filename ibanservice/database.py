"""Async database engine and session management.

Uses SQLAlchemy 2.0 async with the asyncpg driver in production.
Graceful degradation: if the database is unreachable, the service keeps
validating IBANs and the bank-code / BIC augmentation degrades.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

logger = logging.getLogger(__name__)


def create_engine(database_url: str) -> AsyncEngine:
    """Create the engine. An unusable URL or missing driver raises here (fatal at startup)."""
    return create_async_engine(
        database_url,
        echo=False,
        pool_pre_ping=True,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine) -> bool:
    """Create tables if they don't exist. Returns True on success."""
    from ibanservice.models import Base

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database initialized successfully")
        return True
    except Exception as e:
        logger.warning("Database unavailable — continuing without bank data: %s", str(e)[:200])
        return False


async def close_db(engine: AsyncEngine):
    """Dispose engine connections on shutdown."""
    await engine.dispose()
    logger.info("Database connections closed")
