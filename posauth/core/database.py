"""Async SQLAlchemy engine, session factory and declarative base for posauth."""

import time
from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from posauth.core.config import settings
from posauth.core.logging import get_logger

logger = get_logger("database")


def _engine_options() -> dict[str, Any]:
    # aiosqlite uses its own pool and rejects queue sizing arguments
    if settings.is_sqlite:
        return {}
    return {
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_timeout": settings.db_pool_timeout,
        "pool_recycle": settings.db_pool_recycle,
        "pool_pre_ping": True,
    }


# echo stays off outside debug: statements carry bound parameters such as password hashes
engine = create_async_engine(
    settings.database_url,
    echo=settings.debug and settings.log_level == "DEBUG",
    **_engine_options(),
)

async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

Base = declarative_base()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session, committed when the handler returns and rolled back otherwise."""
    async with async_session_maker() as session:
        try:
            yield session
        except BaseException:
            # Includes asyncio.CancelledError from dropped client connections
            await session.rollback()
            raise
        else:
            await session.commit()


async def ping_database() -> float | None:
    """Round-trip ``SELECT 1`` and return the latency in milliseconds, or None if unreachable."""
    started = time.perf_counter()
    try:
        async with async_session_maker() as session:
            await session.execute(text("SELECT 1"))
    except (OSError, SQLAlchemyError) as e:
        logger.warning(f"Database ping failed: {e}")
        return None
    return (time.perf_counter() - started) * 1000


async def dispose_engine() -> None:
    """Close pooled connections on shutdown."""
    await engine.dispose()
