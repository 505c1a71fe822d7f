"""Database connection and session management for buildledger.

Engines are owned by the remote document backend; nothing here is touched
when no DATABASE_URL is set.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from buildledger.config import DBConfig
from buildledger.db.models import Base


def create_engine_for(db_config: DBConfig) -> AsyncEngine:
    """Build an async engine from a DBConfig.

    Raises:
        RuntimeError: If no database URL is configured
    """
    if not db_config.url:
        raise RuntimeError("DATABASE_URL is not configured; remote storage is unavailable")

    engine_kwargs: dict = {"echo": db_config.echo}

    # SQLite doesn't support connection pooling parameters
    if "sqlite" not in db_config.url.lower():
        engine_kwargs.update({
            "pool_size": db_config.pool_size,
            "max_overflow": db_config.pool_max_overflow,
            "pool_timeout": db_config.pool_timeout,
            "pool_pre_ping": True,
            "pool_recycle": 3600,
        })

    return create_async_engine(db_config.url, **engine_kwargs)


def make_session_factory(engine: AsyncEngine) -> sessionmaker:
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@asynccontextmanager
async def session_scope(session_factory: sessionmaker) -> AsyncGenerator[AsyncSession, None]:
    """Open a session that commits on success and rolls back on error.

    Usage:
        async with session_scope(factory) as session:
            result = await session.execute(query)
    """
    session = session_factory()

    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def init_db(engine: AsyncEngine, drop: bool = False) -> None:
    """Create all document tables (optionally dropping them first)."""
    async with engine.begin() as conn:
        if drop:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
