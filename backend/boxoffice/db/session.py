"""
Async engine and session factory.

PostgreSQL (asyncpg) runs with a sized connection pool; SQLite (aiosqlite)
is used for local runs and tests and gets WAL + busy_timeout so concurrent
writers queue instead of failing immediately.
"""

from functools import lru_cache
from typing import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from boxoffice.core.config import get_settings


def make_engine(database_url: str) -> AsyncEngine:
    settings = get_settings()
    kw = dict(pool_pre_ping=True)

    if database_url.startswith("postgresql+asyncpg://"):
        kw.update(
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_timeout=settings.DB_POOL_TIMEOUT,
            pool_recycle=settings.DB_POOL_RECYCLE,
        )

    engine = create_async_engine(database_url, **kw)

    if database_url.startswith("sqlite+aiosqlite://"):
        @event.listens_for(engine.sync_engine, "connect")
        def _sqlite_pragmas(dbapi_connection, _):
            cur = dbapi_connection.cursor()
            cur.execute("PRAGMA journal_mode=WAL;")
            cur.execute("PRAGMA busy_timeout=5000;")
            cur.execute("PRAGMA foreign_keys=ON;")
            cur.close()

    return engine


def make_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@lru_cache()
def get_engine() -> AsyncEngine:
    return make_engine(get_settings().DATABASE_URL)


@lru_cache()
def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    return make_sessionmaker(get_engine())


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session: commit on success, roll back on error."""
    async with get_sessionmaker()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
