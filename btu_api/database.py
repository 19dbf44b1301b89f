from typing import AsyncIterator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from btu_api.config import get_settings

Base = declarative_base()

# Created on first use so importing models never needs a live DATABASE_URL
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """
    Get or create the async engine.

    Non-SQLite databases get a bounded pool: at most DB_POOL_SIZE connections,
    no overflow, and callers queue for up to DB_POOL_TIMEOUT seconds.
    """
    global _engine
    if _engine is None:
        settings = get_settings()
        url = settings.DATABASE_URL

        if url.startswith("sqlite"):
            _engine = create_async_engine(url, future=True, echo=False)
        else:
            _engine = create_async_engine(
                url,
                future=True,
                echo=False,
                pool_size=settings.DB_POOL_SIZE,
                max_overflow=0,
                pool_timeout=settings.DB_POOL_TIMEOUT,
                pool_pre_ping=True,
            )
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _session_factory


async def init_db() -> None:
    """
    Import models and create tables if they don't exist.
    Schema migrations are managed outside the service; this keeps local dev sane.
    """
    from btu_api import models  # noqa: F401

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


async def get_db() -> AsyncIterator[AsyncSession]:
    """
    FastAPI dependency that gives you a DB session and cleans it up after.
    """
    async with get_session_factory()() as session:
        yield session


async def ping(db: AsyncSession) -> None:
    """Cheap round-trip used by the health check. Raises on failure."""
    await db.execute(text("SELECT 1"))
