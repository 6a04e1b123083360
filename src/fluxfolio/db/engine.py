"""Async SQLAlchemy engine and session creation."""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from fluxfolio.db.base import Base


def create_db_engine(url: str) -> AsyncEngine:
    """Create an async SQLAlchemy engine.

    SQLite does not support pool_size / max_overflow, so those are only
    applied for server databases.
    """
    engine_kwargs: dict = {"echo": False}
    if "sqlite" not in url:
        engine_kwargs.update(pool_size=10, max_overflow=20)
    return create_async_engine(url, **engine_kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_tables(engine: AsyncEngine) -> None:
    """Create all tables (local mode and tests; no migrations)."""
    import fluxfolio.db.models  # noqa: F401 -- register all ORM models

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
