"""
Database Session Management Module.

Async session management using SQLAlchemy 2.0 async patterns.

Connections are explicit handles: callers create a session factory once and
pass it (or sessions made from it) to the code that needs them. There is no
module-level engine.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from fieldvault.app_context import ConfigLoader

_logger = logging.getLogger(__name__)


def create_engine_from_config(config: ConfigLoader | None = None) -> AsyncEngine:
    """Create an async engine for the configured DATABASE_URL."""
    if config is None:
        config = ConfigLoader()
        config.load()
    return create_async_engine(config.get("database.url"), pool_pre_ping=True)


def create_session_factory(engine: AsyncEngine | str) -> async_sessionmaker[AsyncSession]:
    """
    Create an async session factory.

    Args:
        engine: An AsyncEngine, or a database URL to build one from.

    Returns:
        async_sessionmaker[AsyncSession]: Session factory bound to the engine.
    """
    if isinstance(engine, str):
        engine = create_async_engine(engine)

    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@asynccontextmanager
async def session_scope(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """
    Context manager for standalone database sessions.

    Commits on success, rolls back on error.

    Example:
        async with session_scope(factory) as session:
            user = await find_user_by_email(session, email)
    """
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_database(engine: AsyncEngine) -> None:
    """
    Initialize database schema.

    Creates all tables defined in models if they don't exist.
    """
    from fieldvault.database.base import Base
    import fieldvault.models  # noqa: F401 - Import to register models with Base.metadata

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    _logger.info("Database schema initialized")
