"""
Database connection and session management.

Engines and session factories are built by the application factory and
kept on app.state, so tests can point the app at another database.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
)

from edunexia_authz.core.config import DatabaseSettings


def create_engine(db_settings: DatabaseSettings) -> AsyncEngine:
    """Create the async engine for the configured URL."""
    return create_async_engine(db_settings.url, echo=db_settings.echo)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """Initialize database (create tables)."""
    from .base import Base
    from . import audit, rbac  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db(engine: AsyncEngine) -> None:
    """Close database connections."""
    await engine.dispose()
