"""Database configuration and async session management."""

from typing import AsyncGenerator

from sqlalchemy import ColumnElement, func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

from .config import settings


# Create async engine
engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    future=True,
    pool_pre_ping=True,
    # Use StaticPool for SQLite in-memory databases (if needed for testing)
    poolclass=StaticPool if "sqlite" in settings.database_url else None,
    connect_args={"check_same_thread": False} if "sqlite" in settings.database_url else {},
)

# Create async session factory
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
    autocommit=False,
)

# Create declarative base for models
Base = declarative_base()


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency function that yields database sessions.

    Yields:
        AsyncSession: Database session
    """
    async with async_session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# Alias for FastAPI dependency injection
get_db = get_async_session


def is_postgresql(session: AsyncSession) -> bool:
    """Return True when the session is bound to a PostgreSQL engine."""
    return bool(session.bind) and session.bind.dialect.name == "postgresql"


def floor_at_zero(session: AsyncSession, expression: ColumnElement) -> ColumnElement:
    """
    Clamp a numeric SQL expression at zero.

    PostgreSQL spells this GREATEST(0, x); SQLite's scalar max() takes the same
    arguments.
    """
    if is_postgresql(session):
        return func.greatest(0, expression)
    return func.max(0, expression)


def session_factory_for(session: AsyncSession) -> async_sessionmaker[AsyncSession]:
    """Build a session factory bound to the same engine as ``session``."""
    return async_sessionmaker(
        session.bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_db() -> None:
    """Initialize the database by creating all tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connections."""
    await engine.dispose()
