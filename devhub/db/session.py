"""Database engine and session management."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from devhub.core.config import settings
from devhub.core.exceptions import DatabaseError
from devhub.core.logging import get_logger

logger = get_logger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_async_engine() -> AsyncEngine:
    """Get or create the async database engine.

    Returns:
        SQLAlchemy async engine instance.
    """
    global _engine

    if _engine is None:
        db = settings.database
        logger.info("Creating database engine", url=_mask_password(db.url))

        kwargs: dict = {"echo": db.echo}
        if not db.is_sqlite:
            kwargs.update(
                pool_size=db.pool_size,
                max_overflow=db.max_overflow,
                pool_pre_ping=True,
            )
        _engine = create_async_engine(db.url, **kwargs)

    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create the session factory."""
    global _session_factory

    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_async_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    return _session_factory


@asynccontextmanager
async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Get an async database session.

    Commits when the block exits cleanly and rolls back otherwise.
    Driver errors surface as DatabaseError.

    Yields:
        AsyncSession instance.
    """
    session_factory = get_session_factory()
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error("Database operation failed", error=str(e))
            raise DatabaseError(str(e)) from e
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Create all tables defined in the models."""
    from devhub.db.models import Base

    async with get_async_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Database tables initialized")


async def drop_db() -> None:
    """Drop all tables. Used by the test suite."""
    from devhub.db.models import Base

    async with get_async_engine().begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def check_database() -> bool:
    """Run a trivial query to confirm the database answers."""
    try:
        async with get_async_session() as session:
            await session.execute(text("SELECT 1"))
        return True
    except DatabaseError:
        return False


async def close_db() -> None:
    """Close database connections."""
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
        logger.info("Database connections closed")


def reset_engine() -> None:
    """Forget the cached engine so the next call rebuilds it from settings."""
    global _engine, _session_factory
    _engine = None
    _session_factory = None


def _mask_password(url: str) -> str:
    """Mask password in database URL for logging."""
    if "@" in url and "://" in url:
        protocol, rest = url.split("://", 1)
        credentials, host_part = rest.rsplit("@", 1)
        if ":" in credentials:
            user, _ = credentials.split(":", 1)
            return f"{protocol}://{user}:***@{host_part}"
    return url
