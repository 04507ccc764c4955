"""Database configuration."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from learnpath.core.config import get_settings
from learnpath.core.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()

engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DATABASE_ECHO,
    future=True,
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

SessionFactory = async_sessionmaker[AsyncSession]


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


async def init_db() -> None:
    """Create roadmap and content tables."""
    async with engine.begin() as conn:
        logger.info("Creating database tables", url=settings.DATABASE_URL)
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connections."""
    logger.info("Closing database connections")
    await engine.dispose()


@asynccontextmanager
async def get_db_session(
    factory: SessionFactory | None = None,
) -> AsyncGenerator[AsyncSession, None]:
    """Open a session that commits on success and rolls back on error.

    Args:
        factory: Session factory to use; defaults to the application engine.
    """
    session = (factory or AsyncSessionLocal)()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def get_session_factory() -> SessionFactory:
    """Session factory for FastAPI dependency injection."""
    return AsyncSessionLocal
