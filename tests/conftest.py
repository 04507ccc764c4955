"""Shared fixtures: in-memory database, progress storage and graph store."""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

import learnpath.models  # noqa: F401  (registers tables)
from learnpath.core.database import Base
from learnpath.core.local_storage import JsonFileStorage
from learnpath.services.graph_store import RoadmapGraphStore
from learnpath.services.progress_tracker import ProgressTracker


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def test_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def progress_dir(tmp_path: Path) -> Path:
    return tmp_path / "progress"


@pytest.fixture
def tracker(progress_dir: Path) -> ProgressTracker:
    return ProgressTracker(JsonFileStorage(progress_dir))


@pytest.fixture
def store(
    tracker: ProgressTracker, session_factory: async_sessionmaker[AsyncSession]
) -> RoadmapGraphStore:
    return RoadmapGraphStore(tracker, session_factory=session_factory)
