"""Shared test fixtures for the async database, sessions, and seeded tasks."""

import uuid
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from taskboard_api.core.config import Settings
from taskboard_api.models.base import Base
from taskboard_api.models.task import Task

TaskFactory = Callable[..., Awaitable[list[Task]]]


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Test application settings."""
    return Settings(  # type: ignore[call-arg]
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        export_dir=str(tmp_path / "exports"),
        export_cleanup_enabled=False,
    )


@pytest.fixture
async def async_engine(settings: Settings) -> AsyncGenerator[AsyncEngine]:
    """Create a file-backed async SQLite engine.

    A file is used instead of ``:memory:`` because the export service opens
    several sessions per job and each needs to see the same data.
    """
    engine = create_async_engine(settings.database_url, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, expire_on_commit=False)


@pytest.fixture
async def async_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession]:
    """Create a per-test async session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def task_factory(session_factory: async_sessionmaker[AsyncSession]) -> TaskFactory:
    """Insert tasks; later entries get older ``created_at`` values."""

    async def _create(*specs: dict[str, Any]) -> list[Task]:
        base = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)
        tasks = []
        for index, spec in enumerate(specs):
            values = {
                "id": uuid.uuid4(),
                "title": f"Task {index}",
                "created_at": base - timedelta(hours=index),
                "updated_at": base - timedelta(hours=index),
                **spec,
            }
            tasks.append(Task(**values))
        async with session_factory() as session:
            session.add_all(tasks)
            await session.commit()
        return tasks

    return _create
