"""Tests for the export task source."""

import uuid
from datetime import UTC, datetime

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard_api.lib.task_query import build_task_predicate
from taskboard_api.models.task import Task
from taskboard_api.services.task_source import TaskSource, task_to_dict


class TestTaskToDict:
    def test_all_export_fields(self) -> None:
        task_id = uuid.uuid4()
        created = datetime(2024, 1, 1, tzinfo=UTC)
        task = Task(
            id=task_id,
            title="Write",
            description=None,
            status="pending",
            priority="low",
            created_at=created,
            updated_at=created,
            estimated_time=10,
        )

        record = task_to_dict(task)

        assert record["id"] == str(task_id)
        assert record["title"] == "Write"
        assert record["description"] is None
        assert record["created_at"] == created
        assert record["estimated_time"] == 10
        assert record["actual_time"] is None


class TestTaskSource:
    """Tests for TaskSource.iter_batches."""

    @pytest.mark.asyncio
    async def test_batches_respect_size(self, async_session: AsyncSession, task_factory) -> None:
        await task_factory(*[{} for _ in range(7)])

        batches = [batch async for batch in TaskSource(async_session).iter_batches([], batch_size=3)]

        assert [len(batch) for batch in batches] == [3, 3, 1]

    @pytest.mark.asyncio
    async def test_newest_first(self, async_session: AsyncSession, task_factory) -> None:
        await task_factory(
            {"title": "middle", "created_at": datetime(2024, 2, 1, tzinfo=UTC)},
            {"title": "newest", "created_at": datetime(2024, 3, 1, tzinfo=UTC)},
            {"title": "oldest", "created_at": datetime(2024, 1, 1, tzinfo=UTC)},
        )

        records = [r async for batch in TaskSource(async_session).iter_batches([]) for r in batch]

        assert [r["title"] for r in records] == ["newest", "middle", "oldest"]

    @pytest.mark.asyncio
    async def test_predicate_applied(self, async_session: AsyncSession, task_factory) -> None:
        await task_factory({"status": "completed"}, {"status": "pending"}, {"status": "completed"})

        predicate = build_task_predicate({"status": "completed"})
        records = [r async for batch in TaskSource(async_session).iter_batches(predicate) for r in batch]

        assert len(records) == 2
        assert {r["status"] for r in records} == {"completed"}

    @pytest.mark.asyncio
    async def test_no_matches_yields_nothing(self, async_session: AsyncSession, task_factory) -> None:
        await task_factory({"status": "pending"})

        predicate = build_task_predicate({"status": "completed"})
        batches = [batch async for batch in TaskSource(async_session).iter_batches(predicate)]

        assert batches == []

    @pytest.mark.asyncio
    async def test_each_batch_is_released_from_session(self, async_session: AsyncSession, task_factory) -> None:
        await task_factory(*[{} for _ in range(5)])

        seen = []
        async for batch in TaskSource(async_session).iter_batches([], batch_size=2):
            assert len(async_session.sync_session.identity_map) == 0
            seen.extend(record["title"] for record in batch)

        assert seen == [f"Task {i}" for i in range(5)]
