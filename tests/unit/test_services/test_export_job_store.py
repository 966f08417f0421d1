"""Tests for export job persistence and state transitions."""

import uuid
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from taskboard_api.models.export_job import ExportJob, ExportStatus
from taskboard_api.services.export_errors import InvalidTransitionError
from taskboard_api.services.export_job_store import (
    create_export_job,
    delete_export_job,
    get_export_job,
    list_expired_jobs,
    list_export_jobs,
    mark_completed,
    mark_failed,
    mark_processing,
)

ARTIFACT = {"record_count": 2, "file_path": "/tmp/x.csv", "file_name": "x.csv", "file_size_bytes": 64}


async def _insert_job(session: AsyncSession, **values: object) -> ExportJob:
    job = ExportJob(format="csv", filters={}, **values)
    session.add(job)
    await session.commit()
    return job


class TestCreateExportJob:
    """Tests for create_export_job."""

    @pytest.mark.asyncio
    async def test_creates_job(self) -> None:
        session = AsyncMock()

        await create_export_job(session, output_format="csv", filters={"status": "completed"})

        session.add.assert_called_once()
        session.commit.assert_awaited_once()
        session.refresh.assert_awaited_once()
        added = session.add.call_args[0][0]
        assert added.format == "csv"
        assert added.filters == {"status": "completed"}
        assert added.status == "pending"
        assert added.record_count == 0

    @pytest.mark.asyncio
    async def test_persisted_job_is_pending(self, async_session: AsyncSession) -> None:
        job = await create_export_job(async_session, output_format="json", filters={})

        stored = await get_export_job(async_session, job.id)
        assert stored is not None
        assert stored.status == ExportStatus.PENDING
        assert stored.created_at is not None
        assert stored.completed_at is None
        assert stored.file_path is None

    @pytest.mark.asyncio
    async def test_get_unknown_job(self, async_session: AsyncSession) -> None:
        assert await get_export_job(async_session, uuid.uuid4()) is None


class TestTransitions:
    """Tests for the guarded status transitions."""

    @pytest.mark.asyncio
    async def test_happy_path(self, async_session: AsyncSession) -> None:
        job = await create_export_job(async_session, output_format="csv", filters={})

        job = await mark_processing(async_session, job.id)
        assert job.status == ExportStatus.PROCESSING
        assert job.completed_at is None

        job = await mark_completed(async_session, job.id, **ARTIFACT)
        assert job.status == ExportStatus.COMPLETED
        assert job.record_count == 2
        assert job.file_path == "/tmp/x.csv"
        assert job.file_name == "x.csv"
        assert job.file_size_bytes == 64
        assert job.error is None
        assert job.completed_at is not None

    @pytest.mark.asyncio
    async def test_cannot_complete_pending_job(self, async_session: AsyncSession) -> None:
        job = await create_export_job(async_session, output_format="csv", filters={})

        with pytest.raises(InvalidTransitionError):
            await mark_completed(async_session, job.id, **ARTIFACT)

        stored = await get_export_job(async_session, job.id)
        assert stored.status == ExportStatus.PENDING
        assert stored.file_path is None

    @pytest.mark.asyncio
    async def test_rejected_transition_leaves_held_job_readable(self, async_session: AsyncSession) -> None:
        job = await create_export_job(async_session, output_format="json", filters={"status": "pending"})

        with pytest.raises(InvalidTransitionError):
            await mark_completed(async_session, job.id, **ARTIFACT)

        assert job.status == ExportStatus.PENDING
        assert job.filters == {"status": "pending"}
        assert job.file_path is None

    @pytest.mark.asyncio
    async def test_processing_twice_is_rejected(self, async_session: AsyncSession) -> None:
        job = await create_export_job(async_session, output_format="csv", filters={})
        await mark_processing(async_session, job.id)

        with pytest.raises(InvalidTransitionError, match="processing"):
            await mark_processing(async_session, job.id)

    @pytest.mark.asyncio
    async def test_terminal_jobs_do_not_move(self, async_session: AsyncSession) -> None:
        job = await create_export_job(async_session, output_format="csv", filters={})
        await mark_processing(async_session, job.id)
        await mark_completed(async_session, job.id, **ARTIFACT)

        with pytest.raises(InvalidTransitionError):
            await mark_failed(async_session, job.id, "late failure")
        with pytest.raises(InvalidTransitionError):
            await mark_processing(async_session, job.id)

        stored = await get_export_job(async_session, job.id)
        assert stored.status == ExportStatus.COMPLETED
        assert stored.error is None

    @pytest.mark.asyncio
    async def test_failed_records_error_and_clears_artifact(self, async_session: AsyncSession) -> None:
        job = await create_export_job(async_session, output_format="csv", filters={})
        await mark_processing(async_session, job.id)

        job = await mark_failed(async_session, job.id, "OSError: disk full")

        assert job.status == ExportStatus.FAILED
        assert job.error == "OSError: disk full"
        assert job.file_path is None
        assert job.completed_at is not None

    @pytest.mark.asyncio
    async def test_pending_job_can_fail(self, async_session: AsyncSession) -> None:
        job = await create_export_job(async_session, output_format="csv", filters={})

        job = await mark_failed(async_session, job.id, "")

        assert job.status == ExportStatus.FAILED
        assert job.error == "Unknown error"

    @pytest.mark.asyncio
    async def test_completed_at_is_never_overwritten(self, async_session: AsyncSession) -> None:
        first = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)
        job = await _insert_job(async_session, status="processing", completed_at=first)

        job = await mark_completed(async_session, job.id, **ARTIFACT)

        assert job.completed_at.replace(tzinfo=UTC) == first

    @pytest.mark.asyncio
    async def test_negative_record_count_rejected(self, async_session: AsyncSession) -> None:
        job = await create_export_job(async_session, output_format="csv", filters={})
        await mark_processing(async_session, job.id)

        with pytest.raises(ValueError, match="non-negative"):
            await mark_completed(async_session, job.id, **{**ARTIFACT, "record_count": -1})

    @pytest.mark.asyncio
    async def test_unknown_job_is_invalid_transition(self, async_session: AsyncSession) -> None:
        with pytest.raises(InvalidTransitionError):
            await mark_processing(async_session, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_only_one_concurrent_writer_wins(
        self,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        async with session_factory() as session:
            job = await create_export_job(session, output_format="csv", filters={})

        async with session_factory() as first, session_factory() as second:
            await mark_processing(first, job.id)
            with pytest.raises(InvalidTransitionError):
                await mark_processing(second, job.id)


class TestListExportJobs:
    """Tests for list_export_jobs."""

    @pytest.mark.asyncio
    async def test_newest_first_with_pagination(self, async_session: AsyncSession) -> None:
        base = datetime(2024, 1, 1, tzinfo=UTC)
        for day in range(5):
            await _insert_job(async_session, status="completed", created_at=base + timedelta(days=day))

        jobs, total = await list_export_jobs(async_session, page=1, page_size=2)
        assert total == 5
        assert len(jobs) == 2
        assert jobs[0].created_at > jobs[1].created_at

        last_page, _ = await list_export_jobs(async_session, page=3, page_size=2)
        assert len(last_page) == 1
        assert last_page[0].created_at.day == 1

    @pytest.mark.asyncio
    async def test_status_filter(self, async_session: AsyncSession) -> None:
        await _insert_job(async_session, status="completed")
        await _insert_job(async_session, status="failed", error="x")
        await _insert_job(async_session, status="pending")

        jobs, total = await list_export_jobs(async_session, status_filter="failed")
        assert total == 1
        assert jobs[0].status == "failed"


class TestRetentionQueries:
    """Tests for list_expired_jobs and delete_export_job."""

    @pytest.mark.asyncio
    async def test_only_old_terminal_jobs_are_expired(self, async_session: AsyncSession) -> None:
        now = datetime(2024, 6, 30, tzinfo=UTC)
        old = now - timedelta(days=10)
        old_completed = await _insert_job(async_session, status="completed", created_at=old)
        old_failed = await _insert_job(async_session, status="failed", error="x", created_at=old)
        await _insert_job(async_session, status="pending", created_at=old)
        await _insert_job(async_session, status="processing", created_at=old)
        await _insert_job(async_session, status="completed", created_at=now - timedelta(days=1))

        expired = await list_expired_jobs(async_session, now - timedelta(days=7))

        assert {job.id for job in expired} == {old_completed.id, old_failed.id}

    @pytest.mark.asyncio
    async def test_delete_refuses_non_terminal(self, async_session: AsyncSession) -> None:
        pending = await _insert_job(async_session, status="pending")
        completed = await _insert_job(async_session, status="completed")

        assert await delete_export_job(async_session, pending.id) is False
        assert await delete_export_job(async_session, completed.id) is True
        assert await get_export_job(async_session, pending.id) is not None
        assert await get_export_job(async_session, completed.id) is None
