"""Export job store: persistence and state transitions for ExportJob rows.

Every status change is a single conditional UPDATE guarded by the job's
expected current status, so a transition and the fields that depend on it
become visible together, and two writers can never both move the same job.
"""

import uuid
from datetime import UTC, datetime
from typing import Any

from loguru import logger
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard_api.models.export_job import TERMINAL_STATUSES, ExportJob, ExportStatus
from taskboard_api.services.export_errors import InvalidTransitionError


async def create_export_job(
    session: AsyncSession,
    *,
    output_format: str,
    filters: dict[str, Any],
) -> ExportJob:
    """Insert a new ``pending`` export job.

    Args:
        session: Database session.
        output_format: Output format (csv, json).
        filters: Normalized filter mapping.

    Returns:
        The created ExportJob.
    """
    job = ExportJob(
        format=output_format,
        filters=filters,
        status=ExportStatus.PENDING.value,
        record_count=0,
    )
    session.add(job)
    await session.commit()
    await session.refresh(job)
    logger.info(f"Created export job {job.id} (format={output_format})")
    return job


async def get_export_job(
    session: AsyncSession,
    job_id: uuid.UUID,
) -> ExportJob | None:
    """Get an export job by ID, bypassing any stale identity-map copy."""
    return await session.get(ExportJob, job_id, populate_existing=True)


async def list_export_jobs(
    session: AsyncSession,
    *,
    status_filter: str | None = None,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[ExportJob], int]:
    """List export jobs newest first.

    Args:
        session: Database session.
        status_filter: Optional status to filter by.
        page: Page number (1-based).
        page_size: Items per page.

    Returns:
        Tuple of (jobs, total count).
    """
    query = select(ExportJob)
    count_query = select(func.count(ExportJob.id))

    if status_filter:
        query = query.where(ExportJob.status == status_filter)
        count_query = count_query.where(ExportJob.status == status_filter)

    total = (await session.execute(count_query)).scalar_one()
    offset = (page - 1) * page_size
    query = query.order_by(ExportJob.created_at.desc(), ExportJob.id.desc()).offset(offset).limit(page_size)
    result = await session.execute(query)
    jobs = list(result.scalars().all())

    return jobs, total


async def _transition(
    session: AsyncSession,
    job_id: uuid.UUID,
    target: ExportStatus,
    allowed_from: tuple[ExportStatus, ...],
    values: dict[str, Any],
) -> ExportJob:
    """Move ``job_id`` to ``target`` iff it is currently in ``allowed_from``.

    Raises:
        InvalidTransitionError: If the job is missing or in another status.
    """
    stmt = (
        update(ExportJob)
        .where(ExportJob.id == job_id, ExportJob.status.in_([s.value for s in allowed_from]))
        .values(status=target.value, **values)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    if result.rowcount != 1:
        # Nothing was written; commit rather than roll back so instances
        # the caller holds stay loaded.
        await session.commit()
        raise InvalidTransitionError(job_id, target.value, tuple(s.value for s in allowed_from))
    await session.commit()

    job = await get_export_job(session, job_id)
    if job is None:
        raise InvalidTransitionError(job_id, target.value, tuple(s.value for s in allowed_from))
    return job


async def mark_processing(session: AsyncSession, job_id: uuid.UUID) -> ExportJob:
    """``pending -> processing``."""
    return await _transition(session, job_id, ExportStatus.PROCESSING, (ExportStatus.PENDING,), {})


async def mark_completed(
    session: AsyncSession,
    job_id: uuid.UUID,
    *,
    record_count: int,
    file_path: str,
    file_name: str,
    file_size_bytes: int,
) -> ExportJob:
    """``processing -> completed``, recording the artifact in the same statement."""
    if record_count < 0:
        msg = f"record_count must be non-negative, got {record_count}"
        raise ValueError(msg)
    return await _transition(
        session,
        job_id,
        ExportStatus.COMPLETED,
        (ExportStatus.PROCESSING,),
        {
            "record_count": record_count,
            "file_path": file_path,
            "file_name": file_name,
            "file_size_bytes": file_size_bytes,
            "error": None,
            "completed_at": func.coalesce(ExportJob.completed_at, datetime.now(UTC)),
        },
    )


async def mark_failed(session: AsyncSession, job_id: uuid.UUID, error: str) -> ExportJob:
    """``pending|processing -> failed``, recording the reason.

    A job that fails before processing could begin is failed straight
    from ``pending`` so it still reaches a terminal state.
    """
    return await _transition(
        session,
        job_id,
        ExportStatus.FAILED,
        (ExportStatus.PENDING, ExportStatus.PROCESSING),
        {
            "error": error or "Unknown error",
            "file_path": None,
            "file_name": None,
            "file_size_bytes": None,
            "completed_at": func.coalesce(ExportJob.completed_at, datetime.now(UTC)),
        },
    )


async def list_expired_jobs(session: AsyncSession, cutoff: datetime) -> list[ExportJob]:
    """Return terminal jobs created before ``cutoff``, oldest first."""
    result = await session.execute(
        select(ExportJob)
        .where(
            ExportJob.created_at < cutoff,
            ExportJob.status.in_([s.value for s in TERMINAL_STATUSES]),
        )
        .order_by(ExportJob.created_at)
    )
    return list(result.scalars().all())


async def delete_export_job(session: AsyncSession, job_id: uuid.UUID) -> bool:
    """Delete a terminal job record.

    Returns:
        True if a row was deleted. Jobs that are not terminal are left alone.
    """
    result = await session.execute(
        delete(ExportJob)
        .where(
            ExportJob.id == job_id,
            ExportJob.status.in_([s.value for s in TERMINAL_STATUSES]),
        )
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    return result.rowcount == 1
