"""Export cleanup service: purges old export artifacts and job records.

Only terminal (completed or failed) jobs older than the retention window
are touched; pending and processing jobs are never deleted regardless of
age.  A failure on one job is recorded in the report and the sweep moves
on to the next.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard_api.models.export_job import ExportJob
from taskboard_api.services.export_job_store import delete_export_job, list_expired_jobs

DEFAULT_RETENTION_DAYS = 7

_SIZE_UNITS = ["Bytes", "KB", "MB", "GB", "TB"]


@dataclass
class CleanupReport:
    """Outcome of one cleanup sweep."""

    dry_run: bool = False
    records_processed: int = 0
    files_deleted: int = 0
    bytes_reclaimed: int = 0
    directories_removed: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass
class CleanupStats:
    """Preview of what a cleanup sweep would reclaim."""

    total_exports: int = 0
    eligible_exports: int = 0
    estimated_bytes_reclaimable: int = 0
    oldest_export: datetime | None = None
    newest_export: datetime | None = None


def format_bytes(size: int) -> str:
    """Format a byte count for humans, e.g. ``1536`` -> ``"1.5 KB"``."""
    if size <= 0:
        return "0 Bytes"
    value = float(size)
    unit = 0
    while value >= 1024 and unit < len(_SIZE_UNITS) - 1:
        value /= 1024
        unit += 1
    return f"{round(value, 2):g} {_SIZE_UNITS[unit]}"


def retention_cutoff(retention_days: int, now: datetime | None = None) -> datetime:
    """Creation time before which finished exports are eligible for deletion."""
    if retention_days < 0:
        msg = f"retention_days must be non-negative, got {retention_days}"
        raise ValueError(msg)
    return (now or datetime.now(UTC)) - timedelta(days=retention_days)


async def run_export_cleanup(
    session: AsyncSession,
    *,
    export_dir: Path,
    retention_days: int = DEFAULT_RETENTION_DAYS,
    dry_run: bool = False,
    now: datetime | None = None,
) -> CleanupReport:
    """Delete finished exports older than ``retention_days``.

    For each eligible job the artifact is removed first (an already missing
    file counts as success) and then the job record. When the artifact
    cannot be removed the record is kept so a later sweep can retry.

    Args:
        session: Database session.
        export_dir: Export root; empty subdirectories are removed afterwards.
        retention_days: Age in days after which exports are purged.
        dry_run: Report what would be deleted without deleting anything.
        now: Reference time (defaults to the current time).

    Returns:
        CleanupReport with counts and per-item errors.
    """
    cutoff = retention_cutoff(retention_days, now)
    report = CleanupReport(dry_run=dry_run)
    prefix = "[DRY RUN] Would delete" if dry_run else "Deleted"

    logger.info(f"Starting export cleanup (retention: {retention_days} days, dry run: {dry_run})")

    jobs = await list_expired_jobs(session, cutoff)
    logger.info(f"Found {len(jobs)} old export records to process")

    # Deleting commits per job, so read everything needed up front
    candidates = [(job.id, job.file_path, job.file_name) for job in jobs]

    for job_id, file_path, file_name in candidates:
        if file_path:
            path = Path(file_path)
            try:
                size = path.stat().st_size
                if not dry_run:
                    path.unlink()
            except FileNotFoundError:
                pass
            except OSError as exc:
                logger.warning(f"Failed to delete file {path}: {exc}")
                report.errors.append(f"File deletion failed: {path} ({exc.strerror or exc})")
                continue
            else:
                report.files_deleted += 1
                report.bytes_reclaimed += size
                logger.info(f"{prefix} file: {file_name} ({format_bytes(size)})")

        if not dry_run:
            try:
                await delete_export_job(session, job_id)
            except Exception as exc:
                await session.rollback()
                logger.exception(f"Error deleting export record {job_id}")
                report.errors.append(f"Export record deletion failed: {job_id} ({exc})")
                continue

        report.records_processed += 1

    report.directories_removed = remove_empty_directories(export_dir, dry_run=dry_run)

    logger.info(
        "Export cleanup completed: {} records, {} files, {} reclaimed, {} errors",
        report.records_processed,
        report.files_deleted,
        format_bytes(report.bytes_reclaimed),
        len(report.errors),
    )
    for error in report.errors:
        logger.warning(f"Cleanup error: {error}")

    return report


def remove_empty_directories(export_dir: Path, *, dry_run: bool = False) -> int:
    """Remove empty subdirectories directly under ``export_dir``.

    Returns:
        Number of directories removed (or that would be removed).
    """
    if not export_dir.is_dir():
        return 0

    removed = 0
    for entry in export_dir.iterdir():
        if not entry.is_dir():
            continue
        try:
            if any(entry.iterdir()):
                continue
            if not dry_run:
                entry.rmdir()
        except OSError as exc:
            logger.warning(f"Failed to process directory {entry}: {exc}")
            continue
        removed += 1
        logger.info(f"{'[DRY RUN] Would remove' if dry_run else 'Removed'} empty directory: {entry.name}")
    return removed


async def get_cleanup_stats(
    session: AsyncSession,
    *,
    retention_days: int = DEFAULT_RETENTION_DAYS,
    now: datetime | None = None,
) -> CleanupStats:
    """Summarize exports and what a sweep with ``retention_days`` would reclaim."""
    cutoff = retention_cutoff(retention_days, now)

    total, oldest, newest = (
        await session.execute(
            select(func.count(ExportJob.id), func.min(ExportJob.created_at), func.max(ExportJob.created_at))
        )
    ).one()

    eligible = await list_expired_jobs(session, cutoff)
    reclaimable = 0
    for job in eligible:
        if job.file_path:
            try:
                reclaimable += Path(job.file_path).stat().st_size
            except OSError:
                continue

    return CleanupStats(
        total_exports=total,
        eligible_exports=len(eligible),
        estimated_bytes_reclaimable=reclaimable,
        oldest_export=oldest,
        newest_export=newest,
    )


async def export_cleanup_loop(
    run_cleanup: Callable[..., Awaitable[object]],
    *,
    interval_hours: float,
    retention_days: int,
) -> None:
    """Background asyncio loop that runs a cleanup sweep periodically.

    Args:
        run_cleanup: Coroutine function accepting ``retention_days`` that
            performs one sweep (typically ``ExportService.run_cleanup``).
        interval_hours: Hours between sweeps.
        retention_days: Age in days after which exports are purged.
    """
    interval = interval_hours * 3600
    logger.info("Export cleanup loop started (every {}h, retention {} days)", interval_hours, retention_days)

    while True:
        try:
            await asyncio.sleep(interval)
            await run_cleanup(retention_days=retention_days)
        except asyncio.CancelledError:
            logger.info("Export cleanup loop cancelled")
            break
        except Exception:
            logger.exception("Export cleanup loop error")


__all__ = [
    "DEFAULT_RETENTION_DAYS",
    "CleanupReport",
    "CleanupStats",
    "export_cleanup_loop",
    "format_bytes",
    "get_cleanup_stats",
    "remove_empty_directories",
    "retention_cutoff",
    "run_export_cleanup",
]
