"""Export service: orchestrates the export job lifecycle.

``ExportService.request_export`` answers duplicate requests from the result
cache or records a new ``pending`` job and hands processing to the
background runner.  ``process_export`` drives the job through
``processing`` to ``completed`` or ``failed``: it streams matching tasks
into a temporary ``.part`` file, renames it into place, and only then
records the artifact on the job.  Cache and notifier failures are logged
and never change a job's outcome.
"""

import asyncio
import contextlib
import uuid
from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from taskboard_api.core.background import BackgroundTaskRunner, InProcessTaskRunner
from taskboard_api.core.config import Settings
from taskboard_api.core.notifications import ExportNotifier, LoggingNotifier, safe_notify
from taskboard_api.lib.export_cache import ResultCache, create_result_cache, generate_cache_key, normalize_filters
from taskboard_api.lib.exporter import (
    ensure_supported_format,
    export_tasks,
    generate_file_name,
    media_type_for,
    partial_path_for,
)
from taskboard_api.lib.task_query import build_task_predicate, validate_filters
from taskboard_api.models.export_job import ExportJob, ExportStatus
from taskboard_api.services import export_cleanup_service
from taskboard_api.services.export_cleanup_service import CleanupReport, CleanupStats
from taskboard_api.services.export_errors import (
    ExportFileMissingError,
    ExportNotCompletedError,
    ExportNotFoundError,
    InvalidTransitionError,
)
from taskboard_api.services.export_job_store import (
    create_export_job,
    get_export_job,
    list_export_jobs,
    mark_completed,
    mark_failed,
    mark_processing,
)
from taskboard_api.services.task_source import EXPORT_STREAM_BATCH_SIZE, TaskSource

DEFAULT_CACHE_TTL_SECONDS = 3600


@dataclass
class ExportRequestResult:
    """Outcome of an export request."""

    job: ExportJob
    cached: bool


@dataclass
class ExportDownload:
    """Everything needed to serve a completed export file."""

    path: Path
    file_name: str
    media_type: str
    record_count: int


def describe_error(exc: BaseException) -> str:
    """Human-readable failure reason recorded on a failed job."""
    message = str(exc).strip()
    return f"{type(exc).__name__}: {message}" if message else type(exc).__name__


def cache_snapshot(job: ExportJob) -> dict[str, Any]:
    """Denormalized job summary stored in the result cache."""
    return {
        "export_id": str(job.id),
        "file_name": job.file_name,
        "record_count": job.record_count,
        "created_at": job.created_at.isoformat() if job.created_at else None,
    }


class ExportService:
    """Creates, processes, and serves export jobs.

    Args:
        session_factory: Factory for short-lived database sessions.
        export_dir: Root directory for export artifacts.
        cache: Result cache used to deduplicate identical requests.
        notifier: Sink for job state changes.
        task_runner: Runner that executes processing in the background.
        batch_size: Records fetched and written per batch.
        cache_ttl_seconds: Lifetime of a cache entry.
        max_concurrent_jobs: Cap on exports processed at once (0 = no cap).
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        export_dir: Path,
        cache: ResultCache,
        notifier: ExportNotifier | None = None,
        task_runner: BackgroundTaskRunner | None = None,
        batch_size: int = EXPORT_STREAM_BATCH_SIZE,
        cache_ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS,
        max_concurrent_jobs: int = 0,
    ) -> None:
        self._session_factory = session_factory
        self.export_dir = Path(export_dir)
        self.cache = cache
        self.notifier: ExportNotifier = notifier or LoggingNotifier()
        self.task_runner: BackgroundTaskRunner = task_runner or InProcessTaskRunner()
        self._batch_size = batch_size
        self._cache_ttl_seconds = cache_ttl_seconds
        self._admission = asyncio.Semaphore(max_concurrent_jobs) if max_concurrent_jobs > 0 else None

    # -- creation -----------------------------------------------------------

    async def request_export(
        self,
        output_format: str,
        filters: Mapping[str, Any] | None = None,
    ) -> ExportRequestResult:
        """Return a cached completed export or start a new one.

        Never waits for processing: a new job is returned in ``pending``.

        Raises:
            ValueError: If the format is unsupported or a filter is malformed.
        """
        ensure_supported_format(output_format)
        normalized = normalize_filters(filters)
        validate_filters(normalized)

        cache_key = generate_cache_key(output_format, normalized)
        cached_job = await self._lookup_cached(cache_key)
        if cached_job is not None:
            logger.info(f"Export request served from cache by job {cached_job.id}")
            return ExportRequestResult(job=cached_job, cached=True)

        async with self._session_factory() as session:
            job = await create_export_job(session, output_format=output_format, filters=normalized)

        self.task_runner.submit_task(self.process_export(job.id), task_id=str(job.id))
        return ExportRequestResult(job=job, cached=False)

    async def wait_for(self, job_id: uuid.UUID) -> ExportJob | None:
        """Wait for background processing of ``job_id`` and return the job."""
        with contextlib.suppress(KeyError):
            await self.task_runner.wait(str(job_id))
        return await self.get_job(job_id)

    # -- processing ---------------------------------------------------------

    async def process_export(self, job_id: uuid.UUID) -> ExportJob | None:
        """Run an export job to completion or failure.

        Processing errors are recorded on the job, never raised. A job that
        is no longer ``pending`` is left untouched.
        """
        if self._admission is None:
            return await self._process(job_id)
        async with self._admission:
            return await self._process(job_id)

    async def _process(self, job_id: uuid.UUID) -> ExportJob | None:
        try:
            async with self._session_factory() as session:
                job = await mark_processing(session, job_id)
        except InvalidTransitionError:
            logger.warning(f"Export job {job_id} is not pending; skipping")
            return await self.get_job(job_id)
        except Exception as exc:
            logger.exception(f"Export job {job_id} could not start processing")
            return await self._fail(job_id, exc)

        await safe_notify(self.notifier, ExportStatus.PROCESSING.value, job)

        written: list[Path] = []
        try:
            self.export_dir.mkdir(parents=True, exist_ok=True)
            file_name = generate_file_name(job.format, job.filters, job.id)
            final_path = self.export_dir / file_name
            partial_path = partial_path_for(final_path)
            written.append(partial_path)

            predicate = build_task_predicate(job.filters or {})
            async with self._session_factory() as session:
                batches = TaskSource(session).iter_batches(predicate, batch_size=self._batch_size)
                result = await export_tasks(batches, job.format, partial_path)

            partial_path.replace(final_path)
            written.append(final_path)

            async with self._session_factory() as session:
                job = await mark_completed(
                    session,
                    job_id,
                    record_count=result.record_count,
                    file_path=str(final_path),
                    file_name=file_name,
                    file_size_bytes=result.file_size_bytes,
                )
        except Exception as exc:
            logger.exception(f"Export job {job_id} failed")
            for path in written:
                with contextlib.suppress(OSError):
                    path.unlink(missing_ok=True)
            return await self._fail(job_id, exc)

        logger.info(
            f"Export job {job.id} completed: {job.record_count} records, {job.file_size_bytes} bytes",
        )
        await self._cache_put(generate_cache_key(job.format, job.filters), job)
        await safe_notify(
            self.notifier,
            ExportStatus.COMPLETED.value,
            job,
            {"file_name": job.file_name, "file_size_bytes": job.file_size_bytes},
        )
        return job

    async def _fail(self, job_id: uuid.UUID, exc: BaseException) -> ExportJob:
        async with self._session_factory() as session:
            job = await mark_failed(session, job_id, describe_error(exc))
        await safe_notify(self.notifier, ExportStatus.FAILED.value, job, {"error": job.error})
        return job

    # -- result cache -------------------------------------------------------

    async def _lookup_cached(self, cache_key: str) -> ExportJob | None:
        """Resolve a cache entry to a completed job whose file still exists."""
        try:
            snapshot = await self.cache.get(cache_key)
        except Exception:
            logger.opt(exception=True).warning("Export cache lookup failed; treating as miss")
            return None
        if not snapshot:
            return None

        try:
            export_id = uuid.UUID(str(snapshot["export_id"]))
        except (KeyError, ValueError):
            logger.warning(f"Ignoring malformed export cache entry {cache_key}")
            return None

        job = await self.get_job(export_id)
        if job is None or job.status != ExportStatus.COMPLETED:
            return None
        if not job.file_path or not Path(job.file_path).is_file():
            return None
        return job

    async def _cache_put(self, cache_key: str, job: ExportJob) -> None:
        try:
            await self.cache.put(cache_key, cache_snapshot(job), self._cache_ttl_seconds)
        except Exception:
            logger.opt(exception=True).warning(f"Failed to cache export {job.id}; continuing without cache")

    # -- lookups ------------------------------------------------------------

    async def get_job(self, job_id: uuid.UUID) -> ExportJob | None:
        async with self._session_factory() as session:
            return await get_export_job(session, job_id)

    async def list_jobs(
        self,
        *,
        page: int = 1,
        page_size: int = 20,
        status_filter: str | None = None,
    ) -> tuple[list[ExportJob], int]:
        async with self._session_factory() as session:
            return await list_export_jobs(session, status_filter=status_filter, page=page, page_size=page_size)

    async def get_download(self, job_id: uuid.UUID) -> ExportDownload:
        """Locate the file for a completed export.

        Raises:
            ExportNotFoundError: No such job.
            ExportNotCompletedError: The job has not completed (or failed).
            ExportFileMissingError: The job completed but the file is gone.
        """
        job = await self.get_job(job_id)
        if job is None:
            raise ExportNotFoundError(job_id)
        if job.status != ExportStatus.COMPLETED:
            raise ExportNotCompletedError(job_id, job.status)
        if not job.file_path:
            raise ExportFileMissingError(job_id)

        path = Path(job.file_path)
        if not path.is_file():
            raise ExportFileMissingError(job_id)

        return ExportDownload(
            path=path,
            file_name=job.file_name or path.name,
            media_type=media_type_for(job.format),
            record_count=job.record_count,
        )

    # -- retention ----------------------------------------------------------

    async def run_cleanup(self, *, retention_days: int, dry_run: bool = False) -> CleanupReport:
        async with self._session_factory() as session:
            return await export_cleanup_service.run_export_cleanup(
                session,
                export_dir=self.export_dir,
                retention_days=retention_days,
                dry_run=dry_run,
            )

    async def cleanup_stats(self, *, retention_days: int) -> CleanupStats:
        async with self._session_factory() as session:
            return await export_cleanup_service.get_cleanup_stats(session, retention_days=retention_days)

    async def aclose(self) -> None:
        """Wait for in-flight exports and release the cache."""
        await self.task_runner.drain()
        await self.cache.close()


def create_export_service(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    *,
    notifier: ExportNotifier | None = None,
) -> ExportService:
    """Build an ExportService from application settings."""
    return ExportService(
        session_factory,
        export_dir=Path(settings.export_dir),
        cache=create_result_cache(settings.redis_url),
        notifier=notifier,
        batch_size=settings.export_batch_size,
        cache_ttl_seconds=settings.export_cache_ttl_seconds,
        max_concurrent_jobs=settings.export_max_concurrent_jobs,
    )


async def iter_job_pages(service: ExportService, *, page_size: int = 100) -> AsyncIterator[ExportJob]:
    """Iterate over every export job, newest first."""
    page = 1
    while True:
        jobs, total = await service.list_jobs(page=page, page_size=page_size)
        for job in jobs:
            yield job
        if page * page_size >= total or not jobs:
            return
        page += 1
