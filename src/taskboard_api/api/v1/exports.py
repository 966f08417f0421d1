"""Export API endpoints for bulk task export operations."""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, Response, WebSocket, WebSocketDisconnect, status
from fastapi.responses import FileResponse

from taskboard_api.core.config import Settings, get_settings
from taskboard_api.core.dependencies import get_export_broadcaster, get_export_service
from taskboard_api.core.notifications import BroadcastNotifier
from taskboard_api.models.export_job import ExportJob, ExportStatus
from taskboard_api.schemas.common import ErrorResponse, PaginationMeta
from taskboard_api.schemas.export import (
    CleanupReportResponse,
    CleanupRequest,
    CleanupStatsResponse,
    ExportJobResponse,
    ExportRequest,
    PaginatedExportJobResponse,
)
from taskboard_api.services.export_cleanup_service import format_bytes
from taskboard_api.services.export_errors import (
    ExportFileMissingError,
    ExportNotCompletedError,
    ExportNotFoundError,
)
from taskboard_api.services.export_service import ExportService

exports_router = APIRouter(prefix="/exports", tags=["exports"])


def _build_download_url(job_id: uuid.UUID, settings: Settings) -> str:
    """Build the download URL for a completed export."""
    return f"{settings.api_v1_prefix}/exports/{job_id}/download"


def _job_to_response(job: ExportJob, settings: Settings, *, cached: bool = False) -> ExportJobResponse:
    """Convert an ExportJob to response with download URL."""
    response = ExportJobResponse.model_validate(job)
    response.cached = cached
    if response.status == ExportStatus.COMPLETED:
        response.download_url = _build_download_url(response.id, settings)
    return response


@exports_router.post(
    "",
    response_model=ExportJobResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def request_export(
    request: ExportRequest,
    response: Response,
    service: ExportService = Depends(get_export_service),
    settings: Settings = Depends(get_settings),
) -> ExportJobResponse:
    """Request a bulk task export.

    Returns 202 with a pending job, or 200 with an identical completed
    export when one is still cached.
    """
    result = await service.request_export(request.format, request.filters)
    if result.cached:
        response.status_code = status.HTTP_200_OK
    return _job_to_response(result.job, settings, cached=result.cached)


@exports_router.get(
    "",
    response_model=PaginatedExportJobResponse,
)
async def list_exports(
    status_filter: ExportStatus | None = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    service: ExportService = Depends(get_export_service),
    settings: Settings = Depends(get_settings),
) -> PaginatedExportJobResponse:
    """List export jobs, newest first."""
    jobs, total = await service.list_jobs(
        page=page,
        page_size=page_size,
        status_filter=status_filter.value if status_filter else None,
    )
    return PaginatedExportJobResponse(
        items=[_job_to_response(j, settings) for j in jobs],
        pagination=PaginationMeta(
            total=total,
            page=page,
            page_size=page_size,
            total_pages=(total + page_size - 1) // page_size,
        ),
    )


@exports_router.get(
    "/cleanup/stats",
    response_model=CleanupStatsResponse,
)
async def get_cleanup_stats(
    retention_days: int | None = Query(None, ge=0, le=3650),
    service: ExportService = Depends(get_export_service),
    settings: Settings = Depends(get_settings),
) -> CleanupStatsResponse:
    """Preview what a cleanup sweep would remove."""
    days = settings.export_retention_days if retention_days is None else retention_days
    stats = await service.cleanup_stats(retention_days=days)
    return CleanupStatsResponse(
        retention_days=days,
        total_exports=stats.total_exports,
        eligible_exports=stats.eligible_exports,
        estimated_bytes_reclaimable=stats.estimated_bytes_reclaimable,
        estimated_bytes_reclaimable_human=format_bytes(stats.estimated_bytes_reclaimable),
        oldest_export=stats.oldest_export,
        newest_export=stats.newest_export,
    )


@exports_router.post(
    "/cleanup",
    response_model=CleanupReportResponse,
)
async def run_cleanup(
    request: CleanupRequest,
    service: ExportService = Depends(get_export_service),
) -> CleanupReportResponse:
    """Purge finished exports older than the retention window."""
    report = await service.run_cleanup(retention_days=request.retention_days, dry_run=request.dry_run)
    return CleanupReportResponse(
        dry_run=report.dry_run,
        records_processed=report.records_processed,
        files_deleted=report.files_deleted,
        bytes_reclaimed=report.bytes_reclaimed,
        bytes_reclaimed_human=format_bytes(report.bytes_reclaimed),
        directories_removed=report.directories_removed,
        errors=report.errors,
    )


@exports_router.websocket("/ws")
async def export_updates(
    websocket: WebSocket,
    broadcaster: BroadcastNotifier = Depends(get_export_broadcaster),
) -> None:
    """Stream export state changes to the client as JSON messages."""
    await websocket.accept()
    queue = broadcaster.subscribe()
    try:
        while True:
            event = await queue.get()
            await websocket.send_json(event)
    except WebSocketDisconnect:
        pass
    finally:
        broadcaster.unsubscribe(queue)


@exports_router.get(
    "/{job_id}",
    response_model=ExportJobResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_export_status(
    job_id: uuid.UUID,
    service: ExportService = Depends(get_export_service),
    settings: Settings = Depends(get_settings),
) -> ExportJobResponse:
    """Get export job status."""
    job = await service.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Export not found")
    return _job_to_response(job, settings)


@exports_router.get(
    "/{job_id}/download",
    responses={
        404: {"model": ErrorResponse, "description": "Export not found"},
        409: {"model": ErrorResponse, "description": "Export not completed"},
        410: {"model": ErrorResponse, "description": "Export file no longer available"},
    },
)
async def download_export(
    job_id: uuid.UUID,
    service: ExportService = Depends(get_export_service),
) -> FileResponse:
    """Download a completed export file."""
    try:
        download = await service.get_download(job_id)
    except ExportNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ExportNotCompletedError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except ExportFileMissingError as exc:
        raise HTTPException(status_code=status.HTTP_410_GONE, detail=str(exc)) from exc

    return FileResponse(
        path=download.path,
        media_type=download.media_type,
        filename=download.file_name,
        headers={"X-Record-Count": str(download.record_count)},
    )
