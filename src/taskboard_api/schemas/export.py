"""Export Pydantic v2 request/response schemas."""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from taskboard_api.lib.task_query import validate_filters
from taskboard_api.schemas.common import PaginationMeta


class ExportRequest(BaseModel):
    """Request to create a bulk task export.

    ``filters`` is an open mapping; recognized keys are ``status``,
    ``priority``, ``search``, ``dateFrom``, ``dateTo``,
    ``completedDateFrom`` and ``completedDateTo``. Others are ignored.
    """

    format: Literal["csv", "json"]
    filters: dict[str, Any] = Field(default_factory=dict)

    @field_validator("filters")
    @classmethod
    def validate_filter_values(cls, v: dict[str, Any]) -> dict[str, Any]:
        validate_filters(v)
        return v


class ExportJobResponse(BaseModel):
    """Response for an export job."""

    id: UUID
    format: str
    filters: dict
    status: str
    record_count: int = 0
    file_name: str | None = None
    file_size_bytes: int | None = None
    error: str | None = None
    created_at: datetime
    completed_at: datetime | None = None
    download_url: str | None = None
    cached: bool = False

    model_config = {"from_attributes": True}


class PaginatedExportJobResponse(BaseModel):
    """Paginated list of export jobs."""

    items: list[ExportJobResponse]
    pagination: PaginationMeta


class CleanupRequest(BaseModel):
    """Request to run an export cleanup sweep."""

    retention_days: int = Field(default=7, ge=0, le=3650)
    dry_run: bool = False


class CleanupReportResponse(BaseModel):
    """Outcome of a cleanup sweep."""

    dry_run: bool
    records_processed: int
    files_deleted: int
    bytes_reclaimed: int
    bytes_reclaimed_human: str
    directories_removed: int
    errors: list[str]


class CleanupStatsResponse(BaseModel):
    """Preview of a cleanup sweep."""

    retention_days: int
    total_exports: int
    eligible_exports: int
    estimated_bytes_reclaimable: int
    estimated_bytes_reclaimable_human: str
    oldest_export: datetime | None = None
    newest_export: datetime | None = None
