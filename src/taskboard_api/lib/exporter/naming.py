"""File naming for export artifacts."""

import uuid
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

PARTIAL_SUFFIX = ".part"


def generate_file_name(
    output_format: str,
    filters: Mapping[str, Any] | None,
    job_id: uuid.UUID,
    *,
    now: datetime | None = None,
) -> str:
    """Build a unique, human-readable file name for an export.

    Example: ``tasks-export-2024-05-01T12-30-00-123Z-1a2b3c4d-filtered.csv``.
    The ``-filtered`` marker is cosmetic and never used for lookups.
    """
    moment = (now or datetime.now(UTC)).astimezone(UTC)
    timestamp = moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")
    timestamp = timestamp.replace(":", "-").replace(".", "-")
    filter_suffix = "-filtered" if filters else ""
    return f"tasks-export-{timestamp}-{job_id.hex[:8]}{filter_suffix}.{output_format}"


def partial_path_for(final_path: Path) -> Path:
    """Path an artifact is written to before it becomes available."""
    return final_path.with_name(final_path.name + PARTIAL_SUFFIX)
