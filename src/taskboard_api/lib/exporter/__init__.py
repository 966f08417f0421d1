"""Exporter library: public API for task data export.

Provides format-specific streaming writers, artifact naming, and a unified
export function.
"""

from collections.abc import AsyncIterable, Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from taskboard_api.lib.exporter.csv_writer import HEADER, write_csv
from taskboard_api.lib.exporter.json_writer import write_json
from taskboard_api.lib.exporter.naming import PARTIAL_SUFFIX, generate_file_name, partial_path_for

# Format registry mapping format names to writer functions
_WRITERS: dict[str, Callable[[Path, AsyncIterable[list[dict[str, Any]]]], Awaitable[int]]] = {
    "csv": write_csv,
    "json": write_json,
}

SUPPORTED_FORMATS = list(_WRITERS.keys())

MEDIA_TYPES = {
    "csv": "text/csv",
    "json": "application/json",
}


@dataclass
class ExportResult:
    """Result of an export operation."""

    record_count: int
    output_path: Path
    file_size_bytes: int


def media_type_for(output_format: str) -> str:
    """Return the HTTP media type for an export format."""
    return MEDIA_TYPES.get(output_format, "application/octet-stream")


def ensure_supported_format(output_format: str) -> None:
    """Raise ValueError unless ``output_format`` has a writer."""
    if output_format not in _WRITERS:
        msg = f"Unsupported format: {output_format}. Supported: {SUPPORTED_FORMATS}"
        raise ValueError(msg)


async def export_tasks(
    batches: AsyncIterable[list[dict[str, Any]]],
    output_format: str,
    output_path: Path,
) -> ExportResult:
    """Stream task record batches to ``output_path`` in the given format.

    Args:
        batches: Async iterable of task record batches.
        output_format: Output format (csv, json).
        output_path: Path to write the output file.

    Returns:
        ExportResult with record count and file info.

    Raises:
        ValueError: If the format is not supported.
    """
    ensure_supported_format(output_format)

    count = await _WRITERS[output_format](output_path, batches)
    file_size = output_path.stat().st_size

    return ExportResult(
        record_count=count,
        output_path=output_path,
        file_size_bytes=file_size,
    )


__all__ = [
    "HEADER",
    "MEDIA_TYPES",
    "PARTIAL_SUFFIX",
    "SUPPORTED_FORMATS",
    "ExportResult",
    "ensure_supported_format",
    "export_tasks",
    "generate_file_name",
    "media_type_for",
    "partial_path_for",
    "write_csv",
    "write_json",
]
