"""CSV export writer for task data."""

import csv
import io
from collections.abc import AsyncIterable
from pathlib import Path
from typing import Any

import aiofiles

from taskboard_api.lib.exporter.values import format_timestamp

# Header label -> record key
COLUMNS = [
    ("ID", "id"),
    ("Title", "title"),
    ("Description", "description"),
    ("Status", "status"),
    ("Priority", "priority"),
    ("Created At", "created_at"),
    ("Updated At", "updated_at"),
    ("Completed At", "completed_at"),
    ("Estimated Time (minutes)", "estimated_time"),
    ("Actual Time (minutes)", "actual_time"),
]

HEADER = [label for label, _ in COLUMNS]

_TIMESTAMP_KEYS = {"created_at", "updated_at", "completed_at"}


def _cell(key: str, value: Any) -> str:
    if value is None:
        return ""
    if key in _TIMESTAMP_KEYS:
        return format_timestamp(value)
    return str(value)


def _render_rows(rows: list[list[str]]) -> str:
    """Render rows with every field quoted and embedded quotes doubled."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, doublequote=True, lineterminator="\n")
    writer.writerows(rows)
    return buffer.getvalue()


async def write_csv(
    output_path: Path,
    batches: AsyncIterable[list[dict[str, Any]]],
) -> int:
    """Write task records to a CSV file one batch at a time.

    The header row is unquoted; each record becomes one fully quoted row.
    Only double quotes are escaped (by doubling); commas and newlines inside
    a field are kept verbatim within its quotes.

    Args:
        output_path: Path to write the CSV file.
        batches: Async iterable of record batches.

    Returns:
        Number of records written.
    """
    count = 0

    async with aiofiles.open(output_path, "w", newline="", encoding="utf-8") as f:
        await f.write(",".join(HEADER) + "\n")

        async for batch in batches:
            if not batch:
                continue
            rows = [[_cell(key, record.get(key)) for _, key in COLUMNS] for record in batch]
            await f.write(_render_rows(rows))
            count += len(batch)

    return count
