"""JSON export writer for task data."""

import json
from collections.abc import AsyncIterable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import aiofiles

from taskboard_api.lib.exporter.values import ExportJSONEncoder, format_timestamp

# Record key -> JSON member name
_FIELDS = {
    "id": "id",
    "title": "title",
    "description": "description",
    "status": "status",
    "priority": "priority",
    "created_at": "createdAt",
    "updated_at": "updatedAt",
    "completed_at": "completedAt",
    "estimated_time": "estimatedTime",
    "actual_time": "actualTime",
}


def _to_export_task(record: dict[str, Any]) -> dict[str, Any]:
    return {name: record.get(key) for key, name in _FIELDS.items()}


async def write_json(
    output_path: Path,
    batches: AsyncIterable[list[dict[str, Any]]],
) -> int:
    """Write task records as a JSON document one batch at a time.

    The document has the shape ``{"tasks": [...], "metadata": {...}}``.
    ``metadata`` follows the array so that ``totalRecords`` reflects the
    records actually written.

    Args:
        output_path: Path to write the JSON file.
        batches: Async iterable of record batches.

    Returns:
        Number of records written.
    """
    count = 0

    async with aiofiles.open(output_path, "w", encoding="utf-8") as f:
        await f.write('{\n  "tasks": [')

        async for batch in batches:
            if not batch:
                continue
            chunks = []
            for record in batch:
                separator = "," if count else ""
                chunks.append(f"{separator}\n    {json.dumps(_to_export_task(record), cls=ExportJSONEncoder)}")
                count += 1
            await f.write("".join(chunks))

        metadata = {
            "exportedAt": format_timestamp(datetime.now(UTC)),
            "totalRecords": count,
            "format": "json",
        }
        closing = "\n  ]" if count else "]"
        await f.write(f'{closing},\n  "metadata": {json.dumps(metadata)}\n}}\n')

    return count
