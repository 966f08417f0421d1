"""Value formatting shared by the export writers."""

import json
import uuid
from datetime import UTC, date, datetime
from typing import Any


def format_timestamp(value: datetime | date | str) -> str:
    """Render a timestamp as ISO-8601 UTC with millisecond precision.

    Naive datetimes are treated as UTC. Strings are passed through.
    """
    if isinstance(value, datetime):
        aware = value if value.tzinfo is not None else value.replace(tzinfo=UTC)
        return aware.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


class ExportJSONEncoder(json.JSONEncoder):
    """Encoder handling UUIDs and dates."""

    def default(self, o: object) -> Any:
        if isinstance(o, uuid.UUID):
            return str(o)
        if isinstance(o, datetime | date):
            return format_timestamp(o)
        return super().default(o)
