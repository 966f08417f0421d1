"""Loguru sinks for the API server and the CLI.

Every record goes to stderr as text.  Export job state changes are logged
through ``export_event_logger`` and can additionally be emitted as JSON,
one object per line: on stderr when ``json_events`` is set, and in
``export-events.jsonl`` next to the rotating text log when a ``log_dir``
is configured.
"""

import sys
from pathlib import Path
from typing import Any

from loguru import logger

EXPORT_EVENT_KEY = "export_event"
TEXT_LOG_NAME = "taskboard-api.log"
EXPORT_EVENT_LOG_NAME = "export-events.jsonl"

_TEXT_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {name}:{function}:{line} | {message}"


def is_export_event(record: dict[str, Any]) -> bool:
    """Sink filter matching records from ``export_event_logger``."""
    return bool(record["extra"].get(EXPORT_EVENT_KEY))


def export_event_logger(**fields: Any) -> Any:
    """Return a logger whose records are routed to the export event sinks."""
    return logger.bind(**{EXPORT_EVENT_KEY: True}, **fields)


def setup_logging(log_level: str = "INFO", log_dir: str | None = None, *, json_events: bool = False) -> None:
    """Replace Loguru's sinks with the application's.

    Args:
        log_level: Minimum level for every sink (case-insensitive).
        log_dir: Directory for ``taskboard-api.log`` (rotated daily, kept
            7 days) and ``export-events.jsonl`` (rotated at 50 MB, kept
            30 days).  Created if missing.
        json_events: Also write export events to stderr as JSON.
    """
    level = log_level.upper()
    logger.remove()
    logger.add(sys.stderr, level=level, format=_TEXT_FORMAT)
    if json_events:
        logger.add(sys.stderr, level=level, serialize=True, filter=is_export_event)

    if not log_dir:
        return

    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)
    logger.add(
        log_path / TEXT_LOG_NAME,
        level=level,
        format=_TEXT_FORMAT,
        rotation="24h",
        retention="7 days",
    )
    logger.add(
        log_path / EXPORT_EVENT_LOG_NAME,
        level=level,
        serialize=True,
        filter=is_export_event,
        rotation="50 MB",
        retention="30 days",
    )
