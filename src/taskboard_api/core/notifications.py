"""Real-time export notifications.

The export service reports every job state change to an ``ExportNotifier``.
``BroadcastNotifier`` fans events out to in-process subscribers (the
``/exports/ws`` WebSocket endpoint subscribes one queue per connection).
Notifier failures are never allowed to affect the job itself; the export
service calls notifiers through ``safe_notify``.
"""

import asyncio
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any, Protocol

from loguru import logger

from taskboard_api.core.logging import export_event_logger
from taskboard_api.models.export_job import ExportJob

EXPORT_UPDATE_EVENT = "export-update"
NOTIFICATION_EVENT = "notification"


class ExportNotifier(Protocol):
    """Sink for export job state changes."""

    async def notify(self, status: str, job: ExportJob, extra: dict[str, Any] | None = None) -> None:
        """Report that ``job`` entered ``status``."""
        ...


def build_export_event(status: str, job: ExportJob, extra: dict[str, Any] | None = None) -> dict[str, Any]:
    """Build the payload describing an export state change."""
    payload: dict[str, Any] = {
        "export_id": str(job.id),
        "status": status,
        "format": job.format,
        "record_count": job.record_count,
        "timestamp": datetime.now(UTC).isoformat(),
    }
    if extra:
        payload.update(extra)
    return payload


def build_notification_message(status: str, job: ExportJob) -> tuple[str, str] | None:
    """Return a human-facing ``(message, level)`` for important transitions."""
    if status == "completed":
        return (
            f"Export completed: {job.record_count} records exported as {job.format.upper()}",
            "success",
        )
    if status == "failed":
        return f"Export failed: {job.error or 'Unknown error'}", "error"
    return None


class LoggingNotifier:
    """Writes export state changes to the application log.

    Records carry the export event payload as bound fields so the JSON
    event sinks configured by ``setup_logging`` pick them up.
    """

    async def notify(self, status: str, job: ExportJob, extra: dict[str, Any] | None = None) -> None:
        export_event_logger(**build_export_event(status, job, extra)).info(
            "Export {} is now {} ({} records)",
            job.id,
            status,
            job.record_count,
        )


class BroadcastNotifier:
    """Fans export events out to every subscribed queue.

    Slow subscribers whose queue is full miss events instead of blocking
    the export that produced them.
    """

    def __init__(self, max_queue_size: int = 100) -> None:
        self._max_queue_size = max_queue_size
        self._subscribers: set[asyncio.Queue[dict[str, Any]]] = set()

    def subscribe(self) -> asyncio.Queue[dict[str, Any]]:
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=self._max_queue_size)
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[dict[str, Any]]) -> None:
        self._subscribers.discard(queue)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event: dict[str, Any]) -> None:
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning("Dropping {} event for slow subscriber", event.get("event"))

    async def notify(self, status: str, job: ExportJob, extra: dict[str, Any] | None = None) -> None:
        self.publish({"event": EXPORT_UPDATE_EVENT, "data": build_export_event(status, job, extra)})

        notification = build_notification_message(status, job)
        if notification is not None:
            message, level = notification
            self.publish(
                {
                    "event": NOTIFICATION_EVENT,
                    "data": {
                        "message": message,
                        "type": level,
                        "timestamp": datetime.now(UTC).isoformat(),
                    },
                }
            )


class CompositeNotifier:
    """Forwards each state change to several notifiers in order."""

    def __init__(self, notifiers: Iterable[ExportNotifier]) -> None:
        self._notifiers = list(notifiers)

    async def notify(self, status: str, job: ExportJob, extra: dict[str, Any] | None = None) -> None:
        for notifier in self._notifiers:
            await safe_notify(notifier, status, job, extra)


async def safe_notify(
    notifier: ExportNotifier,
    status: str,
    job: ExportJob,
    extra: dict[str, Any] | None = None,
) -> None:
    """Invoke ``notifier`` and log, rather than raise, any failure."""
    try:
        await notifier.notify(status, job, extra)
    except Exception:
        logger.opt(exception=True).warning(
            "Notifier {} failed for export {} ({})",
            type(notifier).__name__,
            job.id,
            status,
        )
