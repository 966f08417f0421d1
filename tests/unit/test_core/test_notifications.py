"""Tests for export notifiers."""

import uuid
from unittest.mock import AsyncMock

import pytest

from taskboard_api.core.notifications import (
    BroadcastNotifier,
    CompositeNotifier,
    LoggingNotifier,
    build_export_event,
    build_notification_message,
    safe_notify,
)
from taskboard_api.models.export_job import ExportJob


def _job(**overrides: object) -> ExportJob:
    values = {
        "id": uuid.UUID("12345678-1234-5678-1234-567812345678"),
        "format": "csv",
        "filters": {},
        "status": "completed",
        "record_count": 3,
    }
    values.update(overrides)
    return ExportJob(**values)


class TestBuildExportEvent:
    """Tests for the export-update payload."""

    def test_payload_fields(self) -> None:
        event = build_export_event("processing", _job())
        assert event["export_id"] == "12345678-1234-5678-1234-567812345678"
        assert event["status"] == "processing"
        assert event["format"] == "csv"
        assert event["record_count"] == 3
        assert "timestamp" in event

    def test_extra_fields_merged(self) -> None:
        event = build_export_event("completed", _job(), {"file_name": "a.csv"})
        assert event["file_name"] == "a.csv"


class TestBuildNotificationMessage:
    """Tests for human-facing notification text."""

    def test_completed(self) -> None:
        message = build_notification_message("completed", _job(record_count=5, format="json"))
        assert message == ("Export completed: 5 records exported as JSON", "success")

    def test_failed(self) -> None:
        message = build_notification_message("failed", _job(error="disk full"))
        assert message == ("Export failed: disk full", "error")

    def test_processing_has_no_message(self) -> None:
        assert build_notification_message("processing", _job()) is None


class TestBroadcastNotifier:
    """Tests for the in-process fan-out notifier."""

    @pytest.mark.asyncio
    async def test_subscribers_receive_update_and_notification(self) -> None:
        broadcaster = BroadcastNotifier()
        queue = broadcaster.subscribe()

        await broadcaster.notify("completed", _job())

        update = queue.get_nowait()
        notification = queue.get_nowait()
        assert update["event"] == "export-update"
        assert update["data"]["status"] == "completed"
        assert notification["event"] == "notification"
        assert notification["data"]["type"] == "success"
        assert queue.empty()

    @pytest.mark.asyncio
    async def test_processing_sends_only_update(self) -> None:
        broadcaster = BroadcastNotifier()
        queue = broadcaster.subscribe()

        await broadcaster.notify("processing", _job(status="processing"))

        assert queue.qsize() == 1
        assert queue.get_nowait()["event"] == "export-update"

    @pytest.mark.asyncio
    async def test_unsubscribe_stops_delivery(self) -> None:
        broadcaster = BroadcastNotifier()
        queue = broadcaster.subscribe()
        assert broadcaster.subscriber_count == 1

        broadcaster.unsubscribe(queue)
        await broadcaster.notify("processing", _job())

        assert broadcaster.subscriber_count == 0
        assert queue.empty()

    def test_full_queue_drops_events(self) -> None:
        broadcaster = BroadcastNotifier(max_queue_size=1)
        queue = broadcaster.subscribe()

        broadcaster.publish({"event": "export-update", "data": {"n": 1}})
        broadcaster.publish({"event": "export-update", "data": {"n": 2}})

        assert queue.qsize() == 1
        assert queue.get_nowait()["data"] == {"n": 1}


class TestSafeNotify:
    """Notifier failures never propagate."""

    @pytest.mark.asyncio
    async def test_failure_is_swallowed(self) -> None:
        notifier = AsyncMock()
        notifier.notify.side_effect = RuntimeError("socket closed")

        await safe_notify(notifier, "completed", _job())

        notifier.notify.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_composite_continues_after_failure(self) -> None:
        failing = AsyncMock()
        failing.notify.side_effect = RuntimeError("boom")
        working = AsyncMock()
        job = _job()

        await CompositeNotifier([failing, working]).notify("failed", job, {"error": "x"})

        working.notify.assert_awaited_once_with("failed", job, {"error": "x"})

    @pytest.mark.asyncio
    async def test_logging_notifier_does_not_raise(self) -> None:
        await LoggingNotifier().notify("completed", _job())
