"""FastAPI dependency injection for application services."""

from starlette.requests import HTTPConnection

from taskboard_api.core.notifications import BroadcastNotifier
from taskboard_api.services.export_service import ExportService


def get_export_service(connection: HTTPConnection) -> ExportService:
    """Return the ExportService built during application startup.

    Raises:
        RuntimeError: If the application was started without one.
    """
    service = getattr(connection.app.state, "export_service", None)
    if service is None:
        msg = "Export service not initialized"
        raise RuntimeError(msg)
    return service


def get_export_broadcaster(connection: HTTPConnection) -> BroadcastNotifier:
    """Return the notifier that feeds export WebSocket subscribers."""
    broadcaster = getattr(connection.app.state, "export_broadcaster", None)
    if broadcaster is None:
        msg = "Export broadcaster not initialized"
        raise RuntimeError(msg)
    return broadcaster
