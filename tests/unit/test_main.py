"""Tests for the FastAPI application factory module."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from taskboard_api.core.config import Settings
from taskboard_api.core.notifications import BroadcastNotifier
from taskboard_api.main import create_app, lifespan
from taskboard_api.services.export_service import ExportService


def _settings(**overrides: object) -> Settings:
    return Settings(_env_file=None, database_url="sqlite+aiosqlite:///:memory:", **overrides)  # type: ignore[call-arg]


class TestCreateApp:
    """Tests for create_app."""

    @pytest.fixture
    def app(self):
        with patch("taskboard_api.main.get_settings", return_value=_settings()):
            return create_app()

    def test_app_is_created(self, app) -> None:
        assert app.title == "Taskboard API"

    def test_app_has_openapi_schema(self, app) -> None:
        client = TestClient(app, raise_server_exceptions=False)
        response = client.get("/openapi.json")
        assert response.status_code == 200
        paths = response.json()["paths"]
        assert "/api/v1/exports" in paths
        assert "/api/v1/exports/{job_id}/download" in paths

    def test_value_error_handler_registered(self, app) -> None:
        assert app.exception_handlers.get(ValueError) is not None

    def test_cors_middleware_added_when_configured(self) -> None:
        with patch("taskboard_api.main.get_settings", return_value=_settings(cors_origins="http://localhost:3000")):
            app = create_app()
        assert any(m.cls.__name__ == "CORSMiddleware" for m in app.user_middleware)


class TestAppLifespan:
    """Tests for lifespan management."""

    @pytest.mark.asyncio
    async def test_lifespan_wires_services_and_shuts_down(self, tmp_path) -> None:
        app = MagicMock()
        settings = _settings(export_dir=str(tmp_path / "exports"), export_cleanup_interval_hours=1)

        with (
            patch("taskboard_api.main.get_settings", return_value=settings),
            patch("taskboard_api.main.setup_logging") as mock_setup_logging,
            patch("taskboard_api.main.init_engine") as mock_init_engine,
            patch("taskboard_api.main.get_session_factory", return_value=MagicMock()),
            patch("taskboard_api.main.dispose_engine", new_callable=AsyncMock) as mock_dispose,
        ):
            async with lifespan(app):
                mock_setup_logging.assert_called_once()
                mock_init_engine.assert_called_once()
                assert isinstance(app.state.export_service, ExportService)
                assert isinstance(app.state.export_broadcaster, BroadcastNotifier)

            mock_dispose.assert_awaited_once()
