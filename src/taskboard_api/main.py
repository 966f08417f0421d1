"""FastAPI application factory.

Creates the FastAPI app with lifespan management, exception handlers,
and OpenAPI metadata.
"""

import asyncio
import contextlib
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from taskboard_api.core.config import get_settings
from taskboard_api.core.database import dispose_engine, get_session_factory, init_engine
from taskboard_api.core.logging import setup_logging
from taskboard_api.core.notifications import BroadcastNotifier, CompositeNotifier, LoggingNotifier


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Manage application lifecycle: engine, export service, and cleanup loop."""
    from taskboard_api.services.export_cleanup_service import export_cleanup_loop
    from taskboard_api.services.export_service import create_export_service

    settings = get_settings()
    setup_logging(settings.log_level, log_dir=settings.log_dir, json_events=settings.log_json_events)
    init_engine(settings.database_url, echo=False, schema=settings.database_schema)

    broadcaster = BroadcastNotifier()
    service = create_export_service(
        settings,
        get_session_factory(),
        notifier=CompositeNotifier([LoggingNotifier(), broadcaster]),
    )
    app.state.export_service = service
    app.state.export_broadcaster = broadcaster

    cleanup_task = None
    if settings.export_cleanup_enabled:
        cleanup_task = asyncio.create_task(
            export_cleanup_loop(
                service.run_cleanup,
                interval_hours=settings.export_cleanup_interval_hours,
                retention_days=settings.export_retention_days,
            )
        )

    yield

    if cleanup_task is not None:
        cleanup_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await cleanup_task

    await service.aclose()
    await dispose_engine()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="Taskboard API",
        description="Task dashboard backend with asynchronous bulk exports",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Register exception handlers
    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"detail": str(exc)},
        )

    # Register middleware and routers
    from taskboard_api.api.router import create_router, setup_middleware

    setup_middleware(app, settings)
    app.include_router(create_router(settings))

    return app
