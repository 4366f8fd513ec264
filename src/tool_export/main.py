"""FastAPI application factory.

Creates the FastAPI app with lifespan management, exception handlers,
and OpenAPI metadata.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from tool_export.core.background import task_runner
from tool_export.core.config import get_settings
from tool_export.core.database import dispose_engine, get_session_factory, init_engine
from tool_export.core.logging import setup_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Wire the orchestrator on startup; let running exports finish on shutdown."""
    from tool_export.services.export_orchestrator import ExportOrchestrator

    settings = get_settings()
    setup_logging(settings.log_level, settings.log_dir)
    init_engine(settings.database_url, echo=False, schema=settings.database_schema)

    orchestrator = ExportOrchestrator.from_settings(settings, get_session_factory(), runner=task_runner)
    app.state.orchestrator = orchestrator
    app.state.task_runner = task_runner

    if settings.export_reconcile_on_startup:
        reconciled = await orchestrator.reconcile_orphaned_jobs()
        if reconciled:
            logger.warning(f"Reconciled {reconciled} orphaned export job(s) with a stale heartbeat")

    yield

    await task_runner.drain()
    await dispose_engine()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="Tool Export API",
        description="Packages registered platform tools into standalone deployable services",
        version="0.1.0",
        lifespan=lifespan,
    )

    from tool_export.api.errors import register_exception_handlers
    from tool_export.api.middleware import setup_middleware
    from tool_export.api.router import create_router

    register_exception_handlers(app)
    setup_middleware(app, settings)
    app.include_router(create_router(settings))

    return app
