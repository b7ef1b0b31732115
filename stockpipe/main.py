"""Main application entry point with app factory and lifespan management."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from stockpipe.api.app import create_api_app
from stockpipe.core.config import settings
from stockpipe.core.logging import get_logger, setup_logging
from stockpipe.database.connection import close_database, init_database, init_models
from stockpipe.jobs.scheduler import start_scheduler, stop_scheduler
from stockpipe.sources.base import list_adapter_names
import stockpipe.jobs.definitions  # noqa: F401 - register jobs

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    setup_logging()
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"Environment: {settings.environment}")

    await init_database()
    logger.info("Database engine initialized")

    # Schema is owned by migrations outside development
    if settings.is_development:
        await init_models()
        logger.info("Database tables created")

    adapters = list_adapter_names()
    if adapters:
        logger.info(f"Source adapters: {', '.join(adapters)}")
    else:
        logger.warning("No source adapters registered; ingestion jobs will do nothing")

    if settings.scheduler_enabled:
        scheduler = await start_scheduler()
        logger.info(f"Scheduler started with {len(scheduler.ordered_jobs())} jobs")

    yield

    # Shutdown
    logger.info("Shutting down...")

    await stop_scheduler()
    await close_database()

    logger.info("Shutdown complete")


def create_app() -> FastAPI:
    """Create the main FastAPI application."""
    api_app = create_api_app()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    app.mount("/api", api_app)

    @app.get("/")
    async def root():
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "docs": "/api/docs" if settings.debug else None,
            "health": "/api/health",
        }

    return app


# Application instance
app = create_app()
