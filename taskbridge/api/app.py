"""FastAPI application for the taskbridge daemon.

This module provides the HTTP surface of the daemon:
- Health, version and status endpoints
- Manual sync trigger per source
- The background scheduler, started and stopped with the application
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request

from taskbridge import __version__
from taskbridge.api.scheduler import SchedulerManager
from taskbridge.core.config import AppConfig, load_config
from taskbridge.utils.logging import setup_logging

logger = logging.getLogger(__name__)


def create_app(
    config: AppConfig | None = None,
    scheduler: SchedulerManager | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Configuration to use (loaded from the default file if omitted)
        scheduler: Pre-built scheduler; when given, the lifespan neither
            starts nor stops it

    Returns:
        FastAPI: Configured FastAPI application instance
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Start the scheduler on startup, stop it on shutdown."""
        logger.info("taskbridge API starting up...")

        if app.state.config is None:
            app.state.config = load_config()
            setup_logging(app.state.config)
            logger.info(f"Configuration loaded from {app.state.config.general.config_file or 'defaults'}")

        owns_scheduler = app.state.scheduler is None
        if owns_scheduler:
            app.state.scheduler = SchedulerManager(app.state.config)
            await app.state.scheduler.start()
            logger.info("Scheduler initialized and started")

        yield

        logger.info("taskbridge API shutting down...")
        if owns_scheduler and app.state.scheduler:
            await app.state.scheduler.stop()

    app = FastAPI(
        title="taskbridge API",
        description="Health, status and manual sync triggers for the taskbridge daemon",
        version=__version__,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.scheduler = scheduler

    # Request logging middleware
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all incoming requests."""
        logger.debug(f"{request.method} {request.url.path}")
        response = await call_next(request)
        logger.debug(f"{request.method} {request.url.path} - {response.status_code}")
        return response

    # Register API routes
    from taskbridge.api.routes import health, sync

    app.include_router(health.router, prefix="/api", tags=["Health"])
    app.include_router(sync.router, prefix="/api/sync", tags=["Sync"])

    @app.get("/")
    async def root():
        """Root endpoint - returns API information."""
        return {
            "name": "taskbridge API",
            "version": __version__,
            "docs": "/api/docs",
            "health": "/api/health",
        }

    logger.debug("FastAPI application created")
    return app
