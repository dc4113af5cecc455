"""FastAPI application for the PaddySync service.

This module creates and configures the FastAPI application with:
- Location resolution and survey submission endpoints
- On-demand batch sync trigger and stats
- The cron scheduler, started with the application

Usage:
    uvicorn paddysync.server.app:app_factory --factory --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from paddysync.core.config import ServiceConfig
from paddysync.core.logs import setup_logging
from paddysync.server.api.router import router as api_router
from paddysync.server.scheduler import SyncScheduler
from paddysync.service import Service, new_service

logger = logging.getLogger(__name__)


def create_app(service: Service, scheduler: SyncScheduler | None = None) -> FastAPI:
    """Create FastAPI application around a service container.

    Args:
        service: Service container built by ``new_service``.
        scheduler: Sync scheduler, built from the service config if None.

    Returns:
        Configured FastAPI application.
    """
    config = service.config
    if scheduler is None:
        scheduler = SyncScheduler(
            service.engine,
            schedule=config.scheduler.schedule,
            timezone=config.scheduler.timezone,
            run_on_start=config.scheduler.run_on_start,
            batch_size=config.sync.batch_size,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler for startup/shutdown."""
        # Startup
        logger.info("=" * 60)
        logger.info("PaddySync Server Starting")
        logger.info("=" * 60)
        logger.info("  Database:   %s", service.db.url)
        logger.info("  Geometry:   %s", service.spatial.url)
        if service.storage:
            logger.info("  Storage:    %s", service.storage.location)
        else:
            logger.info("  Storage:    None (photo uploads disabled)")
        if service.documents:
            logger.info("  Documents:  %s", service.documents.location)
        else:
            logger.info("  Documents:  None (batch sync disabled)")
        logger.info("  Schedule:   %s", config.scheduler.schedule)
        logger.info("=" * 60)

        service.start()
        if config.scheduler.enabled:
            scheduler.start()

        yield

        # Shutdown
        logger.info("PaddySync Server shutting down")
        scheduler.stop()
        await service.stop()

    application = FastAPI(
        title="PaddySync Server",
        description="Field survey location resolution and batch sync",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.state.service = service
    application.state.scheduler = scheduler

    application.include_router(api_router)

    return application


def app_factory() -> FastAPI:
    """Factory function for uvicorn --factory mode."""
    config = ServiceConfig.from_env()
    setup_logging(config.log_path, config.log_level)
    return create_app(new_service(config))
