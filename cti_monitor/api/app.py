"""
FastAPI Application Module

Hosts the event monitor together with its diagnostics routes. The monitor
is started and stopped with the application lifespan.
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI

from ..config import MonitorSettings, get_settings
from ..core.logging import setup_logging
from ..monitor import EventMonitor
from .routes import router, set_monitor

logger = structlog.get_logger(__name__)


def create_app(
    settings: Optional[MonitorSettings] = None,
    monitor: Optional[EventMonitor] = None,
    configure_logging: bool = True,
) -> FastAPI:
    """
    Create the diagnostics application.

    Args:
        settings: Monitor settings; defaults to ``get_settings()``
        monitor: Pre-built monitor, e.g. one wired to a custom transport
        configure_logging: Install the log handlers from ``settings``
    """
    settings = settings or get_settings()
    if configure_logging:
        setup_logging(settings.log_level, settings.log_format, settings.service_name)

    event_monitor = monitor or EventMonitor(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        set_monitor(event_monitor)
        await event_monitor.start()
        logger.info("diagnostics_api_started")

        yield

        await event_monitor.stop()
        set_monitor(None)
        logger.info("diagnostics_api_stopped")

    app = FastAPI(
        title="CTI Event Monitor",
        description="Diagnostics for the CTI event discovery and publishing pipeline",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.monitor = event_monitor
    app.include_router(router)

    return app
