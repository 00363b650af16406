"""Application lifespan: logging, service wiring and the dispatch scheduler."""

from contextlib import asynccontextmanager
import sys
import threading
from typing import AsyncIterator, Optional, TYPE_CHECKING

from fastapi import FastAPI
from structlog.stdlib import BoundLogger

from infrastructure.logging.setup import configure_logging
from infrastructure.services import get_notification_service, get_settings
from jobs import scheduled_tasks

if TYPE_CHECKING:
    from infrastructure.configuration import Settings
    from infrastructure.notifications.service import NotificationService


def _log_configuration(settings: "Settings", logger: BoundLogger) -> None:
    # Only presence flags and tunables; credentials stay out of the logs
    logger.info(
        "configuration_loaded",
        environment=settings.PREFIX or "production",
        git_sha=settings.GIT_SHA,
        store_backend=settings.dispatch.store_backend,
        dispatch_enabled=settings.dispatch.enabled,
        dispatch_interval_seconds=settings.dispatch.interval_seconds,
        dispatch_batch_size=settings.dispatch.batch_size,
        channels=settings.configured_channels(),
    )
    for channel, configured in settings.configured_channels().items():
        if not configured:
            logger.warning("delivery_channel_not_configured", channel=channel)


def _start_dispatch_loop(
    settings: "Settings",
    service: "NotificationService",
    logger: BoundLogger,
) -> Optional[threading.Event]:
    if "pytest" in sys.modules:
        return None
    if not settings.dispatch.enabled:
        logger.info("scheduled_tasks_skipped", reason="dispatch_disabled")
        return None

    scheduled_tasks.init(settings, service)
    stop_event = scheduled_tasks.run_continuously()
    logger.info("scheduled_tasks_started")
    return stop_event


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    logger = configure_logging(
        log_level=settings.LOG_LEVEL, is_production=settings.is_production
    )
    app.state.settings = settings
    app.state.logger = logger

    logger.info("application_startup")
    _log_configuration(settings, logger)

    service = get_notification_service()
    app.state.notification_service = service
    app.state.scheduled_stop_event = _start_dispatch_loop(settings, service, logger)

    yield

    logger.info("application_shutdown")
    if app.state.scheduled_stop_event is not None:
        scheduled_tasks.stop(app.state.scheduled_stop_event)
