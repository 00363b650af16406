"""Structlog configuration.

``configure_logging`` is called once from the server lifespan. Modules obtain
their logger with ``get_module_logger`` at import time; structlog resolves the
configuration lazily so the order does not matter.
"""

import inspect
import logging
import sys
from typing import Optional

import structlog
from structlog.stdlib import BoundLogger

from infrastructure.logging.formatters import (
    add_environment_info,
    mask_sensitive_data,
    truncate_large_values,
)

SILENT_LEVEL = logging.CRITICAL + 1


def _is_test_environment() -> bool:
    return "pytest" in sys.modules


def _apply(processors: list, level: int, force: bool = False) -> BoundLogger:
    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", level=level, force=force)
    return structlog.stdlib.get_logger()


def _delivery_processors(environment: str, json_output: bool) -> list:
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.FILENAME,
                structlog.processors.CallsiteParameter.LINENO,
                structlog.processors.CallsiteParameter.FUNC_NAME,
            ]
        ),
        add_environment_info(environment),
        # Masking runs before rendering so phone numbers and tokens never
        # reach either renderer
        mask_sensitive_data(),
        truncate_large_values(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())
    return processors


def configure_logging(
    log_level: Optional[str] = None,
    is_production: Optional[bool] = None,
) -> BoundLogger:
    """Configure structlog and the stdlib root logger.

    Production renders JSON lines for CloudWatch; other environments use the
    console renderer. Under pytest everything is silenced.

    Args:
        log_level: Overrides ``LOG_LEVEL`` from settings.
        is_production: Overrides ``settings.is_production``.

    Returns:
        A logger bound to the new configuration.
    """
    if _is_test_environment():
        logging.root.setLevel(SILENT_LEVEL)
        return _apply(
            [
                structlog.stdlib.add_log_level,
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
            SILENT_LEVEL,
            force=True,
        )

    # Imported here: the providers module imports packages that log on import
    from infrastructure.services.providers import get_settings

    settings = get_settings()
    production = settings.is_production if is_production is None else is_production
    level_name = (log_level or settings.LOG_LEVEL).upper()

    return _apply(
        _delivery_processors(settings.PREFIX or "production", json_output=production),
        getattr(logging, level_name, logging.INFO),
    )


def get_module_logger() -> BoundLogger:
    """Logger bound to the calling module.

    Binds ``component`` (last dotted segment) and ``module_path``, e.g. a call
    from ``infrastructure.notifications.dispatcher`` yields
    ``component="dispatcher"``.
    """
    logger = structlog.stdlib.get_logger()

    frame = inspect.currentframe()
    caller = frame.f_back if frame is not None else None
    module = inspect.getmodule(caller) if caller is not None else None
    if module is None:
        return logger.bind(component="unknown")

    return logger.bind(
        component=module.__name__.rsplit(".", 1)[-1],
        module_path=module.__name__,
    )
