"""Structured logging for the notifications backend (structlog).

Every module logs through ``get_module_logger()`` with snake_case event names
and keyword context::

    logger = get_module_logger()
    logger.info("sms_batch_sent", batch=2, recipients=100)

HTTP requests and dispatch cycles bind a correlation id with
``bind_request_context`` so related entries can be grouped.
"""

from infrastructure.logging.context import (
    bind_request_context,
    clear_request_context,
    get_correlation_id,
)
from infrastructure.logging.formatters import (
    SENSITIVE_PATTERNS,
    add_environment_info,
    mask_sensitive_data,
    truncate_large_values,
)
from infrastructure.logging.setup import configure_logging, get_module_logger

__all__ = [
    "configure_logging",
    "get_module_logger",
    "bind_request_context",
    "clear_request_context",
    "get_correlation_id",
    "SENSITIVE_PATTERNS",
    "add_environment_info",
    "mask_sensitive_data",
    "truncate_large_values",
]
