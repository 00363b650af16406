"""Scoped structlog context for HTTP requests and dispatch cycles.

Anything bound here is merged into each entry by
``structlog.contextvars.merge_contextvars``, so a dispatch cycle can be
followed from ``dispatch_cycle_started`` down to every ``sms_batch_sent``.
"""

import uuid
from contextlib import contextmanager
from typing import Any, Iterator, Optional

import structlog

CORRELATION_KEY = "correlation_id"


@contextmanager
def bind_request_context(
    correlation_id: Optional[str] = None,
    user_id: Optional[str] = None,
    request_path: Optional[str] = None,
    request_method: Optional[str] = None,
    **extra_context: Any,
) -> Iterator[None]:
    """Bind context for the duration of the block.

    A fresh uuid4 is used when ``correlation_id`` is not supplied. Keys left
    as None are not bound. Everything bound is removed on exit, including
    when the block raises.

    Example:
        with bind_request_context(dispatch_cycle=cycle_id):
            dispatcher.run_due_dispatch()
    """
    optional = {
        "user_id": user_id,
        "request_path": request_path,
        "request_method": request_method,
    }
    context: dict[str, Any] = {CORRELATION_KEY: correlation_id or str(uuid.uuid4())}
    context.update({key: value for key, value in optional.items() if value is not None})
    context.update(extra_context)

    structlog.contextvars.bind_contextvars(**context)
    try:
        yield
    finally:
        structlog.contextvars.unbind_contextvars(*context)


def get_correlation_id() -> Optional[str]:
    """Correlation id bound to the current context, if any."""
    return structlog.contextvars.get_contextvars().get(CORRELATION_KEY)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()
