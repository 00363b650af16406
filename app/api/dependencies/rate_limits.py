"""slowapi rate limiting shared by every router.

The service runs behind a load balancer, so clients are keyed on the first
``X-Forwarded-For`` hop when present. ``default_rate_limit`` is passed to
``limiter.limit`` as a callable and is read from settings per request.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from infrastructure.logging import get_module_logger
from infrastructure.services.providers import get_settings

logger = get_module_logger()


def client_address(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For", "")
    first_hop = forwarded.split(",")[0].strip()
    return first_hop or get_remote_address(request)


limiter = Limiter(key_func=client_address)


async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning(
        "rate_limit_exceeded",
        path=request.url.path,
        limit=str(exc.detail),
    )
    return JSONResponse(status_code=429, content={"message": "Rate limit exceeded"})


def default_rate_limit() -> str:
    """Limit for notification routes, from ``RATE_LIMIT_DEFAULT``."""
    return get_settings().server.RATE_LIMIT_DEFAULT


def setup_rate_limiter(app: FastAPI) -> None:
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)


def get_limiter() -> Limiter:
    return limiter
