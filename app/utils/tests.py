"""Helpers for API tests."""

import httpx
from fastapi import APIRouter, FastAPI

from api.dependencies.rate_limits import get_limiter, setup_rate_limiter


def create_test_app(
    routers: APIRouter | list[APIRouter], prefix: str = "", middlewares=None
) -> FastAPI:
    """Bare FastAPI app serving ``routers`` with the shared rate limiter.

    Limiter counters are reset so earlier tests do not eat into the limits.
    ``middlewares`` is a list of ``(middleware_class, kwargs)`` pairs.

    Example:
        app = create_test_app(notifications.router, prefix="/api/v1")
    """
    app = FastAPI()
    setup_rate_limiter(app)
    get_limiter().reset()

    for middleware_class, options in middlewares or []:
        app.add_middleware(middleware_class, **options)

    for router in routers if isinstance(routers, list) else [routers]:
        app.include_router(router, prefix=prefix)
    return app


async def rate_limiting_helper(
    app: FastAPI,
    endpoint: str,
    request_limit: int,
    method: str = "get",
    expected_status: int = 200,
) -> None:
    """Assert ``endpoint`` accepts ``request_limit`` calls and rejects the next."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        send = getattr(client, method.lower())

        statuses = [(await send(endpoint)).status_code for _ in range(request_limit)]
        assert statuses == [expected_status] * request_limit

        rejected = await send(endpoint)
        assert rejected.status_code == 429
        assert rejected.json() == {"message": "Rate limit exceeded"}
