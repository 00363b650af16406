from unittest.mock import MagicMock

import pytest
from starlette.requests import Request

from api.dependencies.rate_limits import client_address
from api.v1.routes import notifications
from infrastructure.notifications.service import NotificationService
from infrastructure.services.providers import get_notification_service
from utils.tests import create_test_app, rate_limiting_helper


@pytest.mark.asyncio
async def test_manual_dispatch_is_rate_limited():
    app = create_test_app(notifications.router, prefix="/api/v1")
    service = MagicMock(spec=NotificationService)
    service.run_due_dispatch.return_value = {
        "records": 0,
        "expired": 0,
        "claimed": 0,
        "skipped": 0,
        "sent": 0,
        "failed": 0,
        "retried": 0,
        "unavailable": 0,
        "invalid_endpoints": 0,
    }
    app.dependency_overrides[get_notification_service] = lambda: service

    await rate_limiting_helper(
        app, "/api/v1/notifications/dispatch", request_limit=6, method="post"
    )


def _request(headers, client=("10.0.0.9", 5000)):
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
        "client": client,
    }
    return Request(scope)


def test_client_address_prefers_first_forwarded_hop():
    request = _request({"X-Forwarded-For": "41.90.1.2, 10.0.0.1"})
    assert client_address(request) == "41.90.1.2"


def test_client_address_falls_back_to_peer():
    assert client_address(_request({})) == "10.0.0.9"
