import sys
from pathlib import Path

# Ensure the application package root is on sys.path so importing application
# modules (e.g. `infrastructure.notifications`) works during pytest collection.
project_root = str(Path(__file__).resolve().parents[1])
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from datetime import datetime, timezone  # noqa: E402

import pytest  # noqa: E402

from infrastructure.directory import InMemoryMemberDirectory  # noqa: E402
from infrastructure.notifications.status import DeliveryStatusTracker  # noqa: E402
from infrastructure.notifications.store import InMemoryNotificationStore  # noqa: E402
from infrastructure.resilience import circuit_breaker  # noqa: E402
from tests.factories.notifications import make_member  # noqa: E402


@pytest.fixture(autouse=True)
def reset_circuit_breaker_registry():
    """Gateways register their breakers globally; start every test clean."""
    circuit_breaker._circuit_breaker_registry.clear()
    yield
    circuit_breaker._circuit_breaker_registry.clear()


@pytest.fixture
def now():
    """Fixed reference time for deterministic tests."""
    return datetime(2025, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def tracker():
    return DeliveryStatusTracker()


@pytest.fixture
def store():
    return InMemoryNotificationStore()


@pytest.fixture
def directory():
    """Directory with a treasurer, two members and one inactive member."""
    return InMemoryMemberDirectory(
        [
            make_member(
                "member-1",
                role="treasurer",
                phone_number="0712345678",
                email="wanjiku@example.com",
                device_tokens=["token-a", "token-b"],
            ),
            make_member(
                "member-2",
                phone_number="+254722000111",
                email="otieno@example.com",
                device_tokens=["token-c"],
            ),
            make_member("member-3"),
            make_member(
                "member-4",
                is_active=False,
                phone_number="0733000222",
                device_tokens=["token-d"],
            ),
        ]
    )
