"""Test fixtures for notification infrastructure tests."""

import threading
from typing import Callable, Dict, List, Optional

import pytest

from infrastructure.directory.models import Endpoints
from infrastructure.notifications.channels.base import ChannelGateway
from infrastructure.notifications.dispatcher import Dispatcher
from infrastructure.notifications.models import (
    Channel,
    DeliveryOutcome,
    NotificationRecord,
)
from infrastructure.notifications.service import NotificationService
from infrastructure.operations import OperationResult
from tests.factories.notifications import make_outcome


class ScriptedGateway(ChannelGateway):
    """Gateway whose per-endpoint outcome is decided by a callable.

    Args:
        channel: Channel served
        respond: Maps an endpoint to a DeliveryOutcome; defaults to success
        configured: Reported as the provider configuration state
    """

    def __init__(
        self,
        channel: Channel,
        respond: Optional[Callable[[str], DeliveryOutcome]] = None,
        configured: bool = True,
    ):
        self._channel = channel
        self.configured = configured
        self._respond = respond or (lambda endpoint: make_outcome(channel, endpoint))
        self.calls: List[Dict] = []
        self._lock = threading.Lock()
        super().__init__()

    @property
    def channel(self) -> Channel:
        return self._channel

    @property
    def is_configured(self) -> bool:
        return self.configured

    def targets(self, endpoints: Endpoints) -> List[str]:
        if self._channel == Channel.PUSH:
            return list(endpoints.device_tokens)
        if self._channel == Channel.SMS:
            return [endpoints.phone_number] if endpoints.phone_number else []
        return [endpoints.email] if endpoints.email else []

    def deliver(
        self, record: NotificationRecord, endpoints: Endpoints
    ) -> List[DeliveryOutcome]:
        targets = self.targets(endpoints)
        with self._lock:
            self.calls.append({"record_id": record.id, "targets": targets})
        return [self._respond(target) for target in targets]

    def health_check(self) -> OperationResult:
        return OperationResult.success(message="ok")


@pytest.fixture
def gateway_factory():
    """Factory for ScriptedGateway instances.

    Example:
        sms = gateway_factory(Channel.SMS, lambda n: make_outcome(Channel.SMS, n, False))
    """

    def _factory(channel, respond=None, configured=True):
        return ScriptedGateway(channel, respond, configured)

    return _factory


@pytest.fixture
def gateways(gateway_factory):
    return {
        Channel.PUSH: gateway_factory(Channel.PUSH),
        Channel.SMS: gateway_factory(Channel.SMS),
        Channel.EMAIL: gateway_factory(Channel.EMAIL),
    }


@pytest.fixture
def dispatcher(store, directory, gateways, tracker):
    return Dispatcher(
        store=store,
        directory=directory,
        gateways=gateways,
        tracker=tracker,
        batch_size=50,
        max_workers=4,
        lease_seconds=300,
        worker_id="worker-test",
    )


@pytest.fixture
def service(store, directory, dispatcher, tracker):
    return NotificationService(
        store=store,
        directory=directory,
        dispatcher=dispatcher,
        tracker=tracker,
        sweep_page_size=2,
    )
