"""Email channel implementation using GC Notify."""

from typing import Any, Dict, List, Optional

from infrastructure.directory.models import Endpoints
from infrastructure.logging import get_module_logger
from infrastructure.notifications.channels.base import ChannelGateway
from infrastructure.notifications.models import (
    Channel,
    DeliveryOutcome,
    NotificationRecord,
)
from infrastructure.operations import OperationResult
from infrastructure.resilience.circuit_breaker import CircuitBreaker
from integrations.notify.client import NotifyClient

logger = get_module_logger()


def build_personalisation(record: NotificationRecord) -> Dict[str, Any]:
    """Template variables for the notification email template."""
    return {
        "title": record.title,
        "message": record.message,
        "action_url": record.action_url or "",
        "action_text": record.action_text or "",
        "type": record.type.value,
        "priority": record.priority.value,
    }


class EmailGateway(ChannelGateway):
    """Email channel using a GC Notify template.

    Args:
        client: NotifyClient
        circuit_breaker: Optional breaker for the provider
    """

    def __init__(
        self,
        client: NotifyClient,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        self._client = client
        super().__init__(circuit_breaker)
        logger.info("initialized_email_gateway", backend="gc_notify")

    @property
    def channel(self) -> Channel:
        return Channel.EMAIL

    @property
    def is_configured(self) -> bool:
        return self._client.is_configured

    def targets(self, endpoints: Endpoints) -> List[str]:
        return [endpoints.email] if endpoints.email else []

    def deliver(
        self, record: NotificationRecord, endpoints: Endpoints
    ) -> List[DeliveryOutcome]:
        return self.send_many(
            self.targets(endpoints), build_personalisation(record), reference=record.id
        )

    def send_one(
        self,
        address: str,
        payload: Dict[str, Any],
        reference: Optional[str] = None,
    ) -> DeliveryOutcome:
        result = self._guarded(self._client.send_email, address, payload, reference)
        message_id = (result.data or {}).get("id") if result.is_success else None
        outcome = self._outcome(address, result, message_id)
        if not outcome.success:
            logger.warning(
                "email_failed",
                error=result.message,
                error_code=result.error_code,
                permanent=outcome.permanent,
            )
        return outcome

    def send_many(
        self,
        addresses: List[str],
        payload: Dict[str, Any],
        reference: Optional[str] = None,
    ) -> List[DeliveryOutcome]:
        return [self.send_one(address, payload, reference) for address in addresses]

    def health_check(self) -> OperationResult:
        return self._client.health_check()
