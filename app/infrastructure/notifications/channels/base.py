"""Channel gateway abstract base class.

All gateway implementations (Push, SMS, Email) implement this interface.
The dispatcher resolves endpoints, hands them to the gateway of the claimed
channel and applies the returned outcomes; gateways never touch the store.
"""

from abc import ABC, abstractmethod
from typing import Callable, List, Optional

from infrastructure.directory.models import Endpoints
from infrastructure.logging import get_module_logger
from infrastructure.notifications.models import (
    Channel,
    DeliveryOutcome,
    NotificationRecord,
)
from infrastructure.operations import OperationResult, OperationStatus
from infrastructure.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerOpenError,
    register_circuit_breaker,
)

logger = get_module_logger()


class ChannelGateway(ABC):
    """Abstract base class for delivery gateways.

    Each gateway handles delivery through one provider:
    - PushGateway: Firebase Cloud Messaging
    - SmsGateway: Africa's Talking
    - EmailGateway: GC Notify

    Provider calls go through a per-gateway circuit breaker; an open circuit
    is reported as an unavailable CIRCUIT_OPEN outcome, which releases the
    claim without spending a retry.

    Args:
        circuit_breaker: Optional breaker; one named after the channel is
            created and registered when omitted
    """

    def __init__(self, circuit_breaker: Optional[CircuitBreaker] = None):
        self._circuit_breaker = circuit_breaker or CircuitBreaker(
            name=f"{self.channel.value}_gateway"
        )
        register_circuit_breaker(self._circuit_breaker)

    @property
    @abstractmethod
    def channel(self) -> Channel:
        """Channel this gateway delivers."""
        pass

    @property
    def channel_name(self) -> str:
        return self.channel.value

    @property
    def is_configured(self) -> bool:
        """Whether provider credentials are present."""
        return True

    def is_ready(self) -> bool:
        """Configured and not behind an open circuit."""
        return self.is_configured and self._circuit_breaker.allows_calls()

    @abstractmethod
    def targets(self, endpoints: Endpoints) -> List[str]:
        """The endpoints this gateway sends to, e.g. device tokens for push."""
        pass

    @abstractmethod
    def deliver(
        self, record: NotificationRecord, endpoints: Endpoints
    ) -> List[DeliveryOutcome]:
        """Send ``record`` to every target in ``endpoints``.

        Must not raise for provider failures; every target gets a
        DeliveryOutcome.

        Returns:
            One DeliveryOutcome per target
        """
        pass

    @abstractmethod
    def health_check(self) -> OperationResult:
        """Check the provider is configured and reachable.

        Returns:
            OperationResult; UNAVAILABLE when the gateway cannot send at all
        """
        pass

    def _guarded(self, func: Callable[..., OperationResult], *args, **kwargs) -> OperationResult:
        """Call the provider through the circuit breaker."""
        try:
            return self._circuit_breaker.call(func, *args, **kwargs)
        except CircuitBreakerOpenError as e:
            return OperationResult.unavailable(str(e), error_code="CIRCUIT_OPEN")
        except Exception as e:  # pylint: disable=broad-except
            logger.exception(
                "gateway_call_failed", channel=self.channel_name, error=str(e)
            )
            return OperationResult.transient_error(
                f"{type(e).__name__}: {e}", error_code="GATEWAY_ERROR"
            )

    def _outcome(
        self,
        endpoint: str,
        result: OperationResult,
        message_id: Optional[str] = None,
    ) -> DeliveryOutcome:
        """Translate an OperationResult for one endpoint into a DeliveryOutcome."""
        if result.is_success:
            return DeliveryOutcome(
                channel=self.channel,
                endpoint=endpoint,
                success=True,
                provider_message_id=message_id,
            )
        return DeliveryOutcome(
            channel=self.channel,
            endpoint=endpoint,
            success=False,
            error_code=result.error_code,
            error=result.message,
            permanent=result.status
            in (OperationStatus.PERMANENT_ERROR, OperationStatus.NOT_FOUND),
            unavailable=result.status
            in (OperationStatus.UNAVAILABLE, OperationStatus.UNAUTHORIZED),
        )
