"""Result type shared by the store, the delivery gateways and provider clients.

Gateways never raise for provider failures. They return an ``OperationResult``
whose status tells the dispatcher what to do with the channel: mark it sent,
schedule another attempt, fail it, or release it untouched.
"""

from dataclasses import dataclass
from typing import Any, Optional

from infrastructure.operations.status import OperationStatus


@dataclass
class OperationResult:
    """Outcome of one store or provider call.

    Attributes:
        status: What happened, see ``OperationStatus``.
        message: Short description for logs and ``last_error``.
        data: Payload, e.g. ``{"invalid_tokens": [...]}`` from the push gateway.
        error_code: Provider or internal code (``UNREGISTERED``, ``GATEWAY_ERROR``).
        retry_after: Seconds the provider asked us to wait, when it said so.
    """

    status: OperationStatus
    message: str
    data: Optional[Any] = None
    error_code: Optional[str] = None
    retry_after: Optional[int] = None

    @property
    def is_success(self) -> bool:
        return self.status == OperationStatus.SUCCESS

    @property
    def is_transient(self) -> bool:
        return self.status == OperationStatus.TRANSIENT_ERROR

    @property
    def is_unavailable(self) -> bool:
        return self.status == OperationStatus.UNAVAILABLE

    @classmethod
    def success(
        cls, data: Optional[Any] = None, message: str = "ok"
    ) -> "OperationResult":
        return cls(status=OperationStatus.SUCCESS, message=message, data=data)

    @classmethod
    def error(
        cls,
        status: OperationStatus,
        message: str,
        error_code: Optional[str] = None,
        retry_after: Optional[int] = None,
        data: Optional[Any] = None,
    ) -> "OperationResult":
        return cls(
            status=status,
            message=message,
            error_code=error_code,
            retry_after=retry_after,
            data=data,
        )

    @classmethod
    def transient_error(
        cls,
        message: str,
        error_code: Optional[str] = None,
        retry_after: Optional[int] = None,
        data: Optional[Any] = None,
    ) -> "OperationResult":
        """Failure worth another attempt on a later cycle.

        Timeouts, connection errors, HTTP 429 and 5xx, an open circuit.
        """
        return cls.error(
            OperationStatus.TRANSIENT_ERROR, message, error_code, retry_after, data
        )

    @classmethod
    def permanent_error(
        cls,
        message: str,
        error_code: Optional[str] = None,
        data: Optional[Any] = None,
    ) -> "OperationResult":
        """Failure that no retry will fix.

        Unregistered tokens, invalid or blacklisted numbers, a 400 from Notify.
        """
        return cls.error(
            OperationStatus.PERMANENT_ERROR, message, error_code, data=data
        )

    @classmethod
    def unavailable(
        cls, message: str, error_code: str = "SERVICE_UNAVAILABLE"
    ) -> "OperationResult":
        """The provider could not be called at all (missing or rejected credentials).

        The dispatcher releases the channel without spending an attempt.
        """
        return cls.error(OperationStatus.UNAVAILABLE, message, error_code)
