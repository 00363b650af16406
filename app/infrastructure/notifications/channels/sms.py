"""SMS channel implementation using Africa's Talking."""

import re
import time
from typing import Callable, Dict, List, Optional

from infrastructure.configuration.integrations.sms import SmsSettings
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
from integrations.africastalking.client import AfricasTalkingClient

logger = get_module_logger()

KENYA_MOBILE = re.compile(r"^\+254[17][0-9]{8}$")
_SEPARATORS = re.compile(r"[\s\-().]")

SUCCESS_CODES = frozenset({100, 101, 102})
# InvalidPhoneNumber, UnsupportedNumberType: the number itself is unusable
INVALID_NUMBER_CODES = frozenset({403, 404})
# UserInBlacklist: the member opted out of messages from this sender
BLACKLISTED_CODES = frozenset({406})
INVALID_SENDER_ID_CODE = 402


def normalize_phone_number(phone_number: Optional[str]) -> Optional[str]:
    """Normalise a Kenyan mobile number to +2547XXXXXXXX or +2541XXXXXXXX.

    Accepts +254..., 254..., 0... and bare 9-digit numbers starting with
    7 or 1. Returns None when the result is not a valid Kenyan mobile number.
    """
    if not phone_number:
        return None
    cleaned = _SEPARATORS.sub("", phone_number.strip())

    if cleaned.startswith("+254"):
        normalized = cleaned
    elif cleaned.startswith("254"):
        normalized = "+" + cleaned
    elif cleaned.startswith("0"):
        normalized = "+254" + cleaned[1:]
    elif len(cleaned) == 9 and cleaned[0] in "71":
        normalized = "+254" + cleaned
    else:
        return None

    return normalized if KENYA_MOBILE.match(normalized) else None


def format_sms_text(record: NotificationRecord) -> str:
    return f"{record.title}: {record.message}"


class SmsGateway(ChannelGateway):
    """SMS channel using Africa's Talking bulk messaging.

    Numbers are normalised first; numbers that cannot be normalised fail
    permanently without being sent. Valid numbers go out in batches of at most
    ``SMS_BATCH_SIZE`` with a pause between batches. A batch that fails as a
    whole fails every number in it with the batch error; otherwise each
    number gets its own status.

    Args:
        client: AfricasTalkingClient
        settings: SmsSettings for batch size and delay
        circuit_breaker: Optional breaker for the provider
        sleep: Function used to pause between batches
    """

    def __init__(
        self,
        client: AfricasTalkingClient,
        settings: SmsSettings,
        circuit_breaker: Optional[CircuitBreaker] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._client = client
        self._batch_size = max(1, settings.SMS_BATCH_SIZE)
        self._batch_delay = settings.SMS_BATCH_DELAY_SECONDS
        self._sleep = sleep
        super().__init__(circuit_breaker)
        logger.info("initialized_sms_gateway", backend="africastalking")

    @property
    def channel(self) -> Channel:
        return Channel.SMS

    @property
    def is_configured(self) -> bool:
        return self._client.is_configured

    def targets(self, endpoints: Endpoints) -> List[str]:
        return [endpoints.phone_number] if endpoints.phone_number else []

    def deliver(
        self, record: NotificationRecord, endpoints: Endpoints
    ) -> List[DeliveryOutcome]:
        return self.send_bulk(self.targets(endpoints), format_sms_text(record))

    def send_one(self, number: str, text: str) -> DeliveryOutcome:
        return self.send_bulk([number], text)[0]

    def send_bulk(self, numbers: List[str], text: str) -> List[DeliveryOutcome]:
        """Send ``text`` to ``numbers``; one outcome per input number, in order."""
        outcomes: Dict[int, DeliveryOutcome] = {}
        valid: Dict[str, List[int]] = {}

        for index, raw in enumerate(numbers):
            normalized = normalize_phone_number(raw)
            if normalized is None:
                outcomes[index] = DeliveryOutcome(
                    channel=self.channel,
                    endpoint=raw or "",
                    success=False,
                    error_code="INVALID_PHONE_NUMBER",
                    error=f"Invalid phone number format: {raw}",
                    permanent=True,
                    invalid_endpoint=True,
                )
                continue
            valid.setdefault(normalized, []).append(index)

        unique_numbers = list(valid)
        for offset in range(0, len(unique_numbers), self._batch_size):
            if offset:
                self._sleep(self._batch_delay)
            batch = unique_numbers[offset : offset + self._batch_size]
            for number, outcome in self._send_batch(batch, text).items():
                for index in valid[number]:
                    outcomes[index] = outcome

        result = [outcomes[index] for index in range(len(numbers))]
        logger.info(
            "sms_bulk_completed",
            total=len(numbers),
            success_count=sum(1 for o in result if o.success),
        )
        return result

    def _send_batch(self, batch: List[str], text: str) -> Dict[str, DeliveryOutcome]:
        result = self._guarded(self._client.send, batch, text)
        if not result.is_success:
            logger.warning(
                "sms_batch_failed",
                batch_size=len(batch),
                error=result.message,
                error_code=result.error_code,
            )
            batch_outcome = self._outcome("", result)
            if not batch_outcome.unavailable:
                batch_outcome.permanent = False
            return {
                number: DeliveryOutcome(
                    channel=self.channel,
                    endpoint=number,
                    success=False,
                    error_code=batch_outcome.error_code,
                    error=batch_outcome.error,
                    unavailable=batch_outcome.unavailable,
                )
                for number in batch
            }

        entries = {entry.get("number"): entry for entry in result.data}

        rejected_sender = [
            number
            for number in batch
            if _status_code(entries.get(number)) == INVALID_SENDER_ID_CODE
        ]
        if rejected_sender:
            logger.info("sms_retry_without_sender_id", count=len(rejected_sender))
            retry = self._guarded(
                self._client.send, rejected_sender, text, use_sender_id=False
            )
            if retry.is_success:
                entries.update({entry.get("number"): entry for entry in retry.data})

        return {number: self._recipient_outcome(number, entries.get(number)) for number in batch}

    def _recipient_outcome(self, number: str, entry: Optional[dict]) -> DeliveryOutcome:
        if entry is None:
            return DeliveryOutcome(
                channel=self.channel,
                endpoint=number,
                success=False,
                error_code="NO_STATUS",
                error="Provider returned no status for this number",
            )

        code = _status_code(entry)
        status = entry.get("status", "")
        if code in SUCCESS_CODES:
            return DeliveryOutcome(
                channel=self.channel,
                endpoint=number,
                success=True,
                provider_message_id=entry.get("messageId"),
            )
        return DeliveryOutcome(
            channel=self.channel,
            endpoint=number,
            success=False,
            error_code=status or str(code),
            error=f"SMS rejected: {status} ({code})",
            permanent=code in INVALID_NUMBER_CODES or code in BLACKLISTED_CODES,
            invalid_endpoint=code in INVALID_NUMBER_CODES,
        )

    def health_check(self) -> OperationResult:
        return self._client.health_check()


def _status_code(entry: Optional[dict]) -> Optional[int]:
    if not entry:
        return None
    try:
        return int(entry.get("statusCode"))
    except (TypeError, ValueError):
        return None
