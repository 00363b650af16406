"""Push channel implementation using Firebase Cloud Messaging."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from infrastructure.directory.models import Endpoints
from infrastructure.logging import get_module_logger
from infrastructure.notifications.channels.base import ChannelGateway
from infrastructure.notifications.models import (
    Channel,
    DeliveryOutcome,
    NotificationPriority,
    NotificationRecord,
    NotificationType,
)
from infrastructure.operations import OperationResult
from infrastructure.resilience.circuit_breaker import CircuitBreaker
from integrations.fcm.client import FcmClient

logger = get_module_logger()

ANDROID_CHANNELS = {
    NotificationType.MEETING: "meeting_notifications",
    NotificationType.PAYMENT: "payment_notifications",
    NotificationType.SYSTEM: "system_notifications",
    NotificationType.REMINDER: "reminder_notifications",
}
DEFAULT_ANDROID_CHANNEL = "general_notifications"
URGENT_ANDROID_CHANNEL = "urgent_notifications"

TYPE_COLORS = {
    NotificationType.SUCCESS: "#4CAF50",
    NotificationType.WARNING: "#FF9800",
    NotificationType.ERROR: "#F44336",
    NotificationType.INFO: "#2196F3",
    NotificationType.MEETING: "#9C27B0",
    NotificationType.PAYMENT: "#4CAF50",
    NotificationType.SYSTEM: "#607D8B",
    NotificationType.REMINDER: "#2196F3",
}
URGENT_COLOR = "#F44336"


def android_channel_id(record: NotificationRecord) -> str:
    if record.priority == NotificationPriority.URGENT:
        return URGENT_ANDROID_CHANNEL
    return ANDROID_CHANNELS.get(record.type, DEFAULT_ANDROID_CHANNEL)


def notification_color(record: NotificationRecord) -> str:
    if record.priority == NotificationPriority.URGENT:
        return URGENT_COLOR
    return TYPE_COLORS.get(record.type, TYPE_COLORS[NotificationType.INFO])


def build_payload(record: NotificationRecord) -> Dict[str, Any]:
    """Shape an FCM v1 message body (without target) for ``record``.

    Presentation only: urgent notifications ring and vibrate at high
    priority, low priority ones are silent on the web.
    """
    urgent = record.priority == NotificationPriority.URGENT
    low = record.priority == NotificationPriority.LOW

    data = {key: str(value) for key, value in record.data.items()}
    data.update(
        {
            "notificationId": record.id,
            "type": record.type.value,
            "priority": record.priority.value,
            "actionUrl": record.action_url or "",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    )

    android_notification: Dict[str, Any] = {
        "channel_id": android_channel_id(record),
        "icon": "ic_notification",
        "color": notification_color(record),
        "sound": "default" if urgent else "notification",
    }
    if urgent:
        android_notification["vibrate_timings"] = ["0.2s", "0.1s", "0.2s"]
        android_notification["sticky"] = True

    return {
        "notification": {"title": record.title, "body": record.message},
        "data": data,
        "android": {
            "priority": "HIGH" if record.is_urgent else "NORMAL",
            "notification": android_notification,
        },
        "apns": {
            "headers": {"apns-priority": "10" if record.is_urgent else "5"},
            "payload": {
                "aps": {
                    "badge": 1,
                    "sound": "default" if urgent else "notification.wav",
                    "category": record.type.value,
                    "thread-id": record.category or "general",
                }
            },
        },
        "webpush": {
            "headers": {"TTL": "300", "Urgency": "high" if urgent else "normal"},
            "notification": {
                "icon": "/icons/notification-icon.png",
                "badge": "/icons/badge-icon.png",
                "requireInteraction": urgent,
                "silent": low,
            },
        },
    }


class PushGateway(ChannelGateway):
    """Push channel using FCM.

    Sends one request per device token; a record's push delivery succeeds
    when at least one of the member's devices accepted it.
    """

    def __init__(
        self,
        client: FcmClient,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        self._client = client
        super().__init__(circuit_breaker)
        logger.info("initialized_push_gateway", backend="fcm")

    @property
    def channel(self) -> Channel:
        return Channel.PUSH

    @property
    def is_configured(self) -> bool:
        return self._client.is_configured

    def targets(self, endpoints: Endpoints) -> List[str]:
        return list(endpoints.device_tokens)

    def deliver(
        self, record: NotificationRecord, endpoints: Endpoints
    ) -> List[DeliveryOutcome]:
        return self.send_many(self.targets(endpoints), build_payload(record))

    def send_one(self, token: str, payload: Dict[str, Any]) -> DeliveryOutcome:
        """Send ``payload`` to one device token."""
        message = dict(payload, token=token)
        result = self._guarded(self._client.send, message)
        message_id = (result.data or {}).get("name") if result.is_success else None
        outcome = self._outcome(token, result, message_id)
        if outcome.permanent:
            outcome.invalid_endpoint = bool((result.data or {}).get("invalid_token"))
        return outcome

    def send_many(self, tokens: List[str], payload: Dict[str, Any]) -> List[DeliveryOutcome]:
        """Send ``payload`` to each token; partial success is not a failure."""
        outcomes = [self.send_one(token, payload) for token in tokens]
        logger.info(
            "push_multicast_completed",
            total_tokens=len(tokens),
            success_count=sum(1 for o in outcomes if o.success),
            failure_count=sum(1 for o in outcomes if not o.success),
        )
        return outcomes

    def send_to_topic(self, topic: str, payload: Dict[str, Any]) -> OperationResult:
        """Send ``payload`` to every device subscribed to ``topic``."""
        message = dict(payload, topic=topic)
        result = self._guarded(self._client.send, message)
        if result.is_success:
            logger.info("push_topic_sent", topic=topic)
        else:
            logger.warning("push_topic_failed", topic=topic, error=result.message)
        return result

    def subscribe_to_topic(self, tokens: List[str], topic: str) -> OperationResult:
        return self._guarded(self._client.subscribe, tokens, topic)

    def unsubscribe_from_topic(self, tokens: List[str], topic: str) -> OperationResult:
        return self._guarded(self._client.unsubscribe, tokens, topic)

    def validate_token(self, token: str) -> OperationResult:
        """Dry-run send to check whether ``token`` is still registered.

        Returns:
            OperationResult with data={"valid": bool}; transient and
            unavailable results are returned unchanged
        """
        result = self._guarded(
            self._client.send,
            {"token": token, "data": {"test": "validation"}},
            validate_only=True,
        )
        if result.is_success:
            return OperationResult.success(data={"valid": True})
        if (result.data or {}).get("invalid_token"):
            return OperationResult.success(
                data={"valid": False, "error_code": result.error_code},
                message=result.message,
            )
        return result

    def health_check(self) -> OperationResult:
        return self._client.health_check()
