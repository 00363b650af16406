"""Notification scheduling and multi-channel delivery.

Records are created through NotificationService, picked up by the
Dispatcher once due, and delivered through one gateway per external channel
(push via FCM, SMS via Africa's Talking, email via GC Notify). In-app
notifications need no delivery.

Usage:
    from infrastructure.notifications import (
        Channel,
        NotificationPriority,
        NotificationSpec,
    )

    spec = NotificationSpec(
        recipient="member-123",
        title="Meeting tomorrow",
        message="Monthly meeting starts at 10am",
        priority=NotificationPriority.HIGH,
        channels=[Channel.PUSH, Channel.SMS, Channel.IN_APP],
    )
    record_id = notification_service.create_notification(spec)
"""

from infrastructure.notifications.dispatcher import Dispatcher
from infrastructure.notifications.errors import (
    ChannelNotEnabledError,
    ClaimRejectedError,
    ConcurrentModificationError,
    InvalidSelectorError,
    NoRecipientsError,
    NotificationAccessError,
    NotificationError,
    NotificationNotFoundError,
)
from infrastructure.notifications.factory import create_notification_store
from infrastructure.notifications.hygiene import TokenHygiene
from infrastructure.notifications.models import (
    Channel,
    ChannelDelivery,
    DeliveryOutcome,
    DeliveryState,
    NotificationContent,
    NotificationPriority,
    NotificationRecord,
    NotificationSource,
    NotificationSpec,
    NotificationType,
    OverallStatus,
    RelatedModel,
)
from infrastructure.notifications.service import NotificationService, parse_selector
from infrastructure.notifications.status import DeliveryStatusTracker
from infrastructure.notifications.store import (
    InMemoryNotificationStore,
    NotificationStore,
)

__all__ = [
    # Models
    "Channel",
    "ChannelDelivery",
    "DeliveryOutcome",
    "DeliveryState",
    "NotificationContent",
    "NotificationPriority",
    "NotificationRecord",
    "NotificationSource",
    "NotificationSpec",
    "NotificationType",
    "OverallStatus",
    "RelatedModel",
    # Errors
    "ChannelNotEnabledError",
    "ClaimRejectedError",
    "ConcurrentModificationError",
    "InvalidSelectorError",
    "NoRecipientsError",
    "NotificationAccessError",
    "NotificationError",
    "NotificationNotFoundError",
    # Components
    "DeliveryStatusTracker",
    "Dispatcher",
    "InMemoryNotificationStore",
    "NotificationService",
    "NotificationStore",
    "TokenHygiene",
    "create_notification_store",
    "parse_selector",
]
