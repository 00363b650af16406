"""Notification domain models.

A NotificationRecord is one logical notification addressed to one member.
Requested external channels (push, SMS, email) each carry a fixed-shape
ChannelDelivery sub-state; in-app needs no sub-state and counts as delivered
once the record exists.

Uses Pydantic BaseModel for:
- Input validation of content (trimmed, bounded lengths)
- Serialization to the store and the API layer
- Type safety with proper error messages
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Collection, Dict, Iterator, List, Optional, Tuple
import uuid

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

MAX_RETRIES = 3


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class NotificationType(str, Enum):
    INFO = "info"
    WARNING = "warning"
    SUCCESS = "success"
    ERROR = "error"
    MEETING = "meeting"
    PAYMENT = "payment"
    SYSTEM = "system"
    REMINDER = "reminder"


class NotificationPriority(str, Enum):
    """Notification priority levels.

    Ordering for dispatch is urgent, high, normal, low. High and urgent
    notifications are considered urgent for presentation.
    """

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        """Dispatch order; lower ranks go first."""
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    NotificationPriority.URGENT: 0,
    NotificationPriority.HIGH: 1,
    NotificationPriority.NORMAL: 2,
    NotificationPriority.LOW: 3,
}


class Channel(str, Enum):
    PUSH = "push"
    SMS = "sms"
    EMAIL = "email"
    IN_APP = "in-app"

    @property
    def is_external(self) -> bool:
        return self is not Channel.IN_APP


EXTERNAL_CHANNELS: Tuple[Channel, ...] = (Channel.PUSH, Channel.SMS, Channel.EMAIL)


class DeliveryState(str, Enum):
    """Per-channel delivery state."""

    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"

    @property
    def is_success(self) -> bool:
        return self in (DeliveryState.SENT, DeliveryState.DELIVERED)


class OverallStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    PARTIAL = "partial"
    FAILED = "failed"


class NotificationSource(str, Enum):
    MANUAL = "manual"
    AUTOMATED = "automated"
    SCHEDULED = "scheduled"
    TRIGGERED = "triggered"


class RelatedModel(str, Enum):
    USER = "User"
    MEETING = "Meeting"
    TRANSACTION = "Transaction"
    PROXY_ACTION = "ProxyAction"


class ChannelDelivery(BaseModel):
    """Delivery sub-state for one requested external channel.

    Attributes:
        status: Current DeliveryState
        sent_at: When the gateway accepted the message
        delivered_at: When delivery was confirmed
        message_id: Provider message id of the last success
        error: Last error message
        error_code: Last machine error code
        attempts: Failed attempts that counted toward the retry budget
        permanent: Last failure can never succeed by retrying
        claimed_by: Worker holding the claim while in flight
        claim_expires_at: End of the claim lease
        not_before: Earliest time a released channel may be claimed again
    """

    status: DeliveryState = DeliveryState.PENDING
    sent_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    message_id: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    attempts: int = 0
    permanent: bool = False
    claimed_by: Optional[str] = None
    claim_expires_at: Optional[datetime] = None
    not_before: Optional[datetime] = None

    def is_retryable(self, max_retries: int = MAX_RETRIES) -> bool:
        """A transient failure with attempts left."""
        return (
            self.status == DeliveryState.FAILED
            and not self.permanent
            and self.attempts < max_retries
        )

    def is_dispatchable(self, now: datetime, max_retries: int = MAX_RETRIES) -> bool:
        """Pending past its backoff, retryable failed, or in flight with an expired lease."""
        if self.status == DeliveryState.PENDING:
            return self.not_before is None or self.not_before <= now
        if self.status == DeliveryState.IN_FLIGHT:
            return self.claim_expires_at is None or self.claim_expires_at <= now
        return self.is_retryable(max_retries)


class Deliveries(BaseModel):
    """Fixed-shape per-channel sub-states, present only for requested channels."""

    push: Optional[ChannelDelivery] = None
    sms: Optional[ChannelDelivery] = None
    email: Optional[ChannelDelivery] = None

    def get(self, channel: Channel) -> Optional[ChannelDelivery]:
        if not channel.is_external:
            return None
        return getattr(self, channel.value)

    def items(self) -> Iterator[Tuple[Channel, ChannelDelivery]]:
        for channel in EXTERNAL_CHANNELS:
            delivery = getattr(self, channel.value)
            if delivery is not None:
                yield channel, delivery


class NotificationMetadata(BaseModel):
    original_scheduled_time: Optional[datetime] = None
    rescheduled_count: int = 0
    source: NotificationSource = NotificationSource.MANUAL


class NotificationContent(BaseModel):
    """Validated content and targeting shared by single and bulk creation.

    Attributes:
        title: Short heading, trimmed, 1-100 characters
        message: Body, trimmed, 1-500 characters
        type: NotificationType (default: info)
        priority: NotificationPriority (default: normal)
        data: Free-form payload forwarded to push clients
        action_url: Optional deep link
        action_text: Optional call to action, at most 50 characters
        category: Optional grouping label, at most 50 characters
        tags: Labels, each at most 30 characters
        related_model: Kind of entity the notification is about
        related_id: Id of that entity
        sender: Member who triggered the notification, if any
        channels: Requested channels (default: in-app only)
        scheduled_for: Earliest dispatch time (default: now)
        expires_at: After this the notification is archived unsent
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(..., min_length=1, max_length=100)
    message: str = Field(..., min_length=1, max_length=500)
    type: NotificationType = NotificationType.INFO
    priority: NotificationPriority = NotificationPriority.NORMAL
    data: Dict[str, Any] = Field(default_factory=dict)
    action_url: Optional[str] = None
    action_text: Optional[str] = Field(default=None, max_length=50)
    category: Optional[str] = Field(default=None, max_length=50)
    tags: List[str] = Field(default_factory=list)
    related_model: Optional[RelatedModel] = None
    related_id: Optional[str] = None
    sender: Optional[str] = None
    channels: List[Channel] = Field(default_factory=lambda: [Channel.IN_APP])
    scheduled_for: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: List[str]) -> List[str]:
        tags = [tag.strip() for tag in v if tag and tag.strip()]
        for tag in tags:
            if len(tag) > 30:
                raise ValueError(f"Tag exceeds 30 characters: {tag}")
        return tags

    @field_validator("channels")
    @classmethod
    def dedupe_channels(cls, v: List[Channel]) -> List[Channel]:
        unique = list(dict.fromkeys(v))
        return unique or [Channel.IN_APP]

    @field_validator("scheduled_for", "expires_at")
    @classmethod
    def normalise_times(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)


class NotificationSpec(NotificationContent):
    """Input for creating a single notification."""

    recipient: str = Field(..., min_length=1)


class NotificationRecord(NotificationContent):
    """A stored notification addressed to exactly one recipient."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    batch_id: Optional[str] = None
    recipient: str = Field(..., min_length=1)
    is_system_generated: bool = False
    deliveries: Deliveries = Field(default_factory=Deliveries)

    is_read: bool = False
    read_at: Optional[datetime] = None
    scheduled_for: datetime = Field(default_factory=utc_now)
    is_archived: bool = False
    archived_at: Optional[datetime] = None
    retry_count: int = Field(default=0, ge=0, le=MAX_RETRIES)
    sent_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    version: int = 0

    metadata: NotificationMetadata = Field(default_factory=NotificationMetadata)

    @field_validator(
        "read_at", "archived_at", "sent_at", "created_at", "updated_at"
    )
    @classmethod
    def normalise_record_times(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    @model_validator(mode="after")
    def build_deliveries(self) -> "NotificationRecord":
        """Give every requested external channel a sub-state and nothing else."""
        for channel in EXTERNAL_CHANNELS:
            requested = channel in self.channels
            current = getattr(self.deliveries, channel.value)
            if requested and current is None:
                setattr(self.deliveries, channel.value, ChannelDelivery())
            elif not requested and current is not None:
                setattr(self.deliveries, channel.value, None)
        return self

    @classmethod
    def from_spec(
        cls,
        content: NotificationContent,
        recipient: str,
        now: Optional[datetime] = None,
        **extra: Any,
    ) -> "NotificationRecord":
        """Build a new record for one recipient from validated content."""
        now = now or utc_now()
        fields = content.model_dump(exclude={"recipient"})
        fields["scheduled_for"] = fields.get("scheduled_for") or now
        return cls(
            **fields,
            recipient=recipient,
            created_at=now,
            updated_at=now,
            **extra,
        )

    def requests(self, channel: Channel) -> bool:
        return channel in self.channels

    def is_expired_at(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at < now

    @property
    def is_expired(self) -> bool:
        return self.is_expired_at(utc_now())

    @property
    def is_urgent(self) -> bool:
        return self.priority in (NotificationPriority.HIGH, NotificationPriority.URGENT)

    @property
    def overall_status(self) -> OverallStatus:
        """Aggregate status over requested external channels.

        delivered when all delivered, partial when some failed and others
        succeeded, failed when all failed, sent when at least one succeeded and
        none failed, pending otherwise. In-app only records are delivered.
        """
        states = [delivery.status for _, delivery in self.deliveries.items()]
        if not states:
            return OverallStatus.DELIVERED
        if all(state == DeliveryState.DELIVERED for state in states):
            return OverallStatus.DELIVERED
        failed = sum(1 for state in states if state == DeliveryState.FAILED)
        succeeded = sum(1 for state in states if state.is_success)
        if failed and succeeded:
            return OverallStatus.PARTIAL
        if failed == len(states):
            return OverallStatus.FAILED
        if succeeded and not failed:
            return OverallStatus.SENT
        return OverallStatus.PENDING

    def dispatchable_channels(
        self,
        now: datetime,
        max_retries: int = MAX_RETRIES,
        channels: Optional[Collection[Channel]] = None,
    ) -> List[Tuple[Channel, DeliveryState]]:
        """Channels the dispatcher may claim, with the state it observed.

        ``channels`` restricts the answer to channels that can be served now.
        """
        return [
            (channel, delivery.status)
            for channel, delivery in self.deliveries.items()
            if (channels is None or channel in channels)
            and delivery.is_dispatchable(now, max_retries)
        ]

    def is_due(self, now: datetime, max_retries: int = MAX_RETRIES) -> bool:
        return (
            not self.is_archived
            and self.scheduled_for <= now
            and not self.is_expired_at(now)
            and bool(self.dispatchable_channels(now, max_retries))
        )

    def needs_dispatch(self, max_retries: int = MAX_RETRIES) -> bool:
        """True while any channel could still be sent; drives the due index."""
        if self.is_archived:
            return False
        return any(
            delivery.status in (DeliveryState.PENDING, DeliveryState.IN_FLIGHT)
            or delivery.is_retryable(max_retries)
            for _, delivery in self.deliveries.items()
        )


@dataclass
class DeliveryOutcome:
    """Result of one gateway call for one endpoint.

    Attributes:
        channel: Channel the endpoint belongs to
        endpoint: Device token, normalised phone number or email address
        success: Provider accepted the message
        provider_message_id: Provider id for the accepted message
        error_code: Machine error code on failure
        error: Error message on failure
        permanent: Failure will never succeed by retrying
        invalid_endpoint: The endpoint itself is dead (unregistered token,
            invalid number); forwarded to token hygiene
        unavailable: Gateway is not configured; no attempt was made
    """

    channel: Channel
    endpoint: str
    success: bool
    provider_message_id: Optional[str] = None
    error_code: Optional[str] = None
    error: Optional[str] = None
    permanent: bool = False
    invalid_endpoint: bool = False
    unavailable: bool = False
