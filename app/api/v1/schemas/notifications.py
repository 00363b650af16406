"""Pydantic schemas for the notifications API.

Request bodies reuse the domain content models so validation (title and
message limits, channel de-duplication, UTC normalisation) happens once.
Responses are API views of NotificationRecord.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from infrastructure.notifications.models import (
    Deliveries,
    NotificationContent,
    NotificationMetadata,
    NotificationPriority,
    NotificationRecord,
    NotificationType,
    OverallStatus,
)
from infrastructure.operations import OperationResult


class BulkNotificationRequest(NotificationContent):
    """Notification content plus the recipient selector for a bulk send."""

    model_config = ConfigDict(
        str_strip_whitespace=True,
        json_schema_extra={
            "example": {
                "title": "Contribution reminder",
                "message": "Monthly contributions are due on Friday",
                "type": "reminder",
                "priority": "normal",
                "channels": ["push", "sms", "in-app"],
                "selector": "role:member",
            }
        },
    )

    selector: str = Field(
        ...,
        min_length=1,
        description="'all', 'role:<role>' or 'custom:[id1,id2]'",
        examples=["all", "role:treasurer", "custom:[u1,u2]"],
    )


class RescheduleRequest(BaseModel):
    """New delivery time for a notification."""

    scheduled_for: datetime = Field(..., description="New scheduled time (UTC if naive)")


class NotificationCreatedResponse(BaseModel):
    id: str


class BulkNotificationCreatedResponse(BaseModel):
    batch_id: str


class NotificationResponse(BaseModel):
    """API view of a notification record."""

    id: str
    batch_id: Optional[str] = None
    recipient: str
    sender: Optional[str] = None
    title: str
    message: str
    type: NotificationType
    priority: NotificationPriority
    data: Dict[str, Any] = Field(default_factory=dict)
    action_url: Optional[str] = None
    action_text: Optional[str] = None
    category: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    channels: List[str]
    deliveries: Deliveries
    overall_status: OverallStatus
    is_read: bool
    read_at: Optional[datetime] = None
    is_archived: bool
    archived_at: Optional[datetime] = None
    is_expired: bool
    is_system_generated: bool
    scheduled_for: datetime
    expires_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    retry_count: int
    created_at: datetime
    updated_at: datetime
    metadata: NotificationMetadata

    @classmethod
    def from_record(cls, record: NotificationRecord) -> "NotificationResponse":
        fields = record.model_dump(
            exclude={"related_model", "related_id", "version"}
        )
        fields["channels"] = [channel.value for channel in record.channels]
        return cls(
            **fields,
            overall_status=record.overall_status,
            is_expired=record.is_expired,
        )


class NotificationListResponse(BaseModel):
    notifications: List[NotificationResponse]
    count: int

    @classmethod
    def from_records(cls, records: List[NotificationRecord]) -> "NotificationListResponse":
        items = [NotificationResponse.from_record(record) for record in records]
        return cls(notifications=items, count=len(items))


class UnreadCountResponse(BaseModel):
    user_id: str
    unread_count: int


class MarkAllReadResponse(BaseModel):
    user_id: str
    marked_read: int


class BatchSummaryResponse(BaseModel):
    batch_id: str
    total: int
    read: int
    status: Dict[str, int]


class ChannelDeliveryCounts(BaseModel):
    delivered: int = 0
    failed: int = 0


class DeliveryStatsResponse(BaseModel):
    total: int
    read: int
    unread: int
    archived: int
    by_type: Dict[str, int]
    by_priority: Dict[str, int]
    channels: Dict[str, ChannelDeliveryCounts]


class DispatchStatsResponse(BaseModel):
    records: int
    expired: int
    claimed: int
    skipped: int
    sent: int
    failed: int
    retried: int
    unavailable: int
    invalid_endpoints: int


class ComponentHealth(BaseModel):
    status: str
    healthy: bool
    message: Optional[str] = None
    error_code: Optional[str] = None

    @classmethod
    def from_result(cls, result: OperationResult) -> "ComponentHealth":
        return cls(
            status=result.status.value,
            healthy=result.is_success,
            message=result.message,
            error_code=result.error_code,
        )


class ChannelHealthResponse(BaseModel):
    healthy: bool
    components: Dict[str, ComponentHealth]
