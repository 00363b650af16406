"""Notification service for dependency injection.

Provides the application-facing operations of the notification system:
creating single and bulk notifications, read receipts, queries, reschedule,
archive and the sweeps run by the scheduler.

Usage:
    # Via dependency injection
    from infrastructure.services import NotificationServiceDep

    @router.post("/notifications")
    def create(service: NotificationServiceDep, spec: NotificationSpec):
        return {"id": service.create_notification(spec)}

    # Direct instantiation
    service = NotificationService(store, directory, dispatcher)
"""

import uuid
from collections import Counter
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from infrastructure.logging import get_module_logger
from infrastructure.notifications.dispatcher import Dispatcher
from infrastructure.notifications.errors import (
    InvalidSelectorError,
    NoRecipientsError,
    NotificationAccessError,
    NotificationNotFoundError,
)
from infrastructure.notifications.models import (
    EXTERNAL_CHANNELS,
    DeliveryState,
    NotificationContent,
    NotificationRecord,
    NotificationSource,
    NotificationSpec,
    utc_now,
)
from infrastructure.notifications.status import DeliveryStatusTracker
from infrastructure.notifications.store import NotificationStore
from infrastructure.operations import OperationResult

if TYPE_CHECKING:
    from infrastructure.directory.base import MemberDirectory

logger = get_module_logger()

SELECTOR_ALL = "all"
SELECTOR_ROLE = "role"
SELECTOR_CUSTOM = "custom"


def parse_selector(selector: str) -> Tuple[str, List[str]]:
    """Parse a bulk recipient selector.

    Accepted forms: ``all``, ``role:<role>``, ``custom:[id1,id2]`` and
    ``custom:id1,id2``.

    Returns:
        Tuple of selector kind and its arguments

    Raises:
        InvalidSelectorError: if the selector is not one of the forms above
    """
    value = (selector or "").strip()
    if value.lower() == SELECTOR_ALL:
        return SELECTOR_ALL, []

    kind, sep, rest = value.partition(":")
    kind = kind.strip().lower()
    rest = rest.strip()
    if not sep or not rest:
        raise InvalidSelectorError(f"Invalid recipient selector: '{selector}'")

    if kind == SELECTOR_ROLE:
        return SELECTOR_ROLE, [rest]

    if kind == SELECTOR_CUSTOM:
        if rest.startswith("[") and rest.endswith("]"):
            rest = rest[1:-1]
        ids = [part.strip().strip("'\"") for part in rest.split(",")]
        ids = [user_id for user_id in ids if user_id]
        if not ids:
            raise InvalidSelectorError(f"Custom selector has no ids: '{selector}'")
        return SELECTOR_CUSTOM, ids

    raise InvalidSelectorError(f"Unknown recipient selector: '{selector}'")


def _visible(record: NotificationRecord, now: datetime) -> bool:
    return not record.is_archived and not record.is_expired_at(now)


class NotificationService:
    """Class-based notification service.

    Args:
        store: NotificationStore holding the records
        directory: MemberDirectory used for bulk fan-out
        dispatcher: Dispatcher used for dispatch cycles and channel health
        tracker: DeliveryStatusTracker applying transitions
        sweep_page_size: Records read per page by sweeps and stats
    """

    def __init__(
        self,
        store: NotificationStore,
        directory: "MemberDirectory",
        dispatcher: Optional[Dispatcher] = None,
        tracker: Optional[DeliveryStatusTracker] = None,
        sweep_page_size: int = 100,
    ):
        self.store = store
        self.directory = directory
        self.dispatcher = dispatcher
        self.tracker = tracker or (dispatcher.tracker if dispatcher else DeliveryStatusTracker())
        self.sweep_page_size = sweep_page_size

    # Creation

    def create_notification(self, spec: NotificationSpec) -> str:
        """Persist a notification for one recipient and return its id."""
        record = NotificationRecord.from_spec(spec, spec.recipient)
        self.store.save(record)
        logger.info(
            "notification_created",
            record_id=record.id,
            recipient=record.recipient,
            type=record.type.value,
            priority=record.priority.value,
            channels=[c.value for c in record.channels],
        )
        return record.id

    def expand_selector(self, selector: str) -> List[str]:
        kind, args = parse_selector(selector)
        if kind == SELECTOR_ALL:
            return self.directory.resolve_all(active_only=True)
        if kind == SELECTOR_ROLE:
            return self.directory.resolve_by_role(args[0])
        return self.directory.resolve_custom(args)

    def create_bulk_notification(
        self, content: NotificationContent, selector: str
    ) -> str:
        """Create one record per selected member under a shared batch id.

        Raises:
            InvalidSelectorError: if the selector cannot be parsed
            NoRecipientsError: if the selector matches nobody; nothing is saved
        """
        recipients = list(dict.fromkeys(self.expand_selector(selector)))
        if not recipients:
            raise NoRecipientsError(selector)

        batch_id = uuid.uuid4().hex
        now = utc_now()
        records = []
        for recipient in recipients:
            record = NotificationRecord.from_spec(
                content,
                recipient,
                now=now,
                batch_id=batch_id,
                is_system_generated=True,
            )
            record.metadata.source = NotificationSource.AUTOMATED
            records.append(record)

        self.store.save_many(records)
        logger.info(
            "bulk_notification_created",
            batch_id=batch_id,
            selector=selector,
            recipient_count=len(records),
        )
        return batch_id

    # Queries

    def get_notification(self, record_id: str) -> NotificationRecord:
        record = self.store.get(record_id)
        if record is None:
            raise NotificationNotFoundError(record_id)
        return record

    def list_for_recipient(
        self,
        user_id: str,
        limit: Optional[int] = 50,
        unread_only: bool = False,
    ) -> List[NotificationRecord]:
        """Visible notifications for a member, newest first."""
        now = utc_now()
        records = [
            record
            for record in self.store.list_for_recipient(user_id)
            if _visible(record, now) and not (unread_only and record.is_read)
        ]
        return records[:limit] if limit is not None else records

    def get_unread_count(self, user_id: str) -> int:
        return len(self.list_for_recipient(user_id, limit=None, unread_only=True))

    def list_batch(self, batch_id: str) -> List[NotificationRecord]:
        records = self.store.list_batch(batch_id)
        if not records:
            raise NotificationNotFoundError(batch_id)
        return records

    def get_batch_summary(self, batch_id: str) -> Dict[str, Any]:
        """Overall status counts for one bulk send."""
        records = self.list_batch(batch_id)
        statuses = Counter(record.overall_status.value for record in records)
        return {
            "batch_id": batch_id,
            "total": len(records),
            "read": sum(1 for record in records if record.is_read),
            "status": dict(statuses),
        }

    def get_delivery_stats(self) -> Dict[str, Any]:
        """Counts over all records by type, priority, read state and channel."""
        by_type: Counter = Counter()
        by_priority: Counter = Counter()
        channels = {
            channel.value: {"delivered": 0, "failed": 0} for channel in EXTERNAL_CHANNELS
        }
        total = read = archived = 0

        cursor = None
        while True:
            page, cursor = self.store.scan(self.sweep_page_size, cursor)
            for record in page:
                total += 1
                read += int(record.is_read)
                archived += int(record.is_archived)
                by_type[record.type.value] += 1
                by_priority[record.priority.value] += 1
                for channel, delivery in record.deliveries.items():
                    if delivery.status.is_success:
                        channels[channel.value]["delivered"] += 1
                    elif delivery.status == DeliveryState.FAILED:
                        channels[channel.value]["failed"] += 1
            if cursor is None:
                break

        return {
            "total": total,
            "read": read,
            "unread": total - read,
            "archived": archived,
            "by_type": dict(by_type),
            "by_priority": dict(by_priority),
            "channels": channels,
        }

    # Read receipts and lifecycle

    def mark_read(
        self, record_id: str, user_id: Optional[str] = None
    ) -> NotificationRecord:
        """Mark one notification read.

        Raises:
            NotificationNotFoundError: if the record does not exist
            NotificationAccessError: if ``user_id`` is not the recipient
        """
        record = self.get_notification(record_id)
        if user_id is not None and record.recipient != user_id:
            raise NotificationAccessError(record_id, user_id)
        if record.is_read:
            return record
        return self.store.update(record_id, lambda r: self.tracker.mark_read(r))

    def mark_all_read(self, user_id: str) -> int:
        count = 0
        for record in self.list_for_recipient(user_id, limit=None, unread_only=True):
            updated = self.store.update(record.id, lambda r: self.tracker.mark_read(r))
            count += int(updated.is_read)
        logger.info("notifications_marked_read", user_id=user_id, count=count)
        return count

    def reschedule(self, record_id: str, new_time: datetime) -> NotificationRecord:
        record = self.store.update(
            record_id, lambda r: self.tracker.reschedule(r, new_time)
        )
        logger.info(
            "notification_rescheduled",
            record_id=record_id,
            scheduled_for=record.scheduled_for.isoformat(),
            rescheduled_count=record.metadata.rescheduled_count,
        )
        return record

    def archive(self, record_id: str) -> NotificationRecord:
        record = self.store.update(record_id, lambda r: self.tracker.archive(r))
        logger.info("notification_archived", record_id=record_id)
        return record

    # Sweeps

    def cleanup_expired(self, now: Optional[datetime] = None) -> int:
        """Archive every expired record, one page at a time."""
        now = now or utc_now()
        archived = 0
        cursor = None
        while True:
            page, cursor = self.store.scan(self.sweep_page_size, cursor)
            for record in page:
                if record.is_archived or not record.is_expired_at(now):
                    continue
                try:
                    updated = self.store.update(
                        record.id, lambda r: self.tracker.expire(r, now)
                    )
                except NotificationNotFoundError:
                    continue
                archived += int(updated.is_archived)
            if cursor is None:
                break
        logger.info("expired_notifications_archived", count=archived)
        return archived

    def run_due_dispatch(self, now: Optional[datetime] = None) -> Dict[str, int]:
        if self.dispatcher is None:
            raise RuntimeError("NotificationService has no dispatcher")
        return self.dispatcher.run_due_dispatch(now)

    def channel_health(self) -> Dict[str, OperationResult]:
        """Health of the store and every configured gateway."""
        results = {"store": self.store.health_check()}
        gateways = self.dispatcher.gateways if self.dispatcher else {}
        for channel, gateway in gateways.items():
            try:
                results[channel.value] = gateway.health_check()
            except Exception as e:  # pylint: disable=broad-except
                logger.error("channel_health_check_failed", channel=channel.value, error=str(e))
                results[channel.value] = OperationResult.transient_error(
                    str(e), error_code="HEALTH_CHECK_ERROR"
                )
        return results
