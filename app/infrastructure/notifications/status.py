"""Per-channel delivery state machine.

Every transition of a NotificationRecord goes through DeliveryStatusTracker.
The tracker mutates the record it is given and never touches storage; stores
call it inside their atomic update so each transition is applied under the
record's lock or version check.

Per-channel transitions:
    pending -> in_flight -> sent -> delivered
    pending -> in_flight -> failed
    in_flight -> pending       (claim released, with a backoff)
    in_flight -> in_flight     (expired lease re-claimed; the abandoned attempt counts)
    in_flight -> failed        (expired lease with no attempts left)
    failed -> in_flight        (retryable failure re-claimed)
    failed -> pending          (reschedule only)
"""

from datetime import datetime, timedelta
from typing import Optional

from infrastructure.notifications.errors import (
    ChannelNotEnabledError,
    ClaimRejectedError,
)
from infrastructure.notifications.models import (
    MAX_RETRIES,
    Channel,
    ChannelDelivery,
    DeliveryState,
    NotificationRecord,
    ensure_utc,
    utc_now,
)

LEASE_EXPIRED_CODE = "LEASE_EXPIRED"


class DeliveryStatusTracker:
    """Applies delivery transitions to notification records.

    Args:
        max_retries: Failed attempts allowed per channel (at most 3)
    """

    def __init__(self, max_retries: int = MAX_RETRIES):
        self.max_retries = min(max_retries, MAX_RETRIES)

    def _delivery(self, record: NotificationRecord, channel: Channel) -> ChannelDelivery:
        delivery = record.deliveries.get(channel)
        if delivery is None or not record.requests(channel):
            raise ChannelNotEnabledError(record.id, channel.value)
        return delivery

    @staticmethod
    def _touch(record: NotificationRecord, now: datetime) -> None:
        record.updated_at = now

    def _count_attempt(self, record: NotificationRecord, delivery: ChannelDelivery) -> None:
        delivery.attempts = min(delivery.attempts + 1, self.max_retries)
        record.retry_count = max(d.attempts for _, d in record.deliveries.items())

    @staticmethod
    def _mark_record_sent(record: NotificationRecord, now: datetime) -> None:
        if record.sent_at is None:
            record.sent_at = now

    def claim(
        self,
        record: NotificationRecord,
        channel: Channel,
        worker_id: str,
        lease_seconds: int,
        observed: DeliveryState,
        now: Optional[datetime] = None,
    ) -> bool:
        """Move a dispatchable channel to in_flight under a lease.

        Re-claiming an expired lease counts the abandoned attempt, since the
        previous worker may have reached the provider. When that exhausts the
        retry budget the channel fails with LEASE_EXPIRED instead.

        Returns:
            True if the channel is now claimed, False if it was retired

        Raises:
            ChannelNotEnabledError: channel was not requested
            ClaimRejectedError: the channel changed since it was observed or
                is no longer dispatchable
        """
        now = now or utc_now()
        delivery = self._delivery(record, channel)
        if delivery.status != observed or not delivery.is_dispatchable(
            now, self.max_retries
        ):
            raise ClaimRejectedError(
                f"{record.id}/{channel.value} is {delivery.status.value}, "
                f"expected {observed.value}"
            )
        if observed == DeliveryState.IN_FLIGHT:
            self._count_attempt(record, delivery)
            if delivery.attempts >= self.max_retries:
                delivery.status = DeliveryState.FAILED
                delivery.error = "claim lease expired"
                delivery.error_code = LEASE_EXPIRED_CODE
                delivery.claimed_by = None
                delivery.claim_expires_at = None
                self._touch(record, now)
                return False

        delivery.status = DeliveryState.IN_FLIGHT
        delivery.claimed_by = worker_id
        delivery.claim_expires_at = now + timedelta(seconds=lease_seconds)
        delivery.not_before = None
        self._touch(record, now)
        return True

    def release(
        self,
        record: NotificationRecord,
        channel: Channel,
        error: Optional[str] = None,
        error_code: Optional[str] = None,
        now: Optional[datetime] = None,
        backoff_seconds: int = 0,
    ) -> None:
        """Return an in-flight channel to pending without consuming an attempt.

        With ``backoff_seconds`` the channel is not dispatchable again until
        the backoff has passed.
        """
        now = now or utc_now()
        delivery = self._delivery(record, channel)
        if delivery.status != DeliveryState.IN_FLIGHT:
            return
        delivery.status = DeliveryState.PENDING
        delivery.claimed_by = None
        delivery.claim_expires_at = None
        delivery.error = error
        delivery.error_code = error_code
        delivery.not_before = (
            now + timedelta(seconds=backoff_seconds) if backoff_seconds else None
        )
        self._touch(record, now)

    def mark_sent(
        self,
        record: NotificationRecord,
        channel: Channel,
        message_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> None:
        now = now or utc_now()
        delivery = self._delivery(record, channel)
        delivery.status = DeliveryState.SENT
        delivery.sent_at = delivery.sent_at or now
        delivery.message_id = message_id
        delivery.error = None
        delivery.error_code = None
        delivery.permanent = False
        delivery.claimed_by = None
        delivery.claim_expires_at = None
        self._mark_record_sent(record, now)
        self._touch(record, now)

    def mark_delivered(
        self,
        record: NotificationRecord,
        channel: Channel,
        message_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> None:
        now = now or utc_now()
        delivery = self._delivery(record, channel)
        delivery.status = DeliveryState.DELIVERED
        delivery.sent_at = delivery.sent_at or now
        delivery.delivered_at = now
        if message_id:
            delivery.message_id = message_id
        delivery.claimed_by = None
        delivery.claim_expires_at = None
        self._mark_record_sent(record, now)
        self._touch(record, now)

    def mark_failed(
        self,
        record: NotificationRecord,
        channel: Channel,
        error: str,
        error_code: Optional[str] = None,
        permanent: bool = False,
        counts_toward_retry: bool = True,
        now: Optional[datetime] = None,
    ) -> None:
        """Record a failed attempt.

        A failure that does not count toward the retry budget (no endpoint to
        send to) is terminal until the record is rescheduled.
        """
        now = now or utc_now()
        delivery = self._delivery(record, channel)
        delivery.status = DeliveryState.FAILED
        delivery.error = error
        delivery.error_code = error_code
        delivery.permanent = permanent or not counts_toward_retry
        delivery.claimed_by = None
        delivery.claim_expires_at = None
        if counts_toward_retry:
            self._count_attempt(record, delivery)
        self._touch(record, now)

    def reschedule(
        self,
        record: NotificationRecord,
        new_time: datetime,
        now: Optional[datetime] = None,
    ) -> None:
        """Move the record to a new time and give every channel a fresh start."""
        now = now or utc_now()
        if record.metadata.original_scheduled_time is None:
            record.metadata.original_scheduled_time = record.scheduled_for
        record.scheduled_for = ensure_utc(new_time)
        record.metadata.rescheduled_count += 1
        for channel, _ in list(record.deliveries.items()):
            setattr(record.deliveries, channel.value, ChannelDelivery())
        record.retry_count = 0
        record.is_archived = False
        record.archived_at = None
        self._touch(record, now)

    def archive(self, record: NotificationRecord, now: Optional[datetime] = None) -> None:
        now = now or utc_now()
        if record.is_archived:
            return
        record.is_archived = True
        record.archived_at = now
        self._touch(record, now)

    def expire(self, record: NotificationRecord, now: Optional[datetime] = None) -> bool:
        """Archive the record if it has expired; delivery states are left alone."""
        now = now or utc_now()
        if record.is_archived or not record.is_expired_at(now):
            return False
        self.archive(record, now)
        return True

    def mark_read(self, record: NotificationRecord, now: Optional[datetime] = None) -> bool:
        now = now or utc_now()
        if record.is_read:
            return False
        record.is_read = True
        record.read_at = now
        self._touch(record, now)
        return True
