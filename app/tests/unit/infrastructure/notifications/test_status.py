"""Unit tests for DeliveryStatusTracker transitions."""

from datetime import timedelta

import pytest

from infrastructure.notifications.errors import (
    ChannelNotEnabledError,
    ClaimRejectedError,
)
from infrastructure.notifications.models import Channel, DeliveryState
from infrastructure.notifications.status import (
    LEASE_EXPIRED_CODE,
    DeliveryStatusTracker,
)
from tests.factories.notifications import make_record


@pytest.mark.unit
class TestClaim:
    def test_claim_moves_pending_to_in_flight_with_lease(self, tracker, now):
        record = make_record(now=now)
        tracker.claim(record, Channel.PUSH, "worker-1", 300, DeliveryState.PENDING, now)

        delivery = record.deliveries.push
        assert delivery.status == DeliveryState.IN_FLIGHT
        assert delivery.claimed_by == "worker-1"
        assert delivery.claim_expires_at == now + timedelta(seconds=300)

    def test_claim_rejected_when_status_changed_since_observed(self, tracker, now):
        record = make_record(now=now)
        tracker.claim(record, Channel.PUSH, "worker-1", 300, DeliveryState.PENDING, now)

        with pytest.raises(ClaimRejectedError):
            tracker.claim(record, Channel.PUSH, "worker-2", 300, DeliveryState.PENDING, now)
        assert record.deliveries.push.claimed_by == "worker-1"

    def test_expired_lease_can_be_reclaimed(self, tracker, now):
        record = make_record(now=now)
        tracker.claim(record, Channel.PUSH, "worker-1", 60, DeliveryState.PENDING, now)

        later = now + timedelta(seconds=61)
        assert tracker.claim(
            record, Channel.PUSH, "worker-2", 60, DeliveryState.IN_FLIGHT, later
        )
        assert record.deliveries.push.claimed_by == "worker-2"
        assert record.deliveries.push.attempts == 1
        assert record.retry_count == 1

    def test_expired_lease_on_last_attempt_fails_channel(self, now):
        tracker = DeliveryStatusTracker(max_retries=1)
        record = make_record(now=now)
        tracker.claim(record, Channel.PUSH, "worker-1", 60, DeliveryState.PENDING, now)

        later = now + timedelta(seconds=61)
        claimed = tracker.claim(
            record, Channel.PUSH, "worker-2", 60, DeliveryState.IN_FLIGHT, later
        )

        delivery = record.deliveries.push
        assert claimed is False
        assert delivery.status == DeliveryState.FAILED
        assert delivery.error_code == LEASE_EXPIRED_CODE
        assert delivery.claimed_by is None
        assert not delivery.is_dispatchable(later, tracker.max_retries)

    def test_released_channel_waits_for_backoff(self, tracker, now):
        record = make_record(now=now)
        tracker.claim(record, Channel.SMS, "worker-1", 60, DeliveryState.PENDING, now)
        tracker.release(record, Channel.SMS, now=now, backoff_seconds=300)

        with pytest.raises(ClaimRejectedError):
            tracker.claim(record, Channel.SMS, "worker-1", 60, DeliveryState.PENDING, now)

        later = now + timedelta(seconds=300)
        assert tracker.claim(
            record, Channel.SMS, "worker-1", 60, DeliveryState.PENDING, later
        )
        assert record.deliveries.sms.not_before is None

    def test_retryable_failure_can_be_claimed(self, tracker, now):
        record = make_record(now=now)
        tracker.mark_failed(record, Channel.SMS, "timeout", "TIMEOUT", now=now)
        tracker.claim(record, Channel.SMS, "worker-1", 60, DeliveryState.FAILED, now)
        assert record.deliveries.sms.status == DeliveryState.IN_FLIGHT

    def test_claim_on_unrequested_channel_raises(self, tracker, now):
        record = make_record(now=now, channels=[Channel.PUSH])
        with pytest.raises(ChannelNotEnabledError):
            tracker.claim(record, Channel.EMAIL, "w", 60, DeliveryState.PENDING, now)


@pytest.mark.unit
class TestRelease:
    def test_release_returns_channel_to_pending_without_attempt(self, tracker, now):
        record = make_record(now=now)
        tracker.claim(record, Channel.SMS, "worker-1", 60, DeliveryState.PENDING, now)
        tracker.release(record, Channel.SMS, "not configured", "SERVICE_UNAVAILABLE", now)

        delivery = record.deliveries.sms
        assert delivery.status == DeliveryState.PENDING
        assert delivery.attempts == 0
        assert delivery.claimed_by is None
        assert delivery.error_code == "SERVICE_UNAVAILABLE"
        assert record.retry_count == 0
        assert delivery.not_before is None

    def test_release_ignores_channel_not_in_flight(self, tracker, now):
        record = make_record(now=now)
        tracker.mark_sent(record, Channel.SMS, "ATXid_1", now)
        tracker.release(record, Channel.SMS, now=now)
        assert record.deliveries.sms.status == DeliveryState.SENT


@pytest.mark.unit
class TestMarkSentAndDelivered:
    def test_mark_sent_sets_record_sent_at_once(self, tracker, now):
        record = make_record(now=now)
        tracker.mark_sent(record, Channel.PUSH, "msg-1", now)
        tracker.mark_sent(record, Channel.SMS, "msg-2", now + timedelta(minutes=1))

        assert record.sent_at == now
        assert record.deliveries.push.message_id == "msg-1"
        assert record.deliveries.sms.sent_at == now + timedelta(minutes=1)

    def test_mark_delivered_keeps_sent_at(self, tracker, now):
        record = make_record(now=now)
        tracker.mark_sent(record, Channel.PUSH, "msg-1", now)
        tracker.mark_delivered(record, Channel.PUSH, now=now + timedelta(seconds=5))

        delivery = record.deliveries.push
        assert delivery.status == DeliveryState.DELIVERED
        assert delivery.sent_at == now
        assert delivery.delivered_at == now + timedelta(seconds=5)
        assert delivery.message_id == "msg-1"

    def test_mark_sent_clears_previous_error(self, tracker, now):
        record = make_record(now=now)
        tracker.mark_failed(record, Channel.PUSH, "timeout", "TIMEOUT", now=now)
        tracker.mark_sent(record, Channel.PUSH, "msg-1", now)
        assert record.deliveries.push.error is None
        assert record.deliveries.push.error_code is None

    def test_unrequested_channel_raises_and_leaves_record_alone(self, tracker, now):
        record = make_record(now=now, channels=[Channel.PUSH])
        with pytest.raises(ChannelNotEnabledError):
            tracker.mark_sent(record, Channel.SMS, "msg", now)
        assert record.deliveries.sms is None
        assert record.sent_at is None


@pytest.mark.unit
class TestMarkFailed:
    def test_transient_failure_increments_attempts(self, tracker, now):
        record = make_record(now=now)
        tracker.mark_failed(record, Channel.PUSH, "timeout", "TIMEOUT", now=now)

        delivery = record.deliveries.push
        assert delivery.status == DeliveryState.FAILED
        assert delivery.attempts == 1
        assert not delivery.permanent
        assert record.retry_count == 1

    def test_attempts_and_retry_count_are_capped_at_three(self, tracker, now):
        record = make_record(now=now)
        for _ in range(5):
            tracker.mark_failed(record, Channel.PUSH, "timeout", "TIMEOUT", now=now)

        assert record.deliveries.push.attempts == 3
        assert record.retry_count == 3
        assert not record.deliveries.push.is_retryable()

    def test_retry_count_is_highest_channel_attempts(self, tracker, now):
        record = make_record(now=now)
        tracker.mark_failed(record, Channel.PUSH, "e", now=now)
        tracker.mark_failed(record, Channel.PUSH, "e", now=now)
        tracker.mark_failed(record, Channel.SMS, "e", now=now)
        assert record.retry_count == 2

    def test_failure_without_endpoint_is_terminal_and_free(self, tracker, now):
        record = make_record(now=now)
        tracker.mark_failed(
            record,
            Channel.SMS,
            "no endpoint",
            "NO_ENDPOINT",
            counts_toward_retry=False,
            now=now,
        )
        delivery = record.deliveries.sms
        assert delivery.status == DeliveryState.FAILED
        assert delivery.attempts == 0
        assert record.retry_count == 0
        assert not delivery.is_dispatchable(now)

    def test_permanent_failure(self, tracker, now):
        record = make_record(now=now)
        tracker.mark_failed(record, Channel.SMS, "blacklisted", "406", permanent=True, now=now)
        assert record.deliveries.sms.permanent
        assert not record.deliveries.sms.is_retryable()

    def test_lower_retry_budget(self, now):
        tracker = DeliveryStatusTracker(max_retries=1)
        record = make_record(now=now)
        tracker.mark_failed(record, Channel.PUSH, "e", now=now)
        assert not record.deliveries.push.is_retryable(tracker.max_retries)


@pytest.mark.unit
class TestRescheduleArchiveExpire:
    def test_reschedule_resets_channels_and_unarchives(self, tracker, now):
        record = make_record(now=now)
        tracker.mark_sent(record, Channel.PUSH, "msg", now)
        tracker.mark_failed(record, Channel.SMS, "e", now=now)
        tracker.archive(record, now)

        new_time = now + timedelta(days=1)
        tracker.reschedule(record, new_time, now)

        assert record.scheduled_for == new_time
        assert record.metadata.original_scheduled_time == now
        assert record.metadata.rescheduled_count == 1
        assert record.retry_count == 0
        assert not record.is_archived
        assert record.archived_at is None
        for _, delivery in record.deliveries.items():
            assert delivery.status == DeliveryState.PENDING
            assert delivery.attempts == 0
            assert delivery.sent_at is None

    def test_second_reschedule_keeps_original_time(self, tracker, now):
        record = make_record(now=now)
        tracker.reschedule(record, now + timedelta(hours=1), now)
        tracker.reschedule(record, now + timedelta(hours=2), now)
        assert record.metadata.original_scheduled_time == now
        assert record.metadata.rescheduled_count == 2

    def test_reschedule_does_not_add_channels(self, tracker, now):
        record = make_record(now=now, channels=[Channel.SMS])
        tracker.reschedule(record, now + timedelta(hours=1), now)
        assert record.deliveries.push is None

    def test_archive_is_idempotent(self, tracker, now):
        record = make_record(now=now)
        tracker.archive(record, now)
        tracker.archive(record, now + timedelta(hours=1))
        assert record.archived_at == now

    def test_expire_archives_expired_record_only(self, tracker, now):
        record = make_record(now=now, expires_at=now + timedelta(minutes=1))
        assert not tracker.expire(record, now)
        assert tracker.expire(record, now + timedelta(minutes=2))
        assert record.is_archived
        assert record.deliveries.push.status == DeliveryState.PENDING

    def test_mark_read_once(self, tracker, now):
        record = make_record(now=now)
        assert tracker.mark_read(record, now)
        assert not tracker.mark_read(record, now + timedelta(minutes=1))
        assert record.read_at == now
