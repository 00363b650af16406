"""Unit tests for notification domain models.

Tests cover:
- Content validation (trimming, length limits, tags, channels)
- Per-channel sub-state shape
- Derived properties (overall status, urgency, expiry, dispatchability)
"""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from infrastructure.notifications.models import (
    Channel,
    ChannelDelivery,
    DeliveryState,
    NotificationContent,
    NotificationPriority,
    NotificationRecord,
    OverallStatus,
)
from tests.factories.notifications import make_content, make_record


@pytest.mark.unit
class TestNotificationContentValidation:
    """Tests for NotificationContent validation rules."""

    def test_title_and_message_are_trimmed(self):
        content = make_content(title="  Meeting  ", message="\tStarts at 10\n")
        assert content.title == "Meeting"
        assert content.message == "Starts at 10"

    def test_blank_title_is_rejected(self):
        with pytest.raises(ValidationError):
            make_content(title="   ")

    def test_title_longer_than_100_characters_is_rejected(self):
        with pytest.raises(ValidationError):
            make_content(title="x" * 101)

    def test_message_longer_than_500_characters_is_rejected(self):
        with pytest.raises(ValidationError):
            make_content(message="x" * 501)

    def test_message_of_500_characters_is_accepted(self):
        assert len(make_content(message="x" * 500).message) == 500

    def test_action_text_limit(self):
        with pytest.raises(ValidationError):
            make_content(action_text="x" * 51)

    def test_tag_longer_than_30_characters_is_rejected(self):
        with pytest.raises(ValidationError):
            make_content(tags=["x" * 31])

    def test_empty_tags_are_dropped(self):
        assert make_content(tags=["finance", " ", ""]).tags == ["finance"]

    def test_defaults(self):
        content = NotificationContent(title="Hello", message="World")
        assert content.type.value == "info"
        assert content.priority == NotificationPriority.NORMAL
        assert content.channels == [Channel.IN_APP]

    def test_duplicate_channels_are_removed(self):
        content = make_content(channels=[Channel.SMS, Channel.SMS, Channel.PUSH])
        assert content.channels == [Channel.SMS, Channel.PUSH]

    def test_unknown_channel_is_rejected(self):
        with pytest.raises(ValidationError):
            make_content(channels=["fax"])

    def test_naive_times_are_treated_as_utc(self):
        content = make_content(scheduled_for=datetime(2025, 1, 1, 8, 0))
        assert content.scheduled_for.tzinfo == timezone.utc


@pytest.mark.unit
class TestNotificationRecordDeliveries:
    """Tests for the fixed-shape per-channel sub-state."""

    def test_only_requested_external_channels_get_sub_state(self):
        record = make_record(channels=[Channel.PUSH, Channel.IN_APP])
        assert record.deliveries.push is not None
        assert record.deliveries.sms is None
        assert record.deliveries.email is None

    def test_in_app_has_no_sub_state(self):
        record = make_record(channels=[Channel.IN_APP])
        assert list(record.deliveries.items()) == []
        assert record.deliveries.get(Channel.IN_APP) is None

    def test_sub_state_for_unrequested_channel_is_dropped(self):
        record = NotificationRecord(
            title="t",
            message="m",
            recipient="member-1",
            channels=[Channel.SMS],
            deliveries={"push": {"status": "sent"}, "sms": {}},
        )
        assert record.deliveries.push is None
        assert record.deliveries.sms.status == DeliveryState.PENDING

    def test_new_channels_start_pending(self):
        record = make_record(channels=[Channel.PUSH, Channel.SMS, Channel.EMAIL])
        assert all(
            d.status == DeliveryState.PENDING for _, d in record.deliveries.items()
        )

    def test_from_spec_defaults_scheduled_for_to_now(self, now):
        record = NotificationRecord.from_spec(make_content(), "member-9", now=now)
        assert record.recipient == "member-9"
        assert record.scheduled_for == now
        assert record.created_at == now

    def test_from_spec_keeps_explicit_schedule(self, now):
        later = now + timedelta(hours=2)
        record = NotificationRecord.from_spec(
            make_content(scheduled_for=later), "member-9", now=now
        )
        assert record.scheduled_for == later


@pytest.mark.unit
class TestOverallStatus:
    """Tests for overall_status aggregation over requested channels."""

    def _record(self, **states):
        record = make_record(channels=[Channel(c) for c in states])
        for channel, state in states.items():
            getattr(record.deliveries, channel).status = state
        return record

    def test_in_app_only_is_delivered(self):
        assert make_record(channels=[Channel.IN_APP]).overall_status == OverallStatus.DELIVERED

    def test_all_delivered(self):
        record = self._record(push=DeliveryState.DELIVERED, sms=DeliveryState.DELIVERED)
        assert record.overall_status == OverallStatus.DELIVERED

    def test_failed_and_sent_is_partial(self):
        record = self._record(push=DeliveryState.SENT, sms=DeliveryState.FAILED)
        assert record.overall_status == OverallStatus.PARTIAL

    def test_all_failed_is_failed(self):
        record = self._record(push=DeliveryState.FAILED, sms=DeliveryState.FAILED)
        assert record.overall_status == OverallStatus.FAILED

    def test_sent_without_failures_is_sent(self):
        record = self._record(push=DeliveryState.SENT, sms=DeliveryState.DELIVERED)
        assert record.overall_status == OverallStatus.SENT

    def test_sent_and_pending_is_sent(self):
        record = self._record(push=DeliveryState.SENT, sms=DeliveryState.PENDING)
        assert record.overall_status == OverallStatus.SENT

    def test_failed_and_pending_is_pending(self):
        record = self._record(push=DeliveryState.FAILED, sms=DeliveryState.PENDING)
        assert record.overall_status == OverallStatus.PENDING

    def test_nothing_sent_yet_is_pending(self):
        record = self._record(push=DeliveryState.PENDING, email=DeliveryState.IN_FLIGHT)
        assert record.overall_status == OverallStatus.PENDING


@pytest.mark.unit
class TestDerivedProperties:
    @pytest.mark.parametrize(
        "priority,expected",
        [
            (NotificationPriority.LOW, False),
            (NotificationPriority.NORMAL, False),
            (NotificationPriority.HIGH, True),
            (NotificationPriority.URGENT, True),
        ],
    )
    def test_is_urgent(self, priority, expected):
        assert make_record(priority=priority).is_urgent is expected

    def test_priority_rank_orders_urgent_first(self):
        ranks = sorted(NotificationPriority, key=lambda p: p.rank)
        assert ranks == [
            NotificationPriority.URGENT,
            NotificationPriority.HIGH,
            NotificationPriority.NORMAL,
            NotificationPriority.LOW,
        ]

    def test_is_expired_at(self, now):
        record = make_record(now=now, expires_at=now + timedelta(minutes=5))
        assert not record.is_expired_at(now)
        assert record.is_expired_at(now + timedelta(minutes=6))

    def test_record_without_expiry_never_expires(self, now):
        assert not make_record(now=now).is_expired_at(now + timedelta(days=365))

    def test_is_due_requires_scheduled_time_to_pass(self, now):
        record = make_record(now=now, scheduled_for=now + timedelta(minutes=1))
        assert not record.is_due(now)
        assert record.is_due(now + timedelta(minutes=1))

    def test_archived_record_is_not_due(self, now):
        record = make_record(now=now, is_archived=True)
        assert not record.is_due(now)

    def test_in_app_only_record_is_never_due(self, now):
        assert not make_record(now=now, channels=[Channel.IN_APP]).is_due(now)


@pytest.mark.unit
class TestChannelDeliveryDispatchability:
    def test_pending_is_dispatchable(self, now):
        assert ChannelDelivery().is_dispatchable(now)

    def test_in_flight_with_live_lease_is_not_dispatchable(self, now):
        delivery = ChannelDelivery(
            status=DeliveryState.IN_FLIGHT, claim_expires_at=now + timedelta(seconds=30)
        )
        assert not delivery.is_dispatchable(now)

    def test_in_flight_with_expired_lease_is_dispatchable(self, now):
        delivery = ChannelDelivery(
            status=DeliveryState.IN_FLIGHT, claim_expires_at=now - timedelta(seconds=1)
        )
        assert delivery.is_dispatchable(now)

    def test_transient_failure_with_attempts_left_is_retryable(self, now):
        delivery = ChannelDelivery(status=DeliveryState.FAILED, attempts=2)
        assert delivery.is_retryable()
        assert delivery.is_dispatchable(now)

    def test_failure_at_cap_is_terminal(self, now):
        delivery = ChannelDelivery(status=DeliveryState.FAILED, attempts=3)
        assert not delivery.is_dispatchable(now)

    def test_permanent_failure_is_terminal(self, now):
        delivery = ChannelDelivery(status=DeliveryState.FAILED, attempts=1, permanent=True)
        assert not delivery.is_dispatchable(now)

    @pytest.mark.parametrize("state", [DeliveryState.SENT, DeliveryState.DELIVERED])
    def test_successful_states_are_not_dispatchable(self, now, state):
        assert not ChannelDelivery(status=state).is_dispatchable(now)

    def test_pending_waits_for_not_before(self, now):
        delivery = ChannelDelivery(not_before=now + timedelta(minutes=5))
        assert not delivery.is_dispatchable(now)
        assert delivery.is_dispatchable(now + timedelta(minutes=5))

    def test_dispatchable_channels_can_be_restricted(self, now):
        record = make_record(now=now, channels=[Channel.PUSH, Channel.SMS])

        assert record.dispatchable_channels(now, channels={Channel.SMS}) == [
            (Channel.SMS, DeliveryState.PENDING)
        ]
        assert record.dispatchable_channels(now, channels=set()) == []
