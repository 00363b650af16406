"""Unit tests for the Dispatcher.

Tests cover:
- Claiming and delivering due channels
- Outcome aggregation (multicast, partial, unavailable, permanent)
- Retry budget and lease recovery
- Missing endpoints and token hygiene
- Isolation of per-channel failures within a cycle
- Errors while delivering a claim count toward the retry budget
- Unready channels do not crowd out other due records
"""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from infrastructure.notifications.channels.email import EmailGateway
from infrastructure.notifications.errors import ConcurrentModificationError
from infrastructure.notifications.models import (
    Channel,
    DeliveryState,
    OverallStatus,
)
from infrastructure.notifications.status import LEASE_EXPIRED_CODE
from infrastructure.operations import OperationResult
from infrastructure.resilience.circuit_breaker import CircuitBreaker
from tests.factories.notifications import make_outcome, make_record


def _failing(channel, **kwargs):
    return lambda endpoint: make_outcome(channel, endpoint, success=False, **kwargs)


@pytest.mark.unit
class TestRunDueDispatch:
    def test_delivers_every_requested_channel(self, dispatcher, store, now):
        record = make_record(now=now, channels=[Channel.PUSH, Channel.SMS, Channel.EMAIL])
        store.save(record)

        stats = dispatcher.run_due_dispatch(now)

        assert stats["records"] == 1
        assert stats["claimed"] == 3
        assert stats["sent"] == 3
        saved = store.get(record.id)
        assert saved.overall_status == OverallStatus.SENT
        assert saved.sent_at is not None
        assert saved.deliveries.push.message_id == "msg-token-a"

    def test_in_app_only_record_is_not_dispatched(self, dispatcher, store, gateways, now):
        store.save(make_record(now=now, channels=[Channel.IN_APP]))
        stats = dispatcher.run_due_dispatch(now)
        assert stats["claimed"] == 0
        assert all(not g.calls for g in gateways.values())

    def test_future_record_waits(self, dispatcher, store, now):
        record = make_record(now=now, scheduled_for=now + timedelta(minutes=10))
        store.save(record)
        assert dispatcher.run_due_dispatch(now)["claimed"] == 0
        assert dispatcher.run_due_dispatch(now + timedelta(minutes=10))["sent"] == 2

    def test_sent_channels_are_not_sent_twice(self, dispatcher, store, gateways, now):
        store.save(make_record(now=now))
        dispatcher.run_due_dispatch(now)
        stats = dispatcher.run_due_dispatch(now + timedelta(minutes=1))
        assert stats["claimed"] == 0
        assert len(gateways[Channel.PUSH].calls) == 1

    def test_expired_record_is_archived_not_sent(self, dispatcher, store, gateways, now):
        record = make_record(now=now - timedelta(hours=1), expires_at=now - timedelta(minutes=1))
        store.save(record)

        stats = dispatcher.run_due_dispatch(now)

        assert stats["expired"] == 1
        assert stats["claimed"] == 0
        assert store.get(record.id).is_archived
        assert not gateways[Channel.PUSH].calls

    def test_batch_size_bounds_records_per_cycle(self, dispatcher, store, now):
        dispatcher.batch_size = 2
        for _ in range(5):
            store.save(make_record(now=now, channels=[Channel.SMS]))
        assert dispatcher.run_due_dispatch(now)["records"] == 2


@pytest.mark.unit
class TestOutcomeAggregation:
    def test_push_succeeds_when_any_token_succeeds(
        self, dispatcher, store, gateway_factory, now
    ):
        def respond(token):
            if token == "token-a":
                return make_outcome(
                    Channel.PUSH, token, success=False, permanent=True, invalid_endpoint=True,
                    error_code="UNREGISTERED",
                )
            return make_outcome(Channel.PUSH, token)

        dispatcher.gateways[Channel.PUSH] = gateway_factory(Channel.PUSH, respond)
        record = make_record(now=now, channels=[Channel.PUSH])
        store.save(record)

        stats = dispatcher.run_due_dispatch(now)

        assert stats["sent"] == 1
        assert stats["invalid_endpoints"] == 1
        assert store.get(record.id).deliveries.push.message_id == "msg-token-b"

    def test_transient_failure_is_retried_next_cycle(
        self, dispatcher, store, gateway_factory, now
    ):
        dispatcher.gateways[Channel.SMS] = gateway_factory(Channel.SMS, _failing(Channel.SMS))
        record = make_record(now=now, channels=[Channel.SMS])
        store.save(record)

        stats = dispatcher.run_due_dispatch(now)

        assert stats["retried"] == 1
        saved = store.get(record.id)
        assert saved.deliveries.sms.status == DeliveryState.FAILED
        assert saved.deliveries.sms.attempts == 1
        assert saved.retry_count == 1

        dispatcher.gateways[Channel.SMS] = gateway_factory(Channel.SMS)
        assert dispatcher.run_due_dispatch(now + timedelta(minutes=1))["sent"] == 1
        assert store.get(record.id).deliveries.sms.status == DeliveryState.SENT

    def test_retries_stop_at_three_attempts(self, dispatcher, store, gateway_factory, now):
        gateway = gateway_factory(Channel.SMS, _failing(Channel.SMS))
        dispatcher.gateways[Channel.SMS] = gateway
        record = make_record(now=now, channels=[Channel.SMS])
        store.save(record)

        results = [
            dispatcher.run_due_dispatch(now + timedelta(minutes=i)) for i in range(5)
        ]

        assert [r["retried"] for r in results] == [1, 1, 0, 0, 0]
        assert [r["failed"] for r in results] == [0, 0, 1, 0, 0]
        assert len(gateway.calls) == 3
        saved = store.get(record.id)
        assert saved.retry_count == 3
        assert saved.overall_status == OverallStatus.FAILED

    def test_permanent_failure_is_terminal(self, dispatcher, store, gateway_factory, now):
        dispatcher.gateways[Channel.SMS] = gateway_factory(
            Channel.SMS, _failing(Channel.SMS, permanent=True, error_code="406")
        )
        record = make_record(now=now, channels=[Channel.SMS])
        store.save(record)

        assert dispatcher.run_due_dispatch(now)["failed"] == 1
        assert dispatcher.run_due_dispatch(now + timedelta(minutes=1))["claimed"] == 0
        assert store.get(record.id).deliveries.sms.permanent

    def test_unavailable_gateway_does_not_consume_retries(
        self, dispatcher, store, gateway_factory, now
    ):
        dispatcher.gateways[Channel.EMAIL] = gateway_factory(
            Channel.EMAIL,
            _failing(Channel.EMAIL, unavailable=True, error_code="SERVICE_UNAVAILABLE"),
        )
        record = make_record(now=now, channels=[Channel.EMAIL])
        store.save(record)

        for i in range(5):
            stats = dispatcher.run_due_dispatch(now + timedelta(seconds=301 * i))
            assert stats["unavailable"] == 1

        saved = store.get(record.id)
        assert saved.deliveries.email.status == DeliveryState.PENDING
        assert saved.deliveries.email.attempts == 0
        assert saved.retry_count == 0

    def test_partial_overall_status(self, dispatcher, store, gateway_factory, now):
        dispatcher.gateways[Channel.SMS] = gateway_factory(
            Channel.SMS, _failing(Channel.SMS, permanent=True)
        )
        record = make_record(now=now)
        store.save(record)

        dispatcher.run_due_dispatch(now)

        assert store.get(record.id).overall_status == OverallStatus.PARTIAL


@pytest.mark.unit
class TestEndpoints:
    def test_member_without_phone_fails_sms_without_retry(self, dispatcher, store, now):
        record = make_record(recipient="member-3", now=now, channels=[Channel.SMS])
        store.save(record)

        stats = dispatcher.run_due_dispatch(now)

        assert stats["failed"] == 1
        delivery = store.get(record.id).deliveries.sms
        assert delivery.error == "no endpoint"
        assert delivery.attempts == 0
        assert dispatcher.run_due_dispatch(now + timedelta(minutes=1))["claimed"] == 0

    def test_inactive_member_has_no_endpoints(self, dispatcher, store, gateways, now):
        store.save(make_record(recipient="member-4", now=now, channels=[Channel.PUSH]))
        dispatcher.run_due_dispatch(now)
        assert not gateways[Channel.PUSH].calls

    def test_unregistered_tokens_are_pruned(
        self, dispatcher, store, directory, gateway_factory, now
    ):
        dispatcher.gateways[Channel.PUSH] = gateway_factory(
            Channel.PUSH,
            _failing(Channel.PUSH, permanent=True, invalid_endpoint=True, error_code="UNREGISTERED"),
        )
        record = make_record(now=now, channels=[Channel.PUSH])
        store.save(record)

        stats = dispatcher.run_due_dispatch(now)

        assert stats["invalid_endpoints"] == 2
        assert stats["failed"] == 1
        assert directory.get("member-1").device_tokens == []


@pytest.mark.unit
class TestClaims:
    def test_live_claim_by_another_worker_is_respected(
        self, dispatcher, store, tracker, gateways, now
    ):
        record = make_record(now=now, channels=[Channel.SMS])
        store.save(record)
        store.update(
            record.id,
            lambda r: tracker.claim(r, Channel.SMS, "other", 300, DeliveryState.PENDING, now),
        )

        assert dispatcher.run_due_dispatch(now)["claimed"] == 0
        assert not gateways[Channel.SMS].calls

    def test_abandoned_claim_is_recovered_after_lease(
        self, dispatcher, store, tracker, now
    ):
        record = make_record(now=now, channels=[Channel.SMS])
        store.save(record)
        store.update(
            record.id,
            lambda r: tracker.claim(r, Channel.SMS, "crashed", 60, DeliveryState.PENDING, now),
        )

        stats = dispatcher.run_due_dispatch(now + timedelta(seconds=61))

        assert stats["sent"] == 1
        delivery = store.get(record.id).deliveries.sms
        assert delivery.claimed_by is None
        assert delivery.attempts == 1

    def test_claim_lost_between_fetch_and_claim_is_skipped(
        self, dispatcher, store, tracker, now
    ):
        record = make_record(now=now, channels=[Channel.SMS])
        store.save(record)
        original_fetch = store.fetch_due

        def fetch_then_race(*args, **kwargs):
            records = original_fetch(*args, **kwargs)
            store.update(
                record.id,
                lambda r: tracker.claim(r, Channel.SMS, "other", 300, DeliveryState.PENDING, now),
            )
            return records

        store.fetch_due = fetch_then_race

        stats = dispatcher.run_due_dispatch(now)

        assert stats["claimed"] == 0
        assert stats["skipped"] == 1

    def test_channel_without_gateway_stays_pending(self, dispatcher, store, now):
        del dispatcher.gateways[Channel.EMAIL]
        record = make_record(now=now, channels=[Channel.EMAIL])
        store.save(record)

        stats = dispatcher.run_due_dispatch(now)

        assert stats["records"] == 0
        assert stats["claimed"] == 0
        assert store.get(record.id).deliveries.email.status == DeliveryState.PENDING


@pytest.mark.unit
class TestIsolation:
    def test_gateway_exception_does_not_abort_cycle(self, dispatcher, store, now):
        broken = MagicMock()
        broken.targets.return_value = ["x"]
        broken.deliver.side_effect = RuntimeError("boom")
        dispatcher.gateways[Channel.EMAIL] = broken
        store.save(make_record(now=now, channels=[Channel.EMAIL]))
        healthy = make_record(recipient="member-2", now=now, channels=[Channel.SMS])
        store.save(healthy)

        stats = dispatcher.run_due_dispatch(now)

        assert stats["sent"] == 1
        assert stats["retried"] == 1
        assert stats["skipped"] == 0
        assert store.get(healthy.id).deliveries.sms.status == DeliveryState.SENT

    def test_hygiene_failure_does_not_change_outcome(
        self, dispatcher, store, gateway_factory, now
    ):
        dispatcher.hygiene = MagicMock()
        dispatcher.hygiene.process.side_effect = RuntimeError("directory down")
        dispatcher.gateways[Channel.PUSH] = gateway_factory(
            Channel.PUSH, _failing(Channel.PUSH, permanent=True, invalid_endpoint=True)
        )
        record = make_record(now=now, channels=[Channel.PUSH])
        store.save(record)

        stats = dispatcher.run_due_dispatch(now)

        assert stats["failed"] == 1
        assert store.get(record.id).deliveries.push.status == DeliveryState.FAILED


@pytest.mark.unit
class TestDeliveryErrors:
    def test_raising_gateway_stops_after_three_attempts(self, dispatcher, store, now):
        broken = MagicMock()
        broken.targets.return_value = ["otieno@example.com"]
        broken.deliver.side_effect = RuntimeError("boom")
        dispatcher.gateways[Channel.EMAIL] = broken
        record = make_record(recipient="member-2", now=now, channels=[Channel.EMAIL])
        store.save(record)

        for i in range(6):
            dispatcher.run_due_dispatch(now + timedelta(seconds=301 * i))

        assert broken.deliver.call_count == 3
        delivery = store.get(record.id).deliveries.email
        assert delivery.status == DeliveryState.FAILED
        assert delivery.attempts == 3
        assert delivery.error_code == "GATEWAY_ERROR"
        assert delivery.claimed_by is None

    def test_failed_write_after_send_is_charged_as_attempt(
        self, dispatcher, store, tracker, gateways, now
    ):
        record = make_record(now=now, channels=[Channel.SMS])
        store.save(record)
        tracker.mark_sent = MagicMock(side_effect=ConcurrentModificationError(record.id))

        stats = dispatcher.run_due_dispatch(now)

        assert len(gateways[Channel.SMS].calls) == 1
        assert stats["retried"] == 1
        delivery = store.get(record.id).deliveries.sms
        assert delivery.status == DeliveryState.FAILED
        assert delivery.error_code == "GATEWAY_ERROR"
        assert delivery.attempts == 1

    def test_directory_error_is_charged_without_calling_gateway(
        self, dispatcher, store, gateways, now
    ):
        dispatcher.directory = MagicMock()
        dispatcher.directory.resolve_endpoints.side_effect = RuntimeError("directory down")
        record = make_record(now=now, channels=[Channel.SMS])
        store.save(record)

        stats = dispatcher.run_due_dispatch(now)

        assert stats["retried"] == 1
        assert not gateways[Channel.SMS].calls
        delivery = store.get(record.id).deliveries.sms
        assert delivery.error_code == "DIRECTORY_ERROR"
        assert delivery.attempts == 1

    def test_unrecorded_error_is_counted_when_lease_expires(
        self, dispatcher, store, tracker, gateways, now
    ):
        record = make_record(now=now, channels=[Channel.SMS])
        store.save(record)
        tracker.mark_sent = MagicMock(side_effect=ConcurrentModificationError(record.id))
        tracker.mark_failed = MagicMock(side_effect=ConcurrentModificationError(record.id))

        stats = dispatcher.run_due_dispatch(now)

        assert stats["skipped"] == 1
        assert store.get(record.id).deliveries.sms.status == DeliveryState.IN_FLIGHT

        del tracker.mark_sent
        del tracker.mark_failed
        stats = dispatcher.run_due_dispatch(now + timedelta(seconds=301))

        assert stats["sent"] == 1
        assert len(gateways[Channel.SMS].calls) == 2
        assert store.get(record.id).deliveries.sms.attempts == 1

    def test_expired_lease_without_attempts_left_is_retired(
        self, dispatcher, store, tracker, gateways, now
    ):
        record = make_record(now=now, channels=[Channel.SMS])
        store.save(record)

        def abandon(r):
            r.deliveries.sms.attempts = 2
            tracker.claim(r, Channel.SMS, "crashed", 60, DeliveryState.PENDING, now)

        store.update(record.id, abandon)

        stats = dispatcher.run_due_dispatch(now + timedelta(seconds=61))

        assert stats["claimed"] == 0
        assert stats["failed"] == 1
        assert not gateways[Channel.SMS].calls
        delivery = store.get(record.id).deliveries.sms
        assert delivery.status == DeliveryState.FAILED
        assert delivery.error_code == LEASE_EXPIRED_CODE
        assert delivery.attempts == 3


@pytest.mark.unit
class TestUnreadyChannels:
    def _older_sms_records(self, store, now, count=3):
        records = [
            make_record(now=now - timedelta(minutes=10 + i), channels=[Channel.SMS])
            for i in range(count)
        ]
        store.save_many(records)
        return records

    def test_unconfigured_channel_does_not_fill_the_batch(
        self, dispatcher, store, gateway_factory, now
    ):
        dispatcher.batch_size = 3
        sms = gateway_factory(Channel.SMS, configured=False)
        dispatcher.gateways[Channel.SMS] = sms
        older = self._older_sms_records(store, now)
        newer = make_record(now=now, channels=[Channel.PUSH])
        store.save(newer)

        stats = dispatcher.run_due_dispatch(now)

        assert stats["sent"] == 1
        assert store.get(newer.id).deliveries.push.status == DeliveryState.SENT
        assert not sms.calls
        for record in older:
            assert store.get(record.id).deliveries.sms.status == DeliveryState.PENDING

    def test_released_channel_waits_out_backoff(
        self, dispatcher, store, gateway_factory, now
    ):
        dispatcher.batch_size = 3
        dispatcher.gateways[Channel.SMS] = gateway_factory(
            Channel.SMS,
            _failing(Channel.SMS, unavailable=True, error_code="SERVICE_UNAVAILABLE"),
        )
        older = self._older_sms_records(store, now)
        newer = make_record(now=now, channels=[Channel.PUSH])
        store.save(newer)

        first = dispatcher.run_due_dispatch(now)
        second = dispatcher.run_due_dispatch(now + timedelta(minutes=1))
        after_backoff = dispatcher.run_due_dispatch(now + timedelta(seconds=301))

        assert first["unavailable"] == 3
        assert second["sent"] == 1
        assert second["unavailable"] == 0
        assert store.get(newer.id).deliveries.push.status == DeliveryState.SENT
        assert after_backoff["unavailable"] == 3
        for record in older:
            assert store.get(record.id).deliveries.sms.attempts == 0

    def test_open_circuit_does_not_spend_retries(self, dispatcher, store, now):
        notify_client = MagicMock()
        notify_client.is_configured = True
        notify_client.send_email.return_value = OperationResult.transient_error(
            "GC Notify server error (503)", error_code="SERVER_ERROR"
        )
        breaker = CircuitBreaker("email_test", failure_threshold=1, timeout_seconds=600)
        dispatcher.gateways[Channel.EMAIL] = EmailGateway(
            notify_client, circuit_breaker=breaker
        )
        dispatcher.max_workers = 1
        records = [
            make_record(recipient=recipient, now=now, channels=[Channel.EMAIL])
            for recipient in ("member-1", "member-2", "member-1")
        ]
        store.save_many(records)

        first = dispatcher.run_due_dispatch(now)
        later = [
            dispatcher.run_due_dispatch(now + timedelta(minutes=i)) for i in range(1, 4)
        ]

        assert notify_client.send_email.call_count == 1
        assert first["retried"] == 1
        assert first["unavailable"] == 2
        assert all(stats["claimed"] == 0 for stats in later)
        attempts = sorted(store.get(r.id).deliveries.email.attempts for r in records)
        assert attempts == [0, 0, 1]
        assert all(
            store.get(r.id).deliveries.email.error_code in ("SERVER_ERROR", "CIRCUIT_OPEN")
            for r in records
        )
