"""Notification dispatcher.

Each cycle claims due (record, channel) pairs, hands them to the matching
gateway on a bounded worker pool and applies the outcomes through the store.

Claim protocol:
    1. only channels whose gateway is ready (configured, circuit not open)
       are considered, both when fetching and when claiming
    2. fetch_due returns unarchived records whose scheduled time has passed
    3. each dispatchable channel is claimed inside store.update, conditional
       on the status observed when the record was fetched; a lost race raises
       ClaimRejectedError and the channel is skipped
    4. the claimed channel is in_flight under a lease; if this worker dies the
       lease expires and a later cycle picks the channel up again, counting
       the abandoned attempt
    5. an error while delivering a claim is recorded as a failed attempt, so
       a channel that keeps breaking still stops after max_retries
"""

import os
import socket
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from typing import TYPE_CHECKING, Dict, List, Optional, Set, Tuple

from infrastructure.logging import get_module_logger
from infrastructure.notifications.channels.base import ChannelGateway
from infrastructure.notifications.errors import ClaimRejectedError, NotificationError
from infrastructure.notifications.hygiene import TokenHygiene
from infrastructure.notifications.models import (
    Channel,
    DeliveryOutcome,
    DeliveryState,
    NotificationRecord,
    utc_now,
)
from infrastructure.notifications.status import DeliveryStatusTracker
from infrastructure.notifications.store import NotificationStore

if TYPE_CHECKING:
    from infrastructure.directory.base import MemberDirectory

logger = get_module_logger()

SENT = "sent"
FAILED = "failed"
RETRIED = "retried"
UNAVAILABLE = "unavailable"
SKIPPED = "skipped"

NO_ENDPOINT_CODE = "NO_ENDPOINT"
DIRECTORY_ERROR_CODE = "DIRECTORY_ERROR"
GATEWAY_ERROR_CODE = "GATEWAY_ERROR"
STORE_ERROR_CODE = "STORE_ERROR"


def default_worker_id() -> str:
    """Identify this process in claim leases."""
    return f"{socket.gethostname()}-{os.getpid()}-{uuid.uuid4().hex[:8]}"


def empty_stats() -> Dict[str, int]:
    return {
        "records": 0,
        "expired": 0,
        "claimed": 0,
        SKIPPED: 0,
        SENT: 0,
        FAILED: 0,
        RETRIED: 0,
        UNAVAILABLE: 0,
        "invalid_endpoints": 0,
    }


class Dispatcher:
    """Periodic delivery of due notifications.

    Args:
        store: NotificationStore holding the records
        directory: MemberDirectory used to resolve endpoints
        gateways: Gateway per external channel; a missing or unready gateway
            leaves the channel pending
        tracker: DeliveryStatusTracker applying transitions
        hygiene: TokenHygiene receiving invalid endpoints
        batch_size: Records fetched per cycle
        max_workers: Concurrent gateway calls
        lease_seconds: Claim lease length
        worker_id: Claim owner id, defaults to host, pid and a random suffix
        release_backoff_seconds: Wait before a channel released as unavailable
            is due again

    Example:
        dispatcher = Dispatcher(store, directory, {Channel.PUSH: push_gateway})
        stats = dispatcher.run_due_dispatch()
    """

    def __init__(
        self,
        store: NotificationStore,
        directory: "MemberDirectory",
        gateways: Dict[Channel, ChannelGateway],
        tracker: Optional[DeliveryStatusTracker] = None,
        hygiene: Optional[TokenHygiene] = None,
        batch_size: int = 50,
        max_workers: int = 8,
        lease_seconds: int = 300,
        worker_id: Optional[str] = None,
        release_backoff_seconds: int = 300,
    ):
        self.store = store
        self.directory = directory
        self.gateways = gateways
        self.tracker = tracker or DeliveryStatusTracker()
        self.hygiene = hygiene or TokenHygiene(directory)
        self.batch_size = batch_size
        self.max_workers = max_workers
        self.lease_seconds = lease_seconds
        self.worker_id = worker_id or default_worker_id()
        self.release_backoff_seconds = release_backoff_seconds

        logger.info(
            "initialized_notification_dispatcher",
            channels=[channel.value for channel in gateways],
            batch_size=batch_size,
            max_workers=max_workers,
            worker_id=self.worker_id,
        )

    @property
    def max_retries(self) -> int:
        return self.tracker.max_retries

    def ready_channels(self) -> Set[Channel]:
        """Channels whose gateway can be called right now."""
        return {
            channel for channel, gateway in self.gateways.items() if gateway.is_ready()
        }

    def run_due_dispatch(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Run one dispatch cycle.

        A failure on one record or channel is logged and counted; the cycle
        always runs to the end.

        Returns:
            Cycle stats: records, expired, claimed, skipped, sent, failed,
            retried, unavailable, invalid_endpoints
        """
        now = now or utc_now()
        stats = empty_stats()

        ready = self.ready_channels()
        records = self.store.fetch_due(
            now, self.batch_size, self.max_retries, channels=ready
        )
        stats["records"] = len(records)

        claims: List[Tuple[NotificationRecord, Channel]] = []
        for record in records:
            if record.is_expired_at(now):
                if self._expire(record, now):
                    stats["expired"] += 1
                continue
            for channel, observed in record.dispatchable_channels(
                now, self.max_retries, ready
            ):
                claimed = self._claim(record, channel, observed, now)
                if claimed is None:
                    stats[SKIPPED] += 1
                elif self._holds_claim(claimed, channel):
                    claims.append((claimed, channel))
                else:
                    logger.warning(
                        "claim_lease_exhausted",
                        record_id=record.id,
                        channel=channel.value,
                    )
                    stats[FAILED] += 1
        stats["claimed"] = len(claims)

        if claims:
            self._run_claims(claims, stats, now)

        logger.info(
            "dispatch_cycle_completed",
            worker_id=self.worker_id,
            ready_channels=sorted(channel.value for channel in ready),
            **stats,
        )
        return stats

    def _run_claims(
        self,
        claims: List[Tuple[NotificationRecord, Channel]],
        stats: Dict[str, int],
        now: datetime,
    ) -> None:
        workers = max(1, min(self.max_workers, len(claims)))
        with ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="notification-dispatch"
        ) as pool:
            futures = {
                pool.submit(self.deliver_claimed, record, channel, now): (
                    record,
                    channel,
                )
                for record, channel in claims
            }
            for future in as_completed(futures):
                record, channel = futures[future]
                try:
                    kind, invalid = future.result()
                except Exception as e:  # pylint: disable=broad-except
                    logger.error(
                        "dispatch_channel_failed",
                        record_id=record.id,
                        channel=channel.value,
                        error=str(e),
                        exc_info=True,
                    )
                    stats[SKIPPED] += 1
                    continue
                stats[kind] += 1
                stats["invalid_endpoints"] += invalid

    def _expire(self, record: NotificationRecord, now: datetime) -> bool:
        try:
            self.store.update(record.id, lambda r: self.tracker.expire(r, now))
        except NotificationError as e:
            logger.warning("notification_expire_failed", record_id=record.id, error=str(e))
            return False
        logger.info("notification_expired", record_id=record.id)
        return True

    def _claim(
        self,
        record: NotificationRecord,
        channel: Channel,
        observed: DeliveryState,
        now: datetime,
    ) -> Optional[NotificationRecord]:
        if channel not in self.gateways:
            logger.debug(
                "channel_gateway_missing", record_id=record.id, channel=channel.value
            )
            return None

        def mutate(working: NotificationRecord) -> None:
            self.tracker.claim(
                working, channel, self.worker_id, self.lease_seconds, observed, now
            )

        try:
            return self.store.update(record.id, mutate)
        except ClaimRejectedError as e:
            logger.debug("claim_rejected", record_id=record.id, channel=channel.value, reason=str(e))
        except Exception as e:  # pylint: disable=broad-except
            logger.error(
                "claim_failed",
                record_id=record.id,
                channel=channel.value,
                error=str(e),
            )
        return None

    def _holds_claim(self, record: NotificationRecord, channel: Channel) -> bool:
        delivery = record.deliveries.get(channel)
        return (
            delivery is not None
            and delivery.status == DeliveryState.IN_FLIGHT
            and delivery.claimed_by == self.worker_id
        )

    def deliver_claimed(
        self,
        record: NotificationRecord,
        channel: Channel,
        now: Optional[datetime] = None,
    ) -> Tuple[str, int]:
        """Send one claimed channel and record the outcome.

        Errors raised by the directory, the gateway or the store are recorded
        as a failed attempt on the channel instead of leaving it in flight.

        Returns:
            Tuple of outcome kind (sent, failed, retried, unavailable or
            skipped) and the number of invalid endpoints reported
        """
        now = now or utc_now()
        gateway = self.gateways[channel]
        try:
            endpoints = self.directory.resolve_endpoints(record.recipient, channel)
            targets = gateway.targets(endpoints)
        except Exception as e:  # pylint: disable=broad-except
            return self._record_error(record, channel, DIRECTORY_ERROR_CODE, e), 0

        if not targets:
            logger.info(
                "notification_no_endpoint",
                record_id=record.id,
                channel=channel.value,
                recipient=record.recipient,
            )
            try:
                self.store.update(
                    record.id,
                    lambda r: self.tracker.mark_failed(
                        r,
                        channel,
                        error="no endpoint",
                        error_code=NO_ENDPOINT_CODE,
                        counts_toward_retry=False,
                    ),
                )
            except Exception as e:  # pylint: disable=broad-except
                return self._record_error(record, channel, STORE_ERROR_CODE, e), 0
            return FAILED, 0

        try:
            outcomes = gateway.deliver(record, endpoints)
        except Exception as e:  # pylint: disable=broad-except
            return self._record_error(record, channel, GATEWAY_ERROR_CODE, e), 0

        invalid = [o for o in outcomes if o.invalid_endpoint and not o.success]
        try:
            kind = self._apply(record, channel, outcomes, now)
        except Exception as e:  # pylint: disable=broad-except
            # The provider may have accepted the message; charge the attempt
            kind = self._record_error(record, channel, GATEWAY_ERROR_CODE, e)

        if invalid:
            try:
                self.hygiene.process(invalid)
            except Exception as e:  # pylint: disable=broad-except
                logger.error("token_hygiene_failed", record_id=record.id, error=str(e))
        return kind, len(invalid)

    def _record_error(
        self,
        record: NotificationRecord,
        channel: Channel,
        error_code: str,
        error: Exception,
    ) -> str:
        message = f"{type(error).__name__}: {error}"
        logger.error(
            "dispatch_channel_failed",
            record_id=record.id,
            channel=channel.value,
            error_code=error_code,
            error=message,
            exc_info=True,
        )
        try:
            updated = self.store.update(
                record.id,
                lambda r: self.tracker.mark_failed(
                    r, channel, error=message, error_code=error_code
                ),
            )
        except Exception as e:  # pylint: disable=broad-except
            # Left in flight; the lease expiry path counts this attempt
            logger.error(
                "dispatch_error_not_recorded",
                record_id=record.id,
                channel=channel.value,
                error=str(e),
            )
            return SKIPPED
        return self._failure_kind(updated, channel)

    def _failure_kind(self, record: NotificationRecord, channel: Channel) -> str:
        delivery = record.deliveries.get(channel)
        retryable = delivery is not None and delivery.is_retryable(self.max_retries)
        return RETRIED if retryable else FAILED

    def _apply(
        self,
        record: NotificationRecord,
        channel: Channel,
        outcomes: List[DeliveryOutcome],
        now: datetime,
    ) -> str:
        successes = [o for o in outcomes if o.success]
        if successes:
            message_id = next(
                (o.provider_message_id for o in successes if o.provider_message_id),
                None,
            )
            self.store.update(
                record.id, lambda r: self.tracker.mark_sent(r, channel, message_id)
            )
            logger.info(
                "notification_channel_sent",
                record_id=record.id,
                channel=channel.value,
                endpoints=len(outcomes),
                succeeded=len(successes),
            )
            return SENT

        first = outcomes[0] if outcomes else None
        error = first.error if first and first.error else "no delivery outcome"
        error_code = first.error_code if first else "NO_OUTCOME"

        if outcomes and all(o.unavailable for o in outcomes):
            self.store.update(
                record.id,
                lambda r: self.tracker.release(
                    r,
                    channel,
                    error,
                    error_code,
                    now=now,
                    backoff_seconds=self.release_backoff_seconds,
                ),
            )
            logger.warning(
                "notification_channel_unavailable",
                record_id=record.id,
                channel=channel.value,
                error_code=error_code,
                retry_in_seconds=self.release_backoff_seconds,
            )
            return UNAVAILABLE

        permanent = bool(outcomes) and all(o.permanent for o in outcomes)
        updated = self.store.update(
            record.id,
            lambda r: self.tracker.mark_failed(
                r, channel, error=error, error_code=error_code, permanent=permanent
            ),
        )
        delivery = updated.deliveries.get(channel)
        kind = self._failure_kind(updated, channel)
        logger.warning(
            "notification_channel_failed",
            record_id=record.id,
            channel=channel.value,
            error_code=error_code,
            permanent=permanent,
            attempts=delivery.attempts if delivery else None,
            will_retry=kind == RETRIED,
        )
        return kind


__all__ = ["Dispatcher", "default_worker_id"]
