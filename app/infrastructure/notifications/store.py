"""Notification record storage.

This module provides the storage interface and the in-memory implementation
for notification records. The protocol-based design allows multiple storage
backends (in-memory, DynamoDB).

Every state change goes through ``update``: the store loads the current
record, applies a mutator to a private copy and writes it back atomically.
A mutator that raises aborts the update without writing anything.
"""

import threading
from datetime import datetime
from typing import Callable, Collection, Dict, List, Optional, Protocol, Tuple

from infrastructure.logging import get_module_logger
from infrastructure.notifications.errors import NotificationNotFoundError
from infrastructure.notifications.models import (
    MAX_RETRIES,
    Channel,
    NotificationRecord,
)
from infrastructure.operations import OperationResult

logger = get_module_logger()

Mutator = Callable[[NotificationRecord], None]


def dispatch_order(record: NotificationRecord) -> Tuple[int, datetime]:
    """Sort key: urgent, high, normal, low, then oldest scheduled_for."""
    return (record.priority.rank, record.scheduled_for)


class NotificationStore(Protocol):
    """Storage interface for notification records.

    Implementations must make ``update`` atomic per record so concurrent
    workers never overwrite each other's transitions.

    Methods:
        save: Persist a new record and return its ID
        save_many: Persist several new records
        get: Load one record
        update: Apply a mutator to one record atomically
        fetch_due: Records with dispatch work whose scheduled time has passed
        list_for_recipient: Records addressed to one member, newest first
        list_batch: Records created by one bulk send
        scan: Page through all records
        health_check: Check the backend is reachable
    """

    def save(self, record: NotificationRecord) -> str:
        """Persist a new record and return its ID."""
        ...

    def save_many(self, records: List[NotificationRecord]) -> List[str]:
        """Persist several new records and return their IDs."""
        ...

    def get(self, record_id: str) -> Optional[NotificationRecord]:
        """Return the record or None if it does not exist."""
        ...

    def update(self, record_id: str, mutate: Mutator) -> NotificationRecord:
        """Apply ``mutate`` to the record atomically and return the result.

        Raises:
            NotificationNotFoundError: if the record does not exist
            Exception: anything raised by ``mutate``; nothing is written
        """
        ...

    def fetch_due(
        self,
        now: datetime,
        limit: int,
        max_retries: int = MAX_RETRIES,
        channels: Optional[Collection[Channel]] = None,
    ) -> List[NotificationRecord]:
        """Return up to ``limit`` records with dispatchable channels.

        Only unarchived records with ``scheduled_for <= now`` are returned,
        in dispatch order. Expired records are included so the caller can
        archive them. When ``channels`` is given, only work on those channels
        counts, so records waiting on a channel that cannot send do not take
        up the ``limit``.
        """
        ...

    def list_for_recipient(
        self, user_id: str, limit: Optional[int] = None
    ) -> List[NotificationRecord]:
        """Return records addressed to ``user_id``, newest first."""
        ...

    def list_batch(self, batch_id: str) -> List[NotificationRecord]:
        """Return all records that share ``batch_id``."""
        ...

    def scan(
        self, page_size: int, cursor: Optional[str] = None
    ) -> Tuple[List[NotificationRecord], Optional[str]]:
        """Return one page of records and the cursor for the next page."""
        ...

    def health_check(self) -> OperationResult:
        """Check the backend is reachable."""
        ...


class InMemoryNotificationStore:
    """In-memory implementation of NotificationStore.

    Thread-safe store with a lock per record so dispatcher workers applying
    outcomes to different records never block each other. Suitable for
    single-instance deployments, development and tests.
    """

    def __init__(self) -> None:
        self._records: Dict[str, NotificationRecord] = {}
        self._record_locks: Dict[str, threading.Lock] = {}
        self._lock = threading.Lock()

    def _record_lock(self, record_id: str) -> threading.Lock:
        with self._lock:
            lock = self._record_locks.get(record_id)
            if lock is None:
                lock = threading.Lock()
                self._record_locks[record_id] = lock
            return lock

    def save(self, record: NotificationRecord) -> str:
        with self._lock:
            if record.id in self._records:
                raise ValueError(f"Notification already exists: {record.id}")
            self._records[record.id] = record.model_copy(deep=True)
        logger.debug("notification_saved", record_id=record.id)
        return record.id

    def save_many(self, records: List[NotificationRecord]) -> List[str]:
        return [self.save(record) for record in records]

    def get(self, record_id: str) -> Optional[NotificationRecord]:
        with self._lock:
            record = self._records.get(record_id)
        return record.model_copy(deep=True) if record else None

    def update(self, record_id: str, mutate: Mutator) -> NotificationRecord:
        with self._record_lock(record_id):
            with self._lock:
                current = self._records.get(record_id)
            if current is None:
                raise NotificationNotFoundError(record_id)

            working = current.model_copy(deep=True)
            mutate(working)
            working.version = current.version + 1

            with self._lock:
                self._records[record_id] = working
            return working.model_copy(deep=True)

    def fetch_due(
        self,
        now: datetime,
        limit: int,
        max_retries: int = MAX_RETRIES,
        channels: Optional[Collection[Channel]] = None,
    ) -> List[NotificationRecord]:
        with self._lock:
            candidates = [
                record
                for record in self._records.values()
                if not record.is_archived
                and record.scheduled_for <= now
                and (
                    record.is_expired_at(now)
                    or record.dispatchable_channels(now, max_retries, channels)
                )
            ]
        candidates.sort(key=dispatch_order)
        return [record.model_copy(deep=True) for record in candidates[:limit]]

    def list_for_recipient(
        self, user_id: str, limit: Optional[int] = None
    ) -> List[NotificationRecord]:
        with self._lock:
            records = [r for r in self._records.values() if r.recipient == user_id]
        records.sort(key=lambda r: r.created_at, reverse=True)
        if limit is not None:
            records = records[:limit]
        return [record.model_copy(deep=True) for record in records]

    def list_batch(self, batch_id: str) -> List[NotificationRecord]:
        with self._lock:
            records = [r for r in self._records.values() if r.batch_id == batch_id]
        records.sort(key=lambda r: r.created_at)
        return [record.model_copy(deep=True) for record in records]

    def scan(
        self, page_size: int, cursor: Optional[str] = None
    ) -> Tuple[List[NotificationRecord], Optional[str]]:
        with self._lock:
            ids = sorted(self._records)
            start = 0
            if cursor is not None:
                start = next((i for i, rid in enumerate(ids) if rid > cursor), len(ids))
            page_ids = ids[start : start + page_size]
            page = [self._records[rid].model_copy(deep=True) for rid in page_ids]
        next_cursor = page_ids[-1] if start + page_size < len(ids) and page_ids else None
        return page, next_cursor

    def health_check(self) -> OperationResult:
        with self._lock:
            count = len(self._records)
        return OperationResult.success(
            data={"backend": "memory", "records": count},
            message="In-memory store available",
        )

    def clear(self) -> None:
        """Drop all records (tests and local development)."""
        with self._lock:
            self._records.clear()
            self._record_locks.clear()


__all__ = [
    "NotificationStore",
    "InMemoryNotificationStore",
    "dispatch_order",
]
