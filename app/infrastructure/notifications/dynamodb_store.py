"""DynamoDB-backed notification store for multi-instance deployments.

Table Schema:
    PK: id (String)
    GSI recipient-created_at-index: recipient + created_at
    GSI batch_id-index: batch_id
    GSI dispatch_state-scheduled_for-index: dispatch_state + scheduled_for
        (sparse; dispatch_state = "DUE" only while a channel can still be sent)

Updates are optimistic: the record is read, the mutator is applied and the
item is written back conditional on the version that was read. A lost race
re-reads and re-applies the mutator, so a claim that another worker already
took fails inside the mutator instead of being overwritten.
"""

from datetime import datetime
from typing import Any, Callable, Collection, Dict, List, Optional, Tuple

from infrastructure.clients.aws.client import CONDITION_FAILED_CODES
from infrastructure.clients.aws.dynamodb import DynamoDBClient
from infrastructure.logging import get_module_logger
from infrastructure.notifications.errors import (
    ConcurrentModificationError,
    NotificationNotFoundError,
)
from infrastructure.notifications.models import (
    MAX_RETRIES,
    Channel,
    NotificationRecord,
)
from infrastructure.notifications.store import Mutator, dispatch_order
from infrastructure.operations import OperationResult

logger = get_module_logger()

DUE_STATE = "DUE"
RECIPIENT_INDEX = "recipient-created_at-index"
BATCH_INDEX = "batch_id-index"
DISPATCH_INDEX = "dispatch_state-scheduled_for-index"

# Key attributes need a fixed-width format so string comparison matches time order
_KEY_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def _key_time(value: datetime) -> str:
    return value.strftime(_KEY_TIME_FORMAT)


class NotificationStoreError(RuntimeError):
    """Raised when DynamoDB rejects a store operation."""

    def __init__(self, message: str, result: Optional[OperationResult] = None):
        super().__init__(message)
        self.result = result


class DynamoDBNotificationStore:
    """DynamoDB-backed notification store.

    Args:
        client: DynamoDBClient used for all calls
        table_name: DynamoDB table name
        max_update_attempts: Optimistic update attempts before giving up
        due_scan_factor: Due candidates read per requested record, so that
            priority ordering is applied over more than one page
        max_retries: Retry cap used to decide whether a record is still due
    """

    def __init__(
        self,
        client: DynamoDBClient,
        table_name: str,
        max_update_attempts: int = 5,
        due_scan_factor: int = 4,
        max_retries: int = MAX_RETRIES,
    ):
        self.client = client
        self.table_name = table_name
        self.max_update_attempts = max_update_attempts
        self.due_scan_factor = due_scan_factor
        self.max_retries = min(max_retries, MAX_RETRIES)

        logger.info("dynamodb_notification_store_initialized", table_name=table_name)

    def _to_item(self, record: NotificationRecord) -> Dict[str, Any]:
        item = record.model_dump(mode="json", exclude_none=True)
        item["scheduled_for"] = _key_time(record.scheduled_for)
        item["created_at"] = _key_time(record.created_at)
        if record.needs_dispatch(self.max_retries):
            item["dispatch_state"] = DUE_STATE
        return item

    @staticmethod
    def _from_item(item: Dict[str, Any]) -> NotificationRecord:
        item = dict(item)
        item.pop("dispatch_state", None)
        return NotificationRecord.model_validate(item)

    def _raise_on_error(self, result: OperationResult, operation: str, **context) -> None:
        if result.is_success:
            return
        logger.error(
            "dynamodb_notification_store_error",
            operation=operation,
            error=result.message,
            error_code=result.error_code,
            **context,
        )
        raise NotificationStoreError(f"{operation} failed: {result.message}", result)

    def save(self, record: NotificationRecord) -> str:
        result = self.client.put_item(
            self.table_name,
            Item=self._to_item(record),
            ConditionExpression="attribute_not_exists(id)",
        )
        self._raise_on_error(result, "save", record_id=record.id)
        logger.debug("notification_saved", record_id=record.id)
        return record.id

    def save_many(self, records: List[NotificationRecord]) -> List[str]:
        return [self.save(record) for record in records]

    def get(self, record_id: str) -> Optional[NotificationRecord]:
        result = self.client.get_item(
            self.table_name, Key={"id": record_id}, ConsistentRead=True
        )
        self._raise_on_error(result, "get", record_id=record_id)
        return self._from_item(result.data) if result.data else None

    def update(self, record_id: str, mutate: Mutator) -> NotificationRecord:
        for attempt in range(self.max_update_attempts):
            current = self.get(record_id)
            if current is None:
                raise NotificationNotFoundError(record_id)

            working = current.model_copy(deep=True)
            mutate(working)
            working.version = current.version + 1

            result = self.client.put_item(
                self.table_name,
                Item=self._to_item(working),
                ConditionExpression="#version = :expected",
                ExpressionAttributeNames={"#version": "version"},
                ExpressionAttributeValues={":expected": current.version},
            )
            if result.is_success:
                return working
            if result.error_code in CONDITION_FAILED_CODES:
                logger.debug(
                    "notification_update_conflict",
                    record_id=record_id,
                    attempt=attempt + 1,
                )
                continue
            self._raise_on_error(result, "update", record_id=record_id)

        logger.warning(
            "notification_update_gave_up",
            record_id=record_id,
            attempts=self.max_update_attempts,
        )
        raise ConcurrentModificationError(record_id)

    def _query_all(
        self,
        max_items: Optional[int] = None,
        keep: Optional[Callable[[NotificationRecord], bool]] = None,
        **kwargs,
    ) -> List[NotificationRecord]:
        """Query every page, stopping once ``max_items`` records were kept."""
        records: List[NotificationRecord] = []
        last_key = None
        while True:
            result = self.client.query(
                self.table_name, ExclusiveStartKey=last_key, **kwargs
            )
            self._raise_on_error(result, "query", index=kwargs.get("IndexName"))
            page = (self._from_item(item) for item in result.data["items"])
            records.extend(r for r in page if keep is None or keep(r))
            last_key = result.data["last_key"]
            if not last_key or (max_items is not None and len(records) >= max_items):
                return records

    def fetch_due(
        self,
        now: datetime,
        limit: int,
        max_retries: Optional[int] = None,
        channels: Optional[Collection[Channel]] = None,
    ) -> List[NotificationRecord]:
        if max_retries is None:
            max_retries = self.max_retries

        def is_due(record: NotificationRecord) -> bool:
            return not record.is_archived and (
                record.is_expired_at(now)
                or bool(record.dispatchable_channels(now, max_retries, channels))
            )

        due = self._query_all(
            max_items=limit * self.due_scan_factor,
            keep=is_due,
            IndexName=DISPATCH_INDEX,
            KeyConditionExpression="dispatch_state = :due AND scheduled_for <= :now",
            ExpressionAttributeValues={":due": DUE_STATE, ":now": _key_time(now)},
        )
        due.sort(key=dispatch_order)
        logger.debug(
            "fetched_due_notifications",
            count=len(due[:limit]),
            total_matched=len(due),
        )
        return due[:limit]

    def list_for_recipient(
        self, user_id: str, limit: Optional[int] = None
    ) -> List[NotificationRecord]:
        kwargs: Dict[str, Any] = {
            "IndexName": RECIPIENT_INDEX,
            "KeyConditionExpression": "recipient = :recipient",
            "ExpressionAttributeValues": {":recipient": user_id},
            "ScanIndexForward": False,
        }
        if limit is not None:
            kwargs["Limit"] = limit
        records = self._query_all(max_items=limit, **kwargs)
        return records[:limit] if limit is not None else records

    def list_batch(self, batch_id: str) -> List[NotificationRecord]:
        records = self._query_all(
            IndexName=BATCH_INDEX,
            KeyConditionExpression="batch_id = :batch_id",
            ExpressionAttributeValues={":batch_id": batch_id},
        )
        records.sort(key=lambda r: r.created_at)
        return records

    def scan(
        self, page_size: int, cursor: Optional[str] = None
    ) -> Tuple[List[NotificationRecord], Optional[str]]:
        result = self.client.scan(
            self.table_name,
            Limit=page_size,
            ExclusiveStartKey={"id": cursor} if cursor else None,
        )
        self._raise_on_error(result, "scan")
        records = [self._from_item(item) for item in result.data["items"]]
        last_key = result.data["last_key"]
        return records, last_key["id"] if last_key else None

    def health_check(self) -> OperationResult:
        result = self.client.healthcheck()
        if result.is_success:
            return OperationResult.success(
                data={"backend": "dynamodb", "table": self.table_name},
                message="DynamoDB store reachable",
            )
        return OperationResult.unavailable(f"DynamoDB unreachable: {result.message}")
