"""Factory functions for the notification store backends."""

from typing import Optional

from infrastructure.clients.aws.dynamodb import DynamoDBClient
from infrastructure.configuration import Settings
from infrastructure.logging import get_module_logger
from infrastructure.notifications.dynamodb_store import DynamoDBNotificationStore
from infrastructure.notifications.store import (
    InMemoryNotificationStore,
    NotificationStore,
)

logger = get_module_logger()


def create_notification_store(
    settings: Settings,
    dynamodb_client: Optional[DynamoDBClient] = None,
    backend: Optional[str] = None,
) -> NotificationStore:
    """Create the configured notification store.

    Args:
        settings: Application settings
        dynamodb_client: Client for the DynamoDB backend
        backend: Override for ``settings.dispatch.store_backend``

    Raises:
        ValueError: if the backend is unknown or DynamoDB has no client
    """
    backend = (backend or settings.dispatch.store_backend).lower()

    if backend == "memory":
        logger.info("notification_store_created", backend="memory")
        return InMemoryNotificationStore()

    if backend == "dynamodb":
        if dynamodb_client is None:
            raise ValueError("DynamoDB notification store requires a DynamoDBClient")
        logger.info(
            "notification_store_created",
            backend="dynamodb",
            table_name=settings.aws.NOTIFICATIONS_TABLE_NAME,
        )
        return DynamoDBNotificationStore(
            client=dynamodb_client,
            table_name=settings.aws.NOTIFICATIONS_TABLE_NAME,
            max_retries=settings.dispatch.max_retries,
        )

    raise ValueError(f"Unknown notification store backend: {backend}")
