"""
Factory functions for dependency injection.

Provides application-scoped singleton providers for core infrastructure services.
"""

from functools import lru_cache
from typing import Dict

from infrastructure.clients.aws import DynamoDBClient, SessionProvider
from infrastructure.configuration import Settings
from infrastructure.directory import (
    DynamoDBMemberDirectory,
    InMemoryMemberDirectory,
    MemberDirectory,
)
from infrastructure.notifications.channels import (
    ChannelGateway,
    EmailGateway,
    PushGateway,
    SmsGateway,
)
from infrastructure.notifications.dispatcher import Dispatcher
from infrastructure.notifications.factory import create_notification_store
from infrastructure.notifications.hygiene import TokenHygiene
from infrastructure.notifications.models import Channel
from infrastructure.notifications.service import NotificationService
from infrastructure.notifications.status import DeliveryStatusTracker
from infrastructure.notifications.store import NotificationStore
from infrastructure.resilience import CircuitBreaker
from integrations.africastalking import AfricasTalkingClient
from integrations.fcm import FcmClient
from integrations.notify import NotifyClient


@lru_cache
def get_settings() -> Settings:
    """
    Get application-scoped settings singleton.

    This is the single source of truth for settings across the entire application.
    The @lru_cache decorator ensures only ONE instance is created per process,
    even if called from multiple packages.

    Infrastructure packages should use this directly to ensure singleton consistency:
        from infrastructure.services.providers import get_settings
        settings = get_settings()

    Application code should use the DI type alias for testability:
        from infrastructure.services import SettingsDep
        @router.get("/config")
        def get_config(settings: SettingsDep):
            return settings.model_dump()

    Returns:
        Settings: Cached settings instance loaded from environment.
    """
    return Settings()


@lru_cache
def get_dynamodb_client() -> DynamoDBClient:
    """Provider for the DynamoDB client.

    Credentials are resolved per API call, so caching the client is safe.
    """
    settings = get_settings()
    return DynamoDBClient(
        SessionProvider(
            region=settings.aws.AWS_REGION,
            endpoint_url=settings.aws.ENDPOINT_URL,
        )
    )


@lru_cache
def get_notification_store() -> NotificationStore:
    """Provider for the configured notification store (memory or DynamoDB)."""
    settings = get_settings()
    client = (
        get_dynamodb_client()
        if settings.dispatch.store_backend == "dynamodb"
        else None
    )
    return create_notification_store(settings, dynamodb_client=client)


@lru_cache
def get_member_directory() -> MemberDirectory:
    """Provider for the member directory, on the same backend as the store."""
    settings = get_settings()
    if settings.dispatch.store_backend == "dynamodb":
        return DynamoDBMemberDirectory(
            get_dynamodb_client(),
            table_name=settings.aws.USERS_TABLE_NAME,
            page_size=settings.dispatch.sweep_page_size,
        )
    return InMemoryMemberDirectory()


def _breaker(name: str, settings: Settings) -> CircuitBreaker:
    return CircuitBreaker(
        name=name,
        failure_threshold=settings.dispatch.circuit_failure_threshold,
        timeout_seconds=settings.dispatch.circuit_timeout_seconds,
    )


@lru_cache
def get_channel_gateways() -> Dict[Channel, ChannelGateway]:
    """Provider for one gateway per external channel.

    Gateways are built even when their provider is not configured; the
    dispatcher skips channels whose gateway is not ready, leaving them pending.
    """
    settings = get_settings()
    return {
        Channel.PUSH: PushGateway(
            FcmClient(settings.fcm), circuit_breaker=_breaker("push_gateway", settings)
        ),
        Channel.SMS: SmsGateway(
            AfricasTalkingClient(settings.sms),
            settings.sms,
            circuit_breaker=_breaker("sms_gateway", settings),
        ),
        Channel.EMAIL: EmailGateway(
            NotifyClient(settings.notify),
            circuit_breaker=_breaker("email_gateway", settings),
        ),
    }


@lru_cache
def get_dispatcher() -> Dispatcher:
    """Provider for the dispatcher shared by the scheduler and the API."""
    settings = get_settings()
    directory = get_member_directory()
    return Dispatcher(
        store=get_notification_store(),
        directory=directory,
        gateways=get_channel_gateways(),
        tracker=DeliveryStatusTracker(settings.dispatch.max_retries),
        hygiene=TokenHygiene(directory),
        batch_size=settings.dispatch.batch_size,
        max_workers=settings.dispatch.max_workers,
        lease_seconds=settings.dispatch.claim_lease_seconds,
        release_backoff_seconds=settings.dispatch.release_backoff_seconds,
    )


@lru_cache
def get_notification_service() -> NotificationService:
    """
    Get application-scoped notification service singleton.

    Usage:
        @router.post("/notifications")
        def create(service: NotificationServiceDep, spec: NotificationSpec):
            return {"id": service.create_notification(spec)}
    """
    settings = get_settings()
    dispatcher = get_dispatcher()
    return NotificationService(
        store=dispatcher.store,
        directory=dispatcher.directory,
        dispatcher=dispatcher,
        tracker=dispatcher.tracker,
        sweep_page_size=settings.dispatch.sweep_page_size,
    )
