"""
Dependency injection services.

Provides type aliases and provider functions for FastAPI dependency injection.
"""

from infrastructure.services.dependencies import (
    MemberDirectoryDep,
    NotificationServiceDep,
    NotificationStoreDep,
    SettingsDep,
)
from infrastructure.services.providers import (
    get_channel_gateways,
    get_dispatcher,
    get_dynamodb_client,
    get_member_directory,
    get_notification_service,
    get_notification_store,
    get_settings,
)

__all__ = [
    "SettingsDep",
    "NotificationServiceDep",
    "NotificationStoreDep",
    "MemberDirectoryDep",
    "get_settings",
    "get_dynamodb_client",
    "get_notification_store",
    "get_member_directory",
    "get_channel_gateways",
    "get_dispatcher",
    "get_notification_service",
]
