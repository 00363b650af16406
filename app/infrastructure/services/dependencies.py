"""
Type aliases for FastAPI dependency injection.

Provides annotated type hints for common infrastructure dependencies.
"""

from typing import Annotated

from fastapi import Depends

from infrastructure.configuration import Settings
from infrastructure.directory import MemberDirectory
from infrastructure.notifications.service import NotificationService
from infrastructure.notifications.store import NotificationStore
from infrastructure.services.providers import (
    get_member_directory,
    get_notification_service,
    get_notification_store,
    get_settings,
)

# Settings dependency
SettingsDep = Annotated[Settings, Depends(get_settings)]

# Notification service dependency
NotificationServiceDep = Annotated[
    NotificationService, Depends(get_notification_service)
]

# Storage dependencies
NotificationStoreDep = Annotated[NotificationStore, Depends(get_notification_store)]
MemberDirectoryDep = Annotated[MemberDirectory, Depends(get_member_directory)]

__all__ = [
    "SettingsDep",
    "NotificationServiceDep",
    "NotificationStoreDep",
    "MemberDirectoryDep",
]
