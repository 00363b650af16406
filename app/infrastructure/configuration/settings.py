"""Top level settings object assembled from the per-section settings."""

from pydantic import Field
from pydantic_settings import BaseSettings

from infrastructure.configuration.base import SECTION_CONFIG
from infrastructure.configuration.infrastructure import (
    DispatchSettings,
    ServerSettings,
)
from infrastructure.configuration.integrations import (
    AwsSettings,
    FcmSettings,
    NotifySettings,
    SmsSettings,
)


class Settings(BaseSettings):
    """All configuration for the notifications backend.

    Each section loads its own environment variables, so a section passed in
    explicitly (``Settings(dispatch=DispatchSettings(...))``) replaces only
    that section.

    Environment Variables:
        PREFIX: Deployment prefix. Empty means production.
        LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR)
        GIT_SHA: Commit deployed, reported by ``/version``

    Example:
        ```python
        from infrastructure.services import get_settings

        settings = get_settings()
        if settings.dispatch.enabled:
            interval = settings.dispatch.interval_seconds
        ```
    """

    PREFIX: str = ""
    LOG_LEVEL: str = "INFO"
    GIT_SHA: str = "Unknown"

    # Delivery providers and storage
    aws: AwsSettings = Field(default_factory=AwsSettings)
    fcm: FcmSettings = Field(default_factory=FcmSettings)
    sms: SmsSettings = Field(default_factory=SmsSettings)
    notify: NotifySettings = Field(default_factory=NotifySettings)

    # Dispatch loop and server
    dispatch: DispatchSettings = Field(default_factory=DispatchSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)

    model_config = SECTION_CONFIG

    @property
    def is_production(self) -> bool:
        return not self.PREFIX

    def configured_channels(self) -> dict[str, bool]:
        """Which external delivery channels have complete credentials."""
        return {
            "push": self.fcm.is_configured,
            "sms": self.sms.is_configured,
            "email": self.notify.is_configured,
        }
