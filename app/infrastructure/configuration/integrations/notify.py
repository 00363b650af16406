"""GC Notify integration settings."""

from pydantic import Field

from infrastructure.configuration.base import IntegrationSettings


class NotifySettings(IntegrationSettings):
    """GC Notify API configuration for the email channel.

    Environment Variables:
        NOTIFY_SERVICE_ID: GC Notify service id (JWT issuer)
        NOTIFY_API_KEY_SECRET: GC Notify API key secret (JWT signing key)
        NOTIFY_API_URL: GC Notify API endpoint URL
        NOTIFY_EMAIL_TEMPLATE_ID: Template used for notification emails
        NOTIFY_TIMEOUT_SECONDS: Request timeout in seconds (default: 15)

    Example:
        ```python
        from infrastructure.services import get_settings

        settings = get_settings()

        api_url = settings.notify.NOTIFY_API_URL
        template_id = settings.notify.NOTIFY_EMAIL_TEMPLATE_ID
        ```
    """

    NOTIFY_SERVICE_ID: str | None = Field(default=None, alias="NOTIFY_SERVICE_ID")
    NOTIFY_API_KEY_SECRET: str | None = Field(
        default=None, alias="NOTIFY_API_KEY_SECRET"
    )
    NOTIFY_API_URL: str = Field(default="", alias="NOTIFY_API_URL")
    NOTIFY_EMAIL_TEMPLATE_ID: str | None = Field(
        default=None, alias="NOTIFY_EMAIL_TEMPLATE_ID"
    )
    NOTIFY_TIMEOUT_SECONDS: float = Field(default=15.0, alias="NOTIFY_TIMEOUT_SECONDS")

    @property
    def is_configured(self) -> bool:
        """True when every value needed to send email is present."""
        return bool(
            self.NOTIFY_SERVICE_ID
            and self.NOTIFY_API_KEY_SECRET
            and self.NOTIFY_API_URL
            and self.NOTIFY_EMAIL_TEMPLATE_ID
        )
