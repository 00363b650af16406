"""Africa's Talking SMS integration settings."""

from pydantic import Field

from infrastructure.configuration.base import IntegrationSettings


class SmsSettings(IntegrationSettings):
    """Africa's Talking configuration for the SMS channel.

    Environment Variables:
        AFRICASTALKING_USERNAME: Account username ("sandbox" for the sandbox)
        AFRICASTALKING_API_KEY: Account API key
        AFRICASTALKING_SENDER_ID: Sender id shown to recipients (default: JIRANI)
        AFRICASTALKING_API_URL: Messaging endpoint
        SMS_BATCH_SIZE: Maximum recipients per request (default: 100)
        SMS_BATCH_DELAY_SECONDS: Pause between consecutive batches (default: 1)
        SMS_TIMEOUT_SECONDS: Request timeout in seconds (default: 15)

    Example:
        ```python
        from infrastructure.services import get_settings

        settings = get_settings()

        sender = settings.sms.AFRICASTALKING_SENDER_ID
        ```
    """

    AFRICASTALKING_USERNAME: str | None = Field(
        default=None, alias="AFRICASTALKING_USERNAME"
    )
    AFRICASTALKING_API_KEY: str | None = Field(
        default=None, alias="AFRICASTALKING_API_KEY"
    )
    AFRICASTALKING_SENDER_ID: str = Field(
        default="JIRANI", alias="AFRICASTALKING_SENDER_ID"
    )
    AFRICASTALKING_API_URL: str = Field(
        default="https://api.africastalking.com/version1/messaging",
        alias="AFRICASTALKING_API_URL",
    )
    SMS_BATCH_SIZE: int = Field(default=100, alias="SMS_BATCH_SIZE")
    SMS_BATCH_DELAY_SECONDS: float = Field(default=1.0, alias="SMS_BATCH_DELAY_SECONDS")
    SMS_TIMEOUT_SECONDS: float = Field(default=15.0, alias="SMS_TIMEOUT_SECONDS")

    @property
    def is_configured(self) -> bool:
        """True when credentials for the messaging API are present."""
        return bool(self.AFRICASTALKING_USERNAME and self.AFRICASTALKING_API_KEY)
