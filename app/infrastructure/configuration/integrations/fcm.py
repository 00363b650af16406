"""Firebase Cloud Messaging integration settings."""

from pydantic import Field

from infrastructure.configuration.base import IntegrationSettings


class FcmSettings(IntegrationSettings):
    """FCM HTTP v1 configuration for the push channel.

    Environment Variables:
        FCM_PROJECT_ID: Firebase project id
        FCM_CREDENTIALS_FILE: Path to the service account JSON file
        FCM_CREDENTIALS_JSON: Service account JSON as a string (takes precedence)
        FCM_API_URL: FCM API base URL
        FCM_IID_URL: Instance ID API base URL used for topic management
        FCM_TIMEOUT_SECONDS: Request timeout in seconds (default: 15)

    Example:
        ```python
        from infrastructure.services import get_settings

        settings = get_settings()

        project = settings.fcm.FCM_PROJECT_ID
        ```
    """

    FCM_PROJECT_ID: str | None = Field(default=None, alias="FCM_PROJECT_ID")
    FCM_CREDENTIALS_FILE: str | None = Field(default=None, alias="FCM_CREDENTIALS_FILE")
    FCM_CREDENTIALS_JSON: str | None = Field(default=None, alias="FCM_CREDENTIALS_JSON")
    FCM_API_URL: str = Field(
        default="https://fcm.googleapis.com", alias="FCM_API_URL"
    )
    FCM_IID_URL: str = Field(default="https://iid.googleapis.com", alias="FCM_IID_URL")
    FCM_TIMEOUT_SECONDS: float = Field(default=15.0, alias="FCM_TIMEOUT_SECONDS")

    @property
    def is_configured(self) -> bool:
        """True when a project id and some form of credentials are present."""
        return bool(
            self.FCM_PROJECT_ID
            and (self.FCM_CREDENTIALS_JSON or self.FCM_CREDENTIALS_FILE)
        )
