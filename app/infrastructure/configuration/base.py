"""Base classes shared by every settings section."""

from pydantic_settings import BaseSettings, SettingsConfigDict

# Every section reads the same .env file with exact-case variable names
# and ignores variables that belong to other sections.
SECTION_CONFIG = SettingsConfigDict(
    env_file=".env",
    case_sensitive=True,
    extra="ignore",
)


class IntegrationSettings(BaseSettings):
    """Settings for an external provider: AWS, FCM, Africa's Talking or GC Notify."""

    model_config = SECTION_CONFIG


class InfrastructureSettings(BaseSettings):
    """Settings for the dispatch loop, the notification store and the HTTP server."""

    model_config = SECTION_CONFIG
