"""HTTP server settings."""

from pydantic import Field

from infrastructure.configuration.base import InfrastructureSettings


class ServerSettings(InfrastructureSettings):
    """Settings for the FastAPI application.

    Environment Variables:
        ALLOWED_ORIGINS: Comma separated CORS origins (member web app, admin)
        RATE_LIMIT_DEFAULT: slowapi limit for notification routes
            (default: 60/minute)
    """

    ALLOWED_ORIGINS: str = Field(
        default="http://localhost:3000", alias="ALLOWED_ORIGINS"
    )
    RATE_LIMIT_DEFAULT: str = Field(default="60/minute", alias="RATE_LIMIT_DEFAULT")

    @property
    def allowed_origins(self) -> list[str]:
        return [
            origin.strip()
            for origin in self.ALLOWED_ORIGINS.split(",")
            if origin.strip()
        ]
