"""AWS integration settings."""

from pydantic import Field

from infrastructure.configuration.base import IntegrationSettings


class AwsSettings(IntegrationSettings):
    """AWS configuration settings.

    Environment Variables:
        AWS_REGION: AWS region for services (default: af-south-1)
        AWS_ENDPOINT_URL: Optional endpoint override (local DynamoDB)
        NOTIFICATIONS_TABLE_NAME: DynamoDB table for notification records
        USERS_TABLE_NAME: DynamoDB table for the member directory

    Example:
        ```python
        from infrastructure.services import get_settings

        settings = get_settings()

        region = settings.aws.AWS_REGION
        table = settings.aws.NOTIFICATIONS_TABLE_NAME
        ```
    """

    AWS_REGION: str = Field(default="af-south-1", alias="AWS_REGION")
    ENDPOINT_URL: str | None = Field(default=None, alias="AWS_ENDPOINT_URL")
    NOTIFICATIONS_TABLE_NAME: str = Field(
        default="notifications", alias="NOTIFICATIONS_TABLE_NAME"
    )
    USERS_TABLE_NAME: str = Field(default="users", alias="USERS_TABLE_NAME")
