"""Notification dispatch infrastructure settings."""

from pydantic import Field, field_validator

from infrastructure.configuration.base import InfrastructureSettings


class DispatchSettings(InfrastructureSettings):
    """Dispatch loop and notification store configuration.

    Controls how the scheduler polls for due notifications, how many
    gateway calls run concurrently and which store backend is used.

    Environment Variables:
        DISPATCH_ENABLED: Run the periodic dispatch job (default: True)
        DISPATCH_STORE_BACKEND: Store backend - 'memory' or 'dynamodb'
        DISPATCH_INTERVAL_SECONDS: Seconds between dispatch cycles (default: 30)
        DISPATCH_BATCH_SIZE: Maximum records claimed per cycle (default: 50)
        DISPATCH_MAX_WORKERS: Gateway worker pool size (default: 8)
        DISPATCH_CLAIM_LEASE_SECONDS: Claim duration (default: 300s = 5min)
        DISPATCH_MAX_RETRIES: Failed attempts allowed per channel (default: 3)
        DISPATCH_RELEASE_BACKOFF_SECONDS: Wait before retrying a channel whose
            provider was unavailable (default: 300)
        DISPATCH_SWEEP_INTERVAL_MINUTES: Expiry sweep interval (default: 60)
        DISPATCH_SWEEP_PAGE_SIZE: Records scanned per sweep page (default: 100)
        DISPATCH_CIRCUIT_FAILURE_THRESHOLD: Failures before a gateway circuit opens
        DISPATCH_CIRCUIT_TIMEOUT_SECONDS: Seconds an open circuit waits before probing

    Example:
        ```python
        from infrastructure.services import get_settings

        settings = get_settings()

        if settings.dispatch.enabled:
            interval = settings.dispatch.interval_seconds
        ```
    """

    enabled: bool = Field(
        default=True,
        alias="DISPATCH_ENABLED",
        description="Run the periodic dispatch job",
    )
    store_backend: str = Field(
        default="memory",
        alias="DISPATCH_STORE_BACKEND",
        description="Notification store backend: 'memory' or 'dynamodb'",
    )
    interval_seconds: int = Field(
        default=30,
        alias="DISPATCH_INTERVAL_SECONDS",
        description="Seconds between dispatch cycles",
    )
    batch_size: int = Field(
        default=50,
        alias="DISPATCH_BATCH_SIZE",
        description="Maximum number of due records fetched per cycle",
    )
    max_workers: int = Field(
        default=8,
        alias="DISPATCH_MAX_WORKERS",
        description="Size of the gateway worker pool",
    )
    claim_lease_seconds: int = Field(
        default=300,
        alias="DISPATCH_CLAIM_LEASE_SECONDS",
        description="Duration to hold a claim on a channel (seconds, 5 minutes)",
    )
    max_retries: int = Field(
        default=3,
        alias="DISPATCH_MAX_RETRIES",
        description="Failed attempts allowed per channel before it is terminal",
    )
    release_backoff_seconds: int = Field(
        default=300,
        alias="DISPATCH_RELEASE_BACKOFF_SECONDS",
        description="Seconds a channel released as unavailable waits before it is due again",
    )
    sweep_interval_minutes: int = Field(
        default=60,
        alias="DISPATCH_SWEEP_INTERVAL_MINUTES",
        description="Minutes between expiry sweeps",
    )
    sweep_page_size: int = Field(
        default=100,
        alias="DISPATCH_SWEEP_PAGE_SIZE",
        description="Records scanned per page during the expiry sweep",
    )
    circuit_failure_threshold: int = Field(
        default=5,
        alias="DISPATCH_CIRCUIT_FAILURE_THRESHOLD",
        description="Consecutive gateway failures before the circuit opens",
    )
    circuit_timeout_seconds: int = Field(
        default=60,
        alias="DISPATCH_CIRCUIT_TIMEOUT_SECONDS",
        description="Seconds an open circuit waits before a trial request",
    )

    @field_validator("store_backend")
    @classmethod
    def validate_store_backend(cls, v: str) -> str:
        """Normalise and validate the store backend name."""
        backend = v.strip().lower()
        if backend not in ("memory", "dynamodb"):
            raise ValueError(f"Unsupported store backend: {v}")
        return backend

    @field_validator("max_retries")
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        """Retries are capped at three attempts per channel."""
        if v < 1 or v > 3:
            raise ValueError("max_retries must be between 1 and 3")
        return v
