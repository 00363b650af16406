"""Shared region and endpoint configuration for AWS clients."""

import threading
from typing import Any, Optional

import structlog

from infrastructure.clients.aws.client import get_boto3_client

logger = structlog.get_logger()


class SessionProvider:
    """Hands out one boto3 client per service, built on first use.

    Args:
        region: AWS region, e.g. ``af-south-1``.
        endpoint_url: Endpoint override for DynamoDB Local or LocalStack.
    """

    def __init__(
        self,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
    ) -> None:
        self.region = region
        self.endpoint_url = endpoint_url
        self._clients: dict[str, Any] = {}
        self._lock = threading.Lock()

    def client(self, service_name: str) -> Any:
        with self._lock:
            if service_name not in self._clients:
                logger.debug(
                    "creating_boto3_client",
                    service_name=service_name,
                    region=self.region,
                    endpoint_url=self.endpoint_url,
                )
                self._clients[service_name] = get_boto3_client(
                    service_name,
                    region_name=self.region,
                    endpoint_url=self.endpoint_url,
                )
            return self._clients[service_name]
