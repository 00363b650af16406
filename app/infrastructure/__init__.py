"""Infrastructure modules for the chama notifications backend.

Centralized infrastructure components:
- configuration: Settings management (Settings, DispatchSettings)
- logging: Structured logging (get_module_logger, bind_request_context)
- operations: Operation results and error classification
- resilience: Circuit breakers for delivery providers
- clients: AWS clients (DynamoDB)
- directory: Member directory lookups
- notifications: Notification store, dispatcher, gateways and service
- services: Dependency injection providers (get_settings, NotificationServiceDep)
"""

# Logging
from infrastructure.logging import get_module_logger

# Operations
from infrastructure.operations.result import OperationResult
from infrastructure.operations.status import OperationStatus

__all__ = [
    # Logging
    "get_module_logger",
    # Operations
    "OperationResult",
    "OperationStatus",
]
