"""Resilience primitives for delivery providers."""

from infrastructure.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerOpenError,
    CircuitState,
    get_all_circuit_breaker_stats,
    get_open_circuit_breakers,
    register_circuit_breaker,
)

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerOpenError",
    "CircuitState",
    "get_all_circuit_breaker_stats",
    "get_open_circuit_breakers",
    "register_circuit_breaker",
]
