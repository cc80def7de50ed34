"""
Services Package - Resilient access to the backend services.

- registry: which services exist and which actions they accept
- circuit_breaker: per-service failure isolation
- client: the ServiceClient every workflow node calls through
- errors: the typed failures the client raises
"""

from relay.services.circuit_breaker import (
    BreakerRegistry,
    BreakerStatus,
    CircuitBreaker,
    CircuitBreakerState,
)
from relay.services.client import ServiceCall, ServiceClient, build_request_envelope
from relay.services.errors import (
    CircuitOpenError,
    ErrorCode,
    RemoteServiceError,
    ServiceError,
    ServiceTimeoutError,
    ServiceUnavailableError,
    ValidationError,
)
from relay.services.registry import (
    ServiceDescriptor,
    ServiceRegistry,
    build_service_registry,
)

__all__ = [
    "BreakerRegistry",
    "BreakerStatus",
    "CircuitBreaker",
    "CircuitBreakerState",
    "ServiceCall",
    "ServiceClient",
    "build_request_envelope",
    "CircuitOpenError",
    "ErrorCode",
    "RemoteServiceError",
    "ServiceError",
    "ServiceTimeoutError",
    "ServiceUnavailableError",
    "ValidationError",
    "ServiceDescriptor",
    "ServiceRegistry",
    "build_service_registry",
]
