"""
Service call errors.

Every failure raised by the ServiceClient is a ServiceError carrying a
machine-readable code and a retryable flag, so nodes can branch on the
exception type (unavailable vs. timeout vs. remote failure) instead of
sniffing error messages.

Note that a service answering `{"success": false}` is NOT an exception:
that is an execution failure reported as data and handled by the
calling node.
"""

from typing import Any, Dict, Optional


# ---------------------------------------------------------------------------
# ERROR CODES
# ---------------------------------------------------------------------------

class ErrorCode:
    """Error codes shared with the backend services (mcp.v1 envelope)."""
    INVALID_REQUEST = "INVALID_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    CIRCUIT_OPEN = "CIRCUIT_OPEN"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    TIMEOUT = "TIMEOUT"
    HTTP_ERROR = "HTTP_ERROR"


# ---------------------------------------------------------------------------
# CUSTOM EXCEPTIONS
# ---------------------------------------------------------------------------

class ServiceError(Exception):
    """Base exception for all service call failures."""

    code = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        *,
        service: Optional[str] = None,
        action: Optional[str] = None,
        code: Optional[str] = None,
        retryable: bool = False,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.service = service
        self.action = action
        if code:
            self.code = code
        self.retryable = retryable
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
            "service": self.service,
            "action": self.action,
        }


class ValidationError(ServiceError):
    """
    Raised before any network attempt when the call itself is invalid
    (unknown service, disabled service, undeclared action).

    Always a programming error in the caller.
    """
    code = ErrorCode.INVALID_REQUEST


class ServiceUnavailableError(ServiceError):
    """Raised when a service cannot be reached."""

    code = ErrorCode.SERVICE_UNAVAILABLE

    def __init__(self, message: str, *, connection_refused: bool = False, **kwargs: Any):
        kwargs.setdefault("retryable", True)
        super().__init__(message, **kwargs)
        self.connection_refused = connection_refused


class CircuitOpenError(ServiceUnavailableError):
    """Raised without dispatching when the service's circuit breaker rejects the call."""

    code = ErrorCode.CIRCUIT_OPEN

    def __init__(self, message: str, **kwargs: Any):
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)


class ServiceTimeoutError(ServiceError):
    """Raised when a call exceeds its timeout. The in-flight request is cancelled."""

    code = ErrorCode.TIMEOUT

    def __init__(self, message: str, *, timeout_ms: Optional[int] = None, **kwargs: Any):
        kwargs.setdefault("retryable", True)
        super().__init__(message, **kwargs)
        self.timeout_ms = timeout_ms


class RemoteServiceError(ServiceError):
    """Raised when the service answered with an HTTP error or an error envelope."""

    code = ErrorCode.HTTP_ERROR

    def __init__(self, message: str, *, status_code: Optional[int] = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.status_code = status_code
