"""
Service Client - Resilient calls to the backend services.

Every workflow node talks to the backend services through this client.
It owns the resilience policy so nodes don't have to:

```
call(service, action, payload)
   │
   ├─ 1. validate service + action ──────────▶ ValidationError (no network)
   ├─ 2. circuit breaker allows? ────────────▶ CircuitOpenError (no network)
   ├─ 3. POST {base_url}/{action} with timeout
   │       connect failure ──────────────────▶ ServiceUnavailableError
   │       timeout (request cancelled) ──────▶ ServiceTimeoutError
   │       HTTP >= 400 / error envelope ─────▶ RemoteServiceError
   ├─ 4. update breaker (success / failure)
   ├─ 5. record RequestRecord in MetricsCollector
   └─ 6. retry with jittered backoff (idempotent actions only, opt-in)
```

Wire Format (mcp.v1):
====================
Request body:
    {"version": "mcp.v1", "service": ..., "action": ..., "requestId": ...,
     "context": {...}, "payload": {...}, "meta": {"traceId": ...}, "timestamp": ...}

Response body:
    {"status": "ok", "data": {...}}  or  {"status": "error", "error": {"code", "message", "retryable"}}

The client returns the unwrapped `data` dict.

Usage:
    client = ServiceClient(registry, breakers, metrics)
    result = await client.call(
        "command", "command.execute",
        {"command": "what's my ip"},
        timeout_ms=60_000,
    )
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional
from uuid import uuid4

import httpx

from relay.core.config import Settings, settings as default_settings
from relay.monitoring.logger import log_event
from relay.monitoring.metrics import MetricsCollector, RequestRecord, RequestStatus
from relay.services.circuit_breaker import BreakerRegistry, CircuitBreaker
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
    CAPABILITIES_ACTION,
    HEALTH_ACTION,
    ServiceDescriptor,
    ServiceRegistry,
)


logger = logging.getLogger("relay.services.client")

PROTOCOL_VERSION = "mcp.v1"
HEALTH_TIMEOUT_MS = 5_000

_STATUS_CODES = {
    400: ErrorCode.INVALID_REQUEST,
    401: ErrorCode.UNAUTHORIZED,
    403: ErrorCode.FORBIDDEN,
    404: ErrorCode.NOT_FOUND,
    429: ErrorCode.RATE_LIMIT_EXCEEDED,
    503: ErrorCode.SERVICE_UNAVAILABLE,
}


@dataclass
class ServiceCall:
    """One entry of a batch() request."""
    service: str
    action: str
    payload: Dict[str, Any] = field(default_factory=dict)
    timeout_ms: Optional[int] = None


def new_request_id() -> str:
    return f"req_{uuid4().hex}"


def new_trace_id() -> str:
    return f"trace_{uuid4().hex}"


def build_request_envelope(
    service: str,
    action: str,
    payload: Dict[str, Any],
    request_id: str,
    trace_id: str,
    context: Optional[Dict[str, Any]] = None,
    config: Optional[Settings] = None,
) -> Dict[str, Any]:
    """Wrap a payload in the mcp.v1 request envelope."""
    config = config or default_settings
    context = context or {}
    return {
        "version": PROTOCOL_VERSION,
        "service": service,
        "action": action,
        "requestId": request_id,
        "context": {
            "userId": context.get("userId"),
            "sessionId": context.get("sessionId"),
            "locale": context.get("locale", config.DEFAULT_LOCALE),
            "timezone": context.get("timezone", config.DEFAULT_TIMEZONE),
        },
        "payload": payload,
        "meta": {
            "client": config.CLIENT_ID,
            "appVersion": config.CLIENT_VERSION,
            "traceId": trace_id,
        },
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def counts_against_breaker(error: ServiceError) -> bool:
    """Transport failures, timeouts and retryable remote errors mean the service is unhealthy."""
    if isinstance(error, (CircuitOpenError, ValidationError)):
        return False
    if isinstance(error, (ServiceUnavailableError, ServiceTimeoutError)):
        return True
    return error.retryable


class ServiceClient:
    """
    Async client for the backend services.

    Args:
        registry: Declared services and actions
        breakers: Per-service circuit breakers (shared across requests)
        metrics: Receives one RequestRecord per attempt
        http_client: Optional pre-built httpx.AsyncClient (tests inject one
                     with httpx.MockTransport). When omitted the client
                     creates and owns one.
        config: Settings for timeouts, retry policy and the API key
        sleep: Awaitable sleep used between retries (injectable for tests)
        rng: Random source in [0, 1) for backoff jitter
    """

    def __init__(
        self,
        registry: ServiceRegistry,
        breakers: BreakerRegistry,
        metrics: MetricsCollector,
        http_client: Optional[httpx.AsyncClient] = None,
        config: Optional[Settings] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ):
        self.registry = registry
        self.breakers = breakers
        self.metrics = metrics
        self.config = config or default_settings
        self._http_client: Optional[httpx.AsyncClient] = http_client
        self._owns_http_client = http_client is None
        self._sleep = sleep
        self._rng = rng

    # -------------------------------------------------------------------------
    # HTTP CLIENT MANAGEMENT
    # -------------------------------------------------------------------------

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient()
        return self._http_client

    def _get_headers(self, request_id: str, trace_id: str) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "X-Request-ID": request_id,
            "X-Trace-ID": trace_id,
        }
        if self.config.SERVICE_API_KEY:
            headers["Authorization"] = f"Bearer {self.config.SERVICE_API_KEY}"
        return headers

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._http_client is not None and self._owns_http_client:
            await self._http_client.aclose()
            self._http_client = None

    # -------------------------------------------------------------------------
    # PUBLIC API
    # -------------------------------------------------------------------------

    async def call(
        self,
        service: str,
        action: str,
        payload: Optional[Dict[str, Any]] = None,
        *,
        timeout_ms: Optional[int] = None,
        retry: bool = False,
        request_id: Optional[str] = None,
        trace_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Call an action on a backend service.

        Args:
            service: Registered service name (e.g., "command")
            action: Declared action (e.g., "command.execute")
            payload: Action-specific payload
            timeout_ms: Per-call timeout; defaults to the service's, then the global default
            retry: Retry retryable failures. Only honoured for idempotent actions.
            request_id: Idempotency key, reused on every retry attempt
            trace_id: Distributed tracing id
            context: Caller context ({"userId", "sessionId", ...}) for the envelope and metrics

        Returns:
            The response payload dict

        Raises:
            ValidationError: Unknown service/action (nothing was sent)
            CircuitOpenError: Breaker rejected the call (nothing was sent)
            ServiceUnavailableError: Service unreachable
            ServiceTimeoutError: Timeout elapsed; the request was cancelled
            RemoteServiceError: Service reported an error
        """
        request_id = request_id or new_request_id()
        trace_id = trace_id or new_trace_id()
        context = context or {}
        payload = payload or {}

        descriptor = self._validate(service, action, request_id, trace_id, context)
        timeout_ms = timeout_ms or descriptor.timeout_ms or self.config.SERVICE_DEFAULT_TIMEOUT_MS

        attempts = 1
        if retry:
            if descriptor.is_idempotent(action):
                attempts = max(1, self.config.RETRY_MAX_ATTEMPTS)
            else:
                logger.warning(
                    f"[{request_id}] Retry requested for side-effecting action "
                    f"{service}/{action}; calling once"
                )

        envelope = build_request_envelope(
            service, action, payload, request_id, trace_id, context, self.config
        )

        for attempt in range(attempts):
            try:
                return await self._attempt(descriptor, action, envelope, timeout_ms, context)
            except ServiceError as e:
                is_last = attempt + 1 >= attempts
                if isinstance(e, CircuitOpenError) or not e.retryable or is_last:
                    raise
                delay_ms = self.compute_retry_delay(attempt)
                logger.warning(
                    f"[{request_id}] {service}/{action} failed ({e.code}), "
                    f"retrying in {delay_ms}ms (attempt {attempt + 2}/{attempts})"
                )
                await self._sleep(delay_ms / 1000)

        # range(attempts) always returns or raises above
        raise RuntimeError("unreachable")

    async def check_health(self, service: str) -> Dict[str, Any]:
        """Health of one service. Never raises."""
        try:
            data = await self.call(service, HEALTH_ACTION, {}, timeout_ms=HEALTH_TIMEOUT_MS)
            return {"service": service, "healthy": True, **data}
        except ServiceError as e:
            return {"service": service, "healthy": False, "error": e.message, "code": e.code}

    async def get_capabilities(self, service: str) -> Dict[str, Any]:
        """Capabilities advertised by a service."""
        return await self.call(service, CAPABILITIES_ACTION, {}, retry=True)

    async def batch(self, calls: List[ServiceCall]) -> List[Dict[str, Any]]:
        """
        Run several calls concurrently and report each outcome.

        Returns:
            One dict per call, in order:
            {"status": "fulfilled", "value": {...}} or {"status": "rejected", "reason": ServiceError}
        """
        results = await asyncio.gather(
            *(self.call(c.service, c.action, c.payload, timeout_ms=c.timeout_ms) for c in calls),
            return_exceptions=True,
        )
        outcomes = []
        for result in results:
            if isinstance(result, BaseException):
                outcomes.append({"status": "rejected", "reason": result})
            else:
                outcomes.append({"status": "fulfilled", "value": result})
        return outcomes

    def compute_retry_delay(self, attempt: int) -> int:
        """
        Exponential backoff with +/-25% jitter, in milliseconds.

        delay = min(initial * multiplier**attempt, max) * (1 +/- 0.25)
        """
        base = self.config.RETRY_INITIAL_DELAY_MS * (self.config.RETRY_BACKOFF_MULTIPLIER ** attempt)
        base = min(base, self.config.RETRY_MAX_DELAY_MS)
        jitter = base * 0.25 * (self._rng() * 2 - 1)
        return int(max(0, base + jitter))

    # -------------------------------------------------------------------------
    # INTERNALS
    # -------------------------------------------------------------------------

    def _validate(
        self,
        service: str,
        action: str,
        request_id: str,
        trace_id: str,
        context: Dict[str, Any],
    ) -> ServiceDescriptor:
        descriptor = self.registry.get(service)
        error = None
        if descriptor is None:
            error = ValidationError(f"Unknown service: {service}", service=service, action=action)
        elif not descriptor.enabled:
            error = ValidationError(f"Service is disabled: {service}", service=service, action=action)
        elif not descriptor.allows(action):
            available = ", ".join(sorted(descriptor.allowed_actions))
            error = ValidationError(
                f"Action not supported by {service}: {action}. Available: {available}",
                service=service,
                action=action,
            )
        if error is not None:
            logger.error(f"[{request_id}] Invalid service call (programming error): {error.message}")
            self._record(service, action, request_id, trace_id, context, 0.0, error, dispatched=False)
            raise error
        return descriptor

    async def _attempt(
        self,
        descriptor: ServiceDescriptor,
        action: str,
        envelope: Dict[str, Any],
        timeout_ms: int,
        context: Dict[str, Any],
    ) -> Dict[str, Any]:
        """One gated, timed, recorded dispatch."""
        service = descriptor.name
        request_id = envelope["requestId"]
        trace_id = envelope["meta"]["traceId"]
        breaker = self.breakers.get(service)

        if not breaker.allow_request():
            error = CircuitOpenError(
                f"Circuit breaker is open for service: {service}",
                service=service,
                action=action,
            )
            logger.warning(f"[{request_id}] {error.message}; rejecting {action} without dispatch")
            self._record(service, action, request_id, trace_id, context, 0.0, error, dispatched=False)
            raise error

        start_time = time.perf_counter()
        try:
            data = await asyncio.wait_for(
                self._dispatch(descriptor, action, envelope, timeout_ms),
                timeout=timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            error = ServiceTimeoutError(
                f"{service}/{action} timed out after {timeout_ms}ms",
                service=service,
                action=action,
                timeout_ms=timeout_ms,
            )
            self._finish(breaker, service, action, request_id, trace_id, context, start_time, error)
            raise error
        except ServiceError as e:
            self._finish(breaker, service, action, request_id, trace_id, context, start_time, e)
            raise
        except asyncio.CancelledError:
            breaker.release_probe()
            raise
        except Exception as e:
            # Client-side failure: no verdict on the service, but the probe slot
            # must be freed and the attempt still recorded
            breaker.release_probe()
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            error = ServiceError(
                f"Unexpected error calling {service}/{action}: {type(e).__name__}: {e}",
                service=service,
                action=action,
                code=ErrorCode.INTERNAL_ERROR,
            )
            logger.error(f"[{request_id}] {error.message}", exc_info=True)
            self._record(service, action, request_id, trace_id, context, elapsed_ms, error)
            raise

        self._finish(breaker, service, action, request_id, trace_id, context, start_time, None)
        return data

    async def _dispatch(
        self,
        descriptor: ServiceDescriptor,
        action: str,
        envelope: Dict[str, Any],
        timeout_ms: int,
    ) -> Dict[str, Any]:
        """POST the envelope and map the response or transport failure."""
        service = descriptor.name
        client = self._get_http_client()
        try:
            response = await client.post(
                descriptor.url_for(action),
                json=envelope,
                headers=self._get_headers(envelope["requestId"], envelope["meta"]["traceId"]),
                timeout=timeout_ms / 1000,
            )
        except httpx.TimeoutException as e:
            raise ServiceTimeoutError(
                f"{service}/{action} timed out: {e}",
                service=service,
                action=action,
                timeout_ms=timeout_ms,
            ) from e
        except httpx.ConnectError as e:
            raise ServiceUnavailableError(
                f"Connection refused by {service}: {e}",
                service=service,
                action=action,
                connection_refused=True,
            ) from e
        except httpx.RequestError as e:
            raise ServiceUnavailableError(
                f"Network error calling {service}: {e}",
                service=service,
                action=action,
            ) from e

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.status_code >= 400:
            error_info: Dict[str, Any] = {}
            message = None
            if isinstance(body, dict):
                if isinstance(body.get("error"), dict):
                    error_info = body["error"]
                message = error_info.get("message") or body.get("message")
            raise RemoteServiceError(
                message or f"HTTP {response.status_code}: {response.text[:200]}",
                service=service,
                action=action,
                code=error_info.get("code") or _STATUS_CODES.get(
                    response.status_code,
                    ErrorCode.INTERNAL_ERROR if response.status_code >= 500 else ErrorCode.HTTP_ERROR,
                ),
                retryable=response.status_code >= 500,
                status_code=response.status_code,
                details={"body": body},
            )

        if not isinstance(body, dict):
            raise RemoteServiceError(
                f"{service}/{action} returned a non-JSON-object body",
                service=service,
                action=action,
                code=ErrorCode.INTERNAL_ERROR,
                status_code=response.status_code,
            )

        if body.get("status") == "error":
            error_info = body.get("error") or {}
            raise RemoteServiceError(
                error_info.get("message") or f"{service}/{action} failed",
                service=service,
                action=action,
                code=error_info.get("code") or ErrorCode.INTERNAL_ERROR,
                retryable=bool(error_info.get("retryable", False)),
                status_code=response.status_code,
                details=error_info.get("details") or {},
            )

        data = body.get("data")
        if isinstance(data, dict):
            return data
        return body

    def _finish(
        self,
        breaker: CircuitBreaker,
        service: str,
        action: str,
        request_id: str,
        trace_id: str,
        context: Dict[str, Any],
        start_time: float,
        error: Optional[ServiceError],
    ) -> None:
        elapsed_ms = (time.perf_counter() - start_time) * 1000
        if error is not None and counts_against_breaker(error):
            breaker.record_failure()
        else:
            breaker.record_success()

        if error is None:
            logger.debug(f"[{request_id}] {service}/{action} ok in {elapsed_ms:.0f}ms")
        else:
            logger.warning(f"[{request_id}] {service}/{action} failed in {elapsed_ms:.0f}ms: {error.code} {error.message}")
        self._record(service, action, request_id, trace_id, context, elapsed_ms, error)

    def _record(
        self,
        service: str,
        action: str,
        request_id: str,
        trace_id: str,
        context: Dict[str, Any],
        elapsed_ms: float,
        error: Optional[ServiceError],
        dispatched: bool = True,
    ) -> None:
        self.metrics.record(RequestRecord(
            request_id=request_id,
            trace_id=trace_id,
            service=service,
            action=action,
            status=RequestStatus.OK if error is None else RequestStatus.ERROR,
            elapsed_ms=elapsed_ms,
            error_code=error.code if error else None,
            error_message=error.message if error else None,
            user_id=context.get("userId"),
            session_id=context.get("sessionId"),
            dispatched=dispatched,
        ))
        log_event(
            "service_call",
            level=logging.DEBUG,
            request_id=request_id,
            trace_id=trace_id,
            service=service,
            action=action,
            status="ok" if error is None else "error",
            elapsed_ms=round(elapsed_ms, 2),
            error=error.to_dict() if error else None,
        )
