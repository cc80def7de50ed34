"""
Circuit Breaker - Per-service failure isolation.

A breaker stops the orchestrator from hammering a backend that is down.
One breaker exists per service name for the lifetime of the registry
that created it, shared by every request.

State Machine:
=============
```
             failures >= threshold
   ┌────────┐ ───────────────────────▶ ┌────────┐
   │ CLOSED │                          │  OPEN  │ ◀──────────┐
   └────────┘ ◀──────────┐             └───┬────┘            │
                         │                 │ cooldown elapsed │ probe fails
                 probe   │                 ▼                  │ (cooldown restarts)
                 succeeds│           ┌───────────┐            │
                         └───────────│ HALF_OPEN │────────────┘
                                     └───────────┘
```

HALF_OPEN admits exactly one probe call; every other call is rejected
until that probe reports back. These four transitions are the only ones
allowed (plus an administrative reset() back to CLOSED).

Every mutation happens under the breaker's lock, so concurrent requests
on different threads or event loops see a consistent state.

Usage:
    breakers = BreakerRegistry(failure_threshold=5, cooldown_ms=60_000)

    breaker = breakers.get("command")
    if breaker.allow_request():
        ...  # dispatch, then breaker.record_success() / record_failure()
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from threading import Lock
from typing import Callable, Dict, List, Optional, Tuple

from relay.monitoring.logger import log_event


logger = logging.getLogger("relay.services.circuit_breaker")


class BreakerStatus(str, Enum):
    """Circuit breaker states."""
    CLOSED = "closed"        # Normal operation
    OPEN = "open"            # Rejecting calls until cooldown elapses
    HALF_OPEN = "half_open"  # One probe call allowed


# (service, from_status, to_status)
StateChangeCallback = Callable[[str, BreakerStatus, BreakerStatus], None]

_ALLOWED_TRANSITIONS = {
    (BreakerStatus.CLOSED, BreakerStatus.OPEN),
    (BreakerStatus.OPEN, BreakerStatus.HALF_OPEN),
    (BreakerStatus.HALF_OPEN, BreakerStatus.CLOSED),
    (BreakerStatus.HALF_OPEN, BreakerStatus.OPEN),
}


@dataclass(frozen=True)
class CircuitBreakerState:
    """Point-in-time view of a breaker."""
    service: str
    status: BreakerStatus
    consecutive_failures: int
    failure_threshold: int
    cooldown_ms: int
    opened_at: Optional[float] = None

    def to_dict(self) -> Dict:
        return {
            "service": self.service,
            "status": self.status.value,
            "consecutive_failures": self.consecutive_failures,
            "failure_threshold": self.failure_threshold,
            "cooldown_ms": self.cooldown_ms,
            "opened_at": self.opened_at,
        }


class CircuitBreaker:
    """
    Circuit breaker for a single service.

    Args:
        service: Service name (for logging and callbacks)
        failure_threshold: Consecutive failures that open the breaker
        cooldown_ms: Time an OPEN breaker waits before allowing a probe
        on_state_change: Called after every transition, outside the lock
        clock: Monotonic clock in seconds (injectable for tests)
    """

    def __init__(
        self,
        service: str,
        failure_threshold: int = 5,
        cooldown_ms: int = 60_000,
        on_state_change: Optional[StateChangeCallback] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        self.service = service
        self.failure_threshold = failure_threshold
        self.cooldown_ms = cooldown_ms
        self._on_state_change = on_state_change
        self._clock = clock
        self._lock = Lock()

        self._status = BreakerStatus.CLOSED
        self._consecutive_failures = 0
        self._opened_at: Optional[float] = None
        self._probe_in_flight = False

    # -------------------------------------------------------------------------
    # STATE
    # -------------------------------------------------------------------------

    @property
    def status(self) -> BreakerStatus:
        with self._lock:
            return self._status

    def snapshot(self) -> CircuitBreakerState:
        with self._lock:
            return CircuitBreakerState(
                service=self.service,
                status=self._status,
                consecutive_failures=self._consecutive_failures,
                failure_threshold=self.failure_threshold,
                cooldown_ms=self.cooldown_ms,
                opened_at=self._opened_at,
            )

    def _cooldown_elapsed(self) -> bool:
        if self._opened_at is None:
            return True
        return (self._clock() - self._opened_at) * 1000 >= self.cooldown_ms

    def _transition(self, to_status: BreakerStatus, changes: List[Tuple[BreakerStatus, BreakerStatus]]) -> None:
        """Apply a transition. Caller holds the lock."""
        from_status = self._status
        if (from_status, to_status) not in _ALLOWED_TRANSITIONS:
            raise RuntimeError(
                f"Illegal breaker transition for {self.service}: {from_status.value} -> {to_status.value}"
            )
        self._status = to_status
        changes.append((from_status, to_status))

    def _notify(self, changes: List[Tuple[BreakerStatus, BreakerStatus]]) -> None:
        for from_status, to_status in changes:
            level = logging.WARNING if to_status == BreakerStatus.OPEN else logging.INFO
            logger.log(level, f"Circuit breaker {self.service}: {from_status.value} -> {to_status.value}")
            log_event(
                "breaker_transition",
                level=level,
                service=self.service,
                from_status=from_status.value,
                to_status=to_status.value,
            )
            if self._on_state_change is None:
                continue
            try:
                self._on_state_change(self.service, from_status, to_status)
            except Exception as e:
                logger.warning(f"Breaker state-change callback failed for {self.service}: {e}")

    # -------------------------------------------------------------------------
    # CALL GATING
    # -------------------------------------------------------------------------

    def allow_request(self) -> bool:
        """
        Decide whether a call may be dispatched now.

        An OPEN breaker whose cooldown has elapsed moves to HALF_OPEN and
        hands the single probe slot to this caller.
        """
        changes: List[Tuple[BreakerStatus, BreakerStatus]] = []
        with self._lock:
            if self._status == BreakerStatus.CLOSED:
                allowed = True
            elif self._status == BreakerStatus.OPEN:
                if self._cooldown_elapsed():
                    self._transition(BreakerStatus.HALF_OPEN, changes)
                    self._probe_in_flight = True
                    allowed = True
                else:
                    allowed = False
            elif self._probe_in_flight:
                allowed = False
            else:
                self._probe_in_flight = True
                allowed = True
        self._notify(changes)
        return allowed

    def record_success(self) -> None:
        """A dispatched call succeeded."""
        changes: List[Tuple[BreakerStatus, BreakerStatus]] = []
        with self._lock:
            if self._status == BreakerStatus.HALF_OPEN:
                self._transition(BreakerStatus.CLOSED, changes)
                self._opened_at = None
                self._probe_in_flight = False
            if self._status == BreakerStatus.CLOSED:
                self._consecutive_failures = 0
            # A late success while OPEN came from a call dispatched before
            # the breaker opened; it says nothing about recovery.
        self._notify(changes)

    def record_failure(self) -> None:
        """A dispatched call failed in a way that counts against the service."""
        changes: List[Tuple[BreakerStatus, BreakerStatus]] = []
        with self._lock:
            if self._status == BreakerStatus.HALF_OPEN:
                self._transition(BreakerStatus.OPEN, changes)
                self._opened_at = self._clock()
                self._probe_in_flight = False
                self._consecutive_failures += 1
            elif self._status == BreakerStatus.CLOSED:
                self._consecutive_failures += 1
                if self._consecutive_failures >= self.failure_threshold:
                    self._transition(BreakerStatus.OPEN, changes)
                    self._opened_at = self._clock()
        self._notify(changes)

    def release_probe(self) -> None:
        """Give the HALF_OPEN probe slot back when the probe ended without an outcome (cancelled or failed client-side)."""
        with self._lock:
            if self._status == BreakerStatus.HALF_OPEN:
                self._probe_in_flight = False

    def reset(self) -> None:
        """Administrative reset to CLOSED (tests, ops endpoints)."""
        changes: List[Tuple[BreakerStatus, BreakerStatus]] = []
        with self._lock:
            if self._status != BreakerStatus.CLOSED:
                changes.append((self._status, BreakerStatus.CLOSED))
            self._status = BreakerStatus.CLOSED
            self._consecutive_failures = 0
            self._opened_at = None
            self._probe_in_flight = False
        self._notify(changes)


# ---------------------------------------------------------------------------
# BREAKER REGISTRY
# ---------------------------------------------------------------------------

class BreakerRegistry:
    """
    One CircuitBreaker per service name.

    Constructed once at startup and passed into the ServiceClient and the
    orchestrator, so tests can build isolated registries.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        cooldown_ms: int = 60_000,
        on_state_change: Optional[StateChangeCallback] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.cooldown_ms = cooldown_ms
        self._on_state_change = on_state_change
        self._clock = clock
        self._breakers: Dict[str, CircuitBreaker] = {}
        self._lock = Lock()

    def get(self, service: str) -> CircuitBreaker:
        """Breaker for a service, created on first use."""
        with self._lock:
            breaker = self._breakers.get(service)
            if breaker is None:
                breaker = CircuitBreaker(
                    service,
                    failure_threshold=self.failure_threshold,
                    cooldown_ms=self.cooldown_ms,
                    on_state_change=self._on_state_change,
                    clock=self._clock,
                )
                self._breakers[service] = breaker
            return breaker

    def __contains__(self, service: str) -> bool:
        with self._lock:
            return service in self._breakers

    def snapshot(self) -> Dict[str, CircuitBreakerState]:
        with self._lock:
            breakers = list(self._breakers.values())
        return {breaker.service: breaker.snapshot() for breaker in breakers}

    def reset(self, service: Optional[str] = None) -> None:
        """Reset one breaker, or all of them."""
        with self._lock:
            if service is None:
                breakers = list(self._breakers.values())
            else:
                breakers = [self._breakers[service]] if service in self._breakers else []
        for breaker in breakers:
            breaker.reset()
