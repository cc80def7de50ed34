"""
Service Metrics - Call outcomes, latency and circuit-breaker tracking.

This module tracks every backend service call made by the ServiceClient:
- Request totals (global, per service, per service.action)
- Latency windows with percentile stats (p50/p95/p99), for dispatched calls only
- Errors by code and by service
- Circuit breaker transitions (opens, closes, half-opens)
- A bounded history of RequestRecords for debugging

Design Constraints:
==================
- Recording happens on the request path, so it must never raise and
  never block for long. All mutation happens under one short lock and
  any internal failure is logged and swallowed.
- History and latency windows are deques with maxlen, so evicting the
  oldest entry is O(1).

Usage:
    from relay.monitoring.metrics import MetricsCollector, RequestRecord

    metrics = MetricsCollector(history_size=1000)
    metrics.record(RequestRecord(
        request_id="req-1",
        trace_id="trace-1",
        service="command",
        action="command.execute",
        status=RequestStatus.OK,
        elapsed_ms=120.5,
    ))

    summary = metrics.get_summary()
"""

import logging
import math
from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from threading import Lock
from typing import Any, Deque, Dict, Iterable, List, Optional


logger = logging.getLogger("relay.monitoring.metrics")


class RequestStatus(str, Enum):
    """Outcome of a single service call."""
    OK = "ok"
    ERROR = "error"


# ---------------------------------------------------------------------------
# METRICS DATA CLASSES
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RequestRecord:
    """One service call outcome. Read-only once written."""
    request_id: str
    trace_id: str
    service: str
    action: str
    status: RequestStatus
    elapsed_ms: float
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    dispatched: bool = True
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_success(self) -> bool:
        return self.status == RequestStatus.OK

    def to_dict(self) -> Dict[str, Any]:
        error = None
        if self.error_code or self.error_message:
            error = {"code": self.error_code, "message": self.error_message}
        return {
            "timestamp": self.timestamp.isoformat(),
            "request_id": self.request_id,
            "trace_id": self.trace_id,
            "service": self.service,
            "action": self.action,
            "status": self.status.value,
            "elapsed_ms": round(self.elapsed_ms, 2),
            "error": error,
            "user_id": self.user_id,
            "session_id": self.session_id,
            "dispatched": self.dispatched,
        }


@dataclass
class RequestCounts:
    """Running totals for one series."""
    total: int = 0
    success: int = 0
    error: int = 0

    def add(self, success: bool) -> None:
        self.total += 1
        if success:
            self.success += 1
        else:
            self.error += 1

    def to_dict(self) -> Dict[str, int]:
        return {"total": self.total, "success": self.success, "error": self.error}


@dataclass
class BreakerCounts:
    """Circuit breaker transitions for one series."""
    opens: int = 0
    closes: int = 0
    half_opens: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {"opens": self.opens, "closes": self.closes, "half_opens": self.half_opens}


def percentile(values: Iterable[float], p: float) -> float:
    """
    Nearest-rank percentile: sorted[ceil(p/100 * n) - 1].

    Returns 0.0 for an empty series.
    """
    ordered = sorted(values)
    if not ordered:
        return 0.0
    index = max(0, math.ceil(p / 100 * len(ordered)) - 1)
    return ordered[min(index, len(ordered) - 1)]


def latency_stats(values: Iterable[float]) -> Dict[str, float]:
    """count/min/max/avg/p50/p95/p99 for a latency series."""
    samples = list(values)
    if not samples:
        return {"count": 0, "min": 0.0, "max": 0.0, "avg": 0.0, "p50": 0.0, "p95": 0.0, "p99": 0.0}
    return {
        "count": len(samples),
        "min": round(min(samples), 2),
        "max": round(max(samples), 2),
        "avg": round(sum(samples) / len(samples), 2),
        "p50": round(percentile(samples, 50), 2),
        "p95": round(percentile(samples, 95), 2),
        "p99": round(percentile(samples, 99), 2),
    }


# ---------------------------------------------------------------------------
# METRICS COLLECTOR
# ---------------------------------------------------------------------------

class MetricsCollector:
    """
    In-memory metrics for backend service calls.

    One collector is shared by the ServiceClient and the breaker registry
    (for transition counts). For production you'd want to export these to
    a metrics backend; the summary shape is stable for that purpose.
    """

    def __init__(self, history_size: int = 1000, latency_window: int = 1000):
        """
        Initialize the collector.

        Args:
            history_size: Maximum number of RequestRecords kept (oldest evicted)
            latency_window: Maximum latency samples kept per series
        """
        self._history_size = history_size
        self._latency_window = latency_window
        self._lock = Lock()
        self._init_state()

    def _init_state(self) -> None:
        self._history: Deque[RequestRecord] = deque(maxlen=self._history_size)
        self._requests = RequestCounts()
        self._requests_by_service: Dict[str, RequestCounts] = defaultdict(RequestCounts)
        self._requests_by_action: Dict[str, RequestCounts] = defaultdict(RequestCounts)
        self._latency: Deque[float] = deque(maxlen=self._latency_window)
        self._latency_by_service: Dict[str, Deque[float]] = defaultdict(self._new_window)
        self._latency_by_action: Dict[str, Deque[float]] = defaultdict(self._new_window)
        self._errors_by_code: Dict[str, int] = defaultdict(int)
        self._errors_by_service: Dict[str, int] = defaultdict(int)
        self._breaker = BreakerCounts()
        self._breaker_by_service: Dict[str, BreakerCounts] = defaultdict(BreakerCounts)

    def _new_window(self) -> Deque[float]:
        return deque(maxlen=self._latency_window)

    @staticmethod
    def _action_key(service: str, action: str) -> str:
        return f"{service}.{action}"

    # -------------------------------------------------------------------------
    # RECORDING
    # -------------------------------------------------------------------------

    def record(self, record: RequestRecord) -> None:
        """Record one service call outcome. Never raises."""
        try:
            success = record.is_success
            action_key = self._action_key(record.service, record.action)
            with self._lock:
                self._history.append(record)

                self._requests.add(success)
                self._requests_by_service[record.service].add(success)
                self._requests_by_action[action_key].add(success)

                # Calls rejected before dispatch carry no latency
                if record.dispatched:
                    self._latency.append(record.elapsed_ms)
                    self._latency_by_service[record.service].append(record.elapsed_ms)
                    self._latency_by_action[action_key].append(record.elapsed_ms)

                if not success:
                    self._errors_by_code[record.error_code or "UNKNOWN"] += 1
                    self._errors_by_service[record.service] += 1
        except Exception as e:
            logger.warning(f"Failed to record metrics for {record!r}: {e}")

    def record_breaker_transition(self, service: str, from_status: Any, to_status: Any) -> None:
        """Count a circuit breaker transition. Never raises."""
        try:
            target = getattr(to_status, "value", to_status)
            with self._lock:
                series = self._breaker_by_service[service]
                if target == "open":
                    self._breaker.opens += 1
                    series.opens += 1
                elif target == "closed":
                    self._breaker.closes += 1
                    series.closes += 1
                elif target == "half_open":
                    self._breaker.half_opens += 1
                    series.half_opens += 1
        except Exception as e:
            logger.warning(f"Failed to record breaker transition for {service}: {e}")

    # -------------------------------------------------------------------------
    # READING
    # -------------------------------------------------------------------------

    def get_summary(self) -> Dict[str, Any]:
        """High-level health numbers for dashboards and the /metrics endpoint."""
        with self._lock:
            total = self._requests.total
            latencies = list(self._latency)
            success_rate = (self._requests.success / total * 100) if total else 0.0
            error_rate = (self._requests.error / total * 100) if total else 0.0
            return {
                "total_requests": total,
                "success_rate": round(success_rate, 2),
                "error_rate": round(error_rate, 2),
                "avg_latency_ms": round(sum(latencies) / len(latencies), 2) if latencies else 0.0,
                "p95_latency_ms": round(percentile(latencies, 95), 2),
                "total_errors": self._requests.error,
                "circuit_breaker_opens": self._breaker.opens,
            }

    def get_metrics(self) -> Dict[str, Any]:
        """Full breakdown: requests, errors and breaker transitions per series."""
        with self._lock:
            return {
                "requests": {
                    **self._requests.to_dict(),
                    "by_service": {k: v.to_dict() for k, v in self._requests_by_service.items()},
                    "by_action": {k: v.to_dict() for k, v in self._requests_by_action.items()},
                },
                "errors": {
                    "by_code": dict(self._errors_by_code),
                    "by_service": dict(self._errors_by_service),
                },
                "circuit_breaker": {
                    **self._breaker.to_dict(),
                    "by_service": {k: v.to_dict() for k, v in self._breaker_by_service.items()},
                },
            }

    def get_latency_stats(self, service: Optional[str] = None, action: Optional[str] = None) -> Dict[str, float]:
        """
        Latency stats for the whole client, a service, or a service action.

        Args:
            service: Restrict to one service
            action: Restrict to one action (requires service)
        """
        with self._lock:
            if service and action:
                samples = list(self._latency_by_action.get(self._action_key(service, action), ()))
            elif service:
                samples = list(self._latency_by_service.get(service, ()))
            else:
                samples = list(self._latency)
        return latency_stats(samples)

    def get_service_metrics(self, service: str) -> Dict[str, Any]:
        """Everything known about one service."""
        with self._lock:
            counts = self._requests_by_service.get(service, RequestCounts())
            breaker = self._breaker_by_service.get(service, BreakerCounts())
            errors = self._errors_by_service.get(service, 0)
            samples = list(self._latency_by_service.get(service, ()))
        return {
            "service": service,
            "requests": counts.to_dict(),
            "latency": latency_stats(samples),
            "errors": errors,
            "circuit_breaker": breaker.to_dict(),
        }

    def get_history(self, limit: Optional[int] = None) -> List[RequestRecord]:
        """Most recent records first."""
        with self._lock:
            records = list(self._history)
        records.reverse()
        if limit is not None:
            return records[:max(limit, 0)]
        return records

    def log_summary(self) -> None:
        """Write the current summary to the log (used by ops endpoints)."""
        summary = self.get_summary()
        logger.info(
            f"Service metrics: {summary['total_requests']} requests, "
            f"{summary['success_rate']}% success, avg {summary['avg_latency_ms']}ms, "
            f"p95 {summary['p95_latency_ms']}ms, {summary['circuit_breaker_opens']} breaker opens"
        )

    def reset(self) -> None:
        """Reset all metrics (useful for testing)."""
        with self._lock:
            self._init_state()
