"""
Monitoring Module - Logging and metrics for backend service calls.

This module provides observability for the orchestration layer:
- Structured event logging (relay.events)
- Request totals and latency percentiles per service/action
- Circuit breaker transition counts
- Bounded request history

Usage:
======
    from relay.monitoring import MetricsCollector, log_event

    metrics = MetricsCollector()
    summary = metrics.get_summary()
"""

from relay.monitoring.logger import log_event
from relay.monitoring.metrics import (
    MetricsCollector,
    RequestRecord,
    RequestStatus,
    latency_stats,
    percentile,
)

__all__ = [
    "log_event",
    "MetricsCollector",
    "RequestRecord",
    "RequestStatus",
    "latency_stats",
    "percentile",
]
