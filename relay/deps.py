"""
Dependencies module - process-wide objects handed to route handlers.

The metrics collector, breaker registry and orchestrator are created
once, lazily, and shared by every request. Tests replace them with
app.dependency_overrides[get_orchestrator] = lambda: test_orchestrator.
"""

from typing import Optional

from relay.core.config import settings
from relay.monitoring.metrics import MetricsCollector
from relay.workflow.orchestrator import WorkflowOrchestrator, build_breaker_registry


_metrics: Optional[MetricsCollector] = None
_orchestrator: Optional[WorkflowOrchestrator] = None


def get_metrics() -> MetricsCollector:
    """Shared MetricsCollector."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector(
            history_size=settings.METRICS_HISTORY_SIZE,
            latency_window=settings.METRICS_LATENCY_WINDOW,
        )
    return _metrics


def get_orchestrator() -> WorkflowOrchestrator:
    """Shared WorkflowOrchestrator (one breaker registry per process)."""
    global _orchestrator
    if _orchestrator is None:
        metrics = get_metrics()
        _orchestrator = WorkflowOrchestrator.create(
            metrics=metrics,
            breakers=build_breaker_registry(metrics, settings),
            config=settings,
        )
    return _orchestrator


async def shutdown() -> None:
    """Close the orchestrator's HTTP client."""
    global _orchestrator
    if _orchestrator is not None:
        await _orchestrator.aclose()
        _orchestrator = None
