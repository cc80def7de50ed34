"""
Workflow Router - HTTP surface of the orchestrator.

Endpoints:
=========
    POST /workflow/run               run one utterance through the graph
    GET  /workflow/metrics           call summary, latency and per-service totals
    GET  /workflow/metrics/history   most recent request records
    GET  /workflow/breakers          circuit breaker state per service

Failures inside the workflow are part of the response body (error,
success=false) and still return 200. Malformed requests get FastAPI's 422.
"""

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Query

from relay.deps import get_metrics, get_orchestrator
from relay.monitoring.metrics import MetricsCollector
from relay.workflow.orchestrator import WorkflowOrchestrator
from relay.workflow.schemas import WorkflowRequest, WorkflowResponse


# ---------------------------------------------------------------------------
# LOGGER SETUP
# ---------------------------------------------------------------------------
logger = logging.getLogger("relay.routers.workflow")


# ---------------------------------------------------------------------------
# ROUTER SETUP
# ---------------------------------------------------------------------------
router = APIRouter(prefix="/workflow", tags=["workflow"])


# ---------------------------------------------------------------------------
# ENDPOINTS
# ---------------------------------------------------------------------------

@router.post("/run", response_model=WorkflowResponse)
async def run_workflow(
    request: WorkflowRequest,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
) -> WorkflowResponse:
    """
    Process one user utterance.

    Example:
        POST /workflow/run
        {"message": "what's my ip address", "context": {"session_id": "s1"}}

    Returns:
        WorkflowResponse with answer, intent_context (slots + ui_variant)
        and command/clarification flags
    """
    state = await orchestrator.run(request)
    return WorkflowResponse.from_state(state, include_trace=request.include_trace)


@router.get("/metrics")
async def get_workflow_metrics(metrics: MetricsCollector = Depends(get_metrics)) -> Dict[str, Any]:
    """Summary, global latency percentiles and per-service totals."""
    return {
        "summary": metrics.get_summary(),
        "latency": metrics.get_latency_stats(),
        "metrics": metrics.get_metrics(),
    }


@router.get("/metrics/history")
async def get_metrics_history(
    limit: int = Query(default=50, ge=1, le=1000),
    metrics: MetricsCollector = Depends(get_metrics),
) -> List[Dict[str, Any]]:
    """Most recent request records, newest first."""
    return [record.to_dict() for record in metrics.get_history(limit)]


@router.get("/breakers")
async def get_breakers(orchestrator: WorkflowOrchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    """Circuit breaker state per service that has been called."""
    return {
        service: state.to_dict()
        for service, state in orchestrator.breakers.snapshot().items()
    }
