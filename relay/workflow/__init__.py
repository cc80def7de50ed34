"""
Workflow Module - Routing a classified utterance through service calls.

    WorkflowOrchestrator  wires classifier, service client and graph
    WorkflowGraph         runs nodes over a WorkflowState
    IntentType            closed set of routes (see intents.py)
"""

from relay.workflow.graph import ParallelNode, WorkflowGraph
from relay.workflow.intents import INTENT_DESCRIPTORS, IntentDescriptor, IntentType
from relay.workflow.orchestrator import WorkflowOrchestrator, build_breaker_registry
from relay.workflow.progress import ProgressPhase, describe_step
from relay.workflow.schemas import WorkflowRequest, WorkflowResponse
from relay.workflow.state import (
    ConversationTurn,
    IntentContext,
    RequestContext,
    WorkflowIntent,
    WorkflowState,
)

__all__ = [
    "ParallelNode",
    "WorkflowGraph",
    "INTENT_DESCRIPTORS",
    "IntentDescriptor",
    "IntentType",
    "WorkflowOrchestrator",
    "build_breaker_registry",
    "ProgressPhase",
    "describe_step",
    "WorkflowRequest",
    "WorkflowResponse",
    "ConversationTurn",
    "IntentContext",
    "RequestContext",
    "WorkflowIntent",
    "WorkflowState",
]
