"""
Workflow Nodes - The steps a request passes through.

- parse_intent: classify and pick the route
- execute_command: shell execution, guides, UI automation
- web_search / retrieve_memory / store_memory / screen_intelligence: lookups
- answer: final response generation
- select_overlay_variant: presentation metadata (terminal)
"""

from relay.workflow.nodes.answer import AnswerNode
from relay.workflow.nodes.automation import (
    AutomationOutcome,
    AutomationPlan,
    AutomationVerifier,
    ServiceReportedVerifier,
)
from relay.workflow.nodes.base import PartialUpdateNode, WorkflowNode
from relay.workflow.nodes.command import CommandExecutionNode
from relay.workflow.nodes.memory import RetrieveMemoryNode, StoreMemoryNode
from relay.workflow.nodes.overlay import OverlayVariantNode, select_overlay_variant
from relay.workflow.nodes.parse_intent import ParseIntentNode
from relay.workflow.nodes.screen import ScreenIntelligenceNode
from relay.workflow.nodes.web_search import WebSearchNode

__all__ = [
    "AnswerNode",
    "AutomationOutcome",
    "AutomationPlan",
    "AutomationVerifier",
    "ServiceReportedVerifier",
    "PartialUpdateNode",
    "WorkflowNode",
    "CommandExecutionNode",
    "RetrieveMemoryNode",
    "StoreMemoryNode",
    "OverlayVariantNode",
    "select_overlay_variant",
    "ParseIntentNode",
    "ScreenIntelligenceNode",
    "WebSearchNode",
]
