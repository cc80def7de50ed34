"""
Workflow State - The mutable record threaded through every node.

One WorkflowState exists per in-flight request and is never shared
between requests. Nodes read what earlier nodes wrote and add their own
fields; the graph adds bookkeeping (trace, timing, success).

Field Groups:
============
- Input: message, resolved_message, context, conversation_history
- Routing: intent, retry_with_intent, needs_clarification
- Output: answer, error, command_executed, intent_context (slots + ui_variant)
- Node outputs: command_output, search_results, memories, ...
- Bookkeeping: trace, failed_node, elapsed_ms, iterations, success
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from uuid import uuid4

from relay.ai.intent.schemas import IntentResult
from relay.workflow.intents import IntentType


@dataclass
class RequestContext:
    """Who is asking and how the desktop client wants the request handled."""
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    os: str = "darwin"
    use_online_mode: bool = False
    bypass_confirmation: bool = False
    disable_computer_use: bool = False
    computer_use_failed: bool = False

    def service_context(self) -> Dict[str, Any]:
        """Context block for the service request envelope."""
        return {"userId": self.user_id, "sessionId": self.session_id}

    def execution_context(self) -> Dict[str, Any]:
        """Context payload for command service actions."""
        return {
            "os": self.os,
            "userId": self.user_id,
            "sessionId": self.session_id,
            "useOnlineMode": self.use_online_mode,
            "bypassConfirmation": self.bypass_confirmation,
        }


@dataclass
class ConversationTurn:
    """One prior message; assistant turns carry the metadata of their response."""
    role: str
    content: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    timestamp: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role": self.role,
            "content": self.content,
            "metadata": self.metadata,
            "timestamp": self.timestamp,
        }


@dataclass
class WorkflowIntent:
    type: IntentType
    confidence: float = 0.0
    fallback_from: Optional[IntentType] = None


@dataclass
class IntentContext:
    """What the presentation layer receives: intent, slots and the chosen variant."""
    intent: Optional[IntentType] = None
    slots: Dict[str, Any] = field(default_factory=dict)
    ui_variant: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "intent": self.intent.value if self.intent else None,
            "slots": self.slots,
            "uiVariant": self.ui_variant,
        }


@dataclass
class WorkflowState:
    message: str
    resolved_message: Optional[str] = None
    intent: Optional[WorkflowIntent] = None
    context: RequestContext = field(default_factory=RequestContext)
    conversation_history: List[ConversationTurn] = field(default_factory=list)
    intent_context: IntentContext = field(default_factory=IntentContext)

    answer: Optional[str] = None
    error: Optional[str] = None
    command_executed: bool = False
    retry_with_intent: Optional[IntentType] = None
    needs_clarification: bool = False
    clarification_questions: Optional[List[str]] = None

    # Node outputs
    classification: Optional[IntentResult] = None
    command_output: Optional[str] = None
    needs_interpretation: bool = False
    requires_confirmation: bool = False
    confirmation_details: Optional[Dict[str, Any]] = None
    command_error: Optional[str] = None
    executed_command: Optional[str] = None
    search_results: List[Dict[str, Any]] = field(default_factory=list)
    context_docs: List[Dict[str, Any]] = field(default_factory=list)
    memories: List[Dict[str, Any]] = field(default_factory=list)
    session_messages: List[Dict[str, Any]] = field(default_factory=list)
    screen_analysis: Optional[Dict[str, Any]] = None

    # Bookkeeping
    trace_id: str = field(default_factory=lambda: f"trace_{uuid4().hex}")
    current_step: Optional[str] = None
    trace: List[Dict[str, Any]] = field(default_factory=list)
    failed_node: Optional[str] = None
    elapsed_ms: float = 0.0
    iterations: int = 0
    success: bool = False

    @property
    def command_text(self) -> str:
        """The text commands and queries act on."""
        return self.resolved_message or self.message

    @property
    def intent_type(self) -> Optional[IntentType]:
        return self.intent.type if self.intent else None

    def apply(self, updates: Dict[str, Any]) -> None:
        """
        Merge a partial update produced by a node.

        "slots" is merged into intent_context.slots; every other key must
        name an existing field.
        """
        for key, value in updates.items():
            if key == "slots":
                self.intent_context.slots.update(value)
            elif hasattr(self, key):
                setattr(self, key, value)
            else:
                raise AttributeError(f"WorkflowState has no field '{key}'")

    def snapshot(self) -> Dict[str, Any]:
        """Compact view of the routing-relevant fields for trace entries."""
        return {
            "intent": self.intent.type.value if self.intent else None,
            "has_answer": self.answer is not None,
            "error": self.error,
            "command_executed": self.command_executed,
            "needs_clarification": self.needs_clarification,
            "retry_with_intent": self.retry_with_intent.value if self.retry_with_intent else None,
            "slots": sorted(self.intent_context.slots),
        }
