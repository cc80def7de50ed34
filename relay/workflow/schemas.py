"""
Workflow Schemas - The canonical ingress and egress shapes.

WorkflowRequest is the only accepted input shape. Clients that speak
an older or differently nested format convert at their own boundary.

Example request:
{
    "message": "what's my ip address",
    "context": {"user_id": "u1", "session_id": "s1", "os": "darwin"},
    "conversation_history": [
        {"role": "user", "content": "hi"},
        {"role": "assistant", "content": "Hello! How can I help you today?"}
    ]
}
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from relay.workflow.intents import IntentType
from relay.workflow.state import (
    ConversationTurn,
    RequestContext,
    WorkflowIntent,
    WorkflowState,
)


class RequestContextModel(BaseModel):
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    os: str = Field(default="darwin", description="Client operating system (darwin, win32, linux)")
    use_online_mode: bool = False
    bypass_confirmation: bool = False
    disable_computer_use: bool = Field(default=False, description="Force static automation plans")


class ConversationTurnModel(BaseModel):
    role: str = Field(..., pattern="^(user|assistant|system)$")
    content: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    timestamp: Optional[str] = None


class WorkflowRequest(BaseModel):
    """Input for one workflow run."""
    message: str = Field(..., min_length=1, max_length=4000, description="The user's utterance")
    resolved_message: Optional[str] = Field(
        default=None,
        description="Message with references resolved by the client (e.g. 'it' -> 'Chrome')",
    )
    intent: Optional[IntentType] = Field(default=None, description="Skip classification and use this intent")
    context: RequestContextModel = Field(default_factory=RequestContextModel)
    conversation_history: List[ConversationTurnModel] = Field(default_factory=list)
    include_trace: bool = False

    def to_state(self) -> WorkflowState:
        return WorkflowState(
            message=self.message,
            resolved_message=self.resolved_message,
            intent=WorkflowIntent(type=self.intent, confidence=1.0) if self.intent else None,
            context=RequestContext(**self.context.model_dump()),
            conversation_history=[ConversationTurn(**turn.model_dump()) for turn in self.conversation_history],
        )


class IntentContextModel(BaseModel):
    intent: Optional[IntentType] = None
    slots: Dict[str, Any] = Field(default_factory=dict)
    ui_variant: Optional[str] = None


class WorkflowResponse(BaseModel):
    """Output of one workflow run."""
    answer: Optional[str] = None
    intent_context: IntentContextModel
    command_executed: bool = False
    needs_clarification: bool = False
    clarification_questions: Optional[List[str]] = None
    requires_confirmation: bool = False
    confirmation_details: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    success: bool
    elapsed_ms: float
    trace_id: str
    trace: Optional[List[Dict[str, Any]]] = None

    @classmethod
    def from_state(cls, state: WorkflowState, include_trace: bool = False) -> "WorkflowResponse":
        return cls(
            answer=state.answer,
            intent_context=IntentContextModel(
                intent=state.intent_context.intent or state.intent_type,
                slots=state.intent_context.slots,
                ui_variant=state.intent_context.ui_variant,
            ),
            command_executed=state.command_executed,
            needs_clarification=state.needs_clarification,
            clarification_questions=state.clarification_questions,
            requires_confirmation=state.requires_confirmation,
            confirmation_details=state.confirmation_details,
            error=state.error,
            success=state.success,
            elapsed_ms=round(state.elapsed_ms, 2),
            trace_id=state.trace_id,
            trace=state.trace if include_trace else None,
        )
