"""
Progress Reporting - Human-readable step descriptions for the UI.

The graph calls an optional on_progress(node_name, state, phase) callback
before and after each node. state.current_step holds the description of
the step being reported. The callback is purely cosmetic: whatever it
raises is logged and ignored.
"""

import inspect
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

from relay.workflow.intents import IntentType
from relay.workflow.state import WorkflowState


logger = logging.getLogger("relay.workflow.progress")


class ProgressPhase(str, Enum):
    STARTED = "started"
    COMPLETED = "completed"


ProgressCallback = Callable[[str, WorkflowState, ProgressPhase], Union[None, Awaitable[None]]]

_STEP_DESCRIPTIONS = {
    "parse_intent": "Understanding your request...",
    "retrieve_memory": "Searching through your memories...",
    "web_search": "Searching the web for current information...",
    "store_memory": "Storing information in memory...",
    "screen_intelligence": "Analyzing screen content...",
    "select_overlay_variant": "Preparing response display...",
    "parallel_web_and_memory": "Searching web and memories simultaneously...",
}


def describe_step(node_name: str, state: WorkflowState) -> str:
    intent = state.intent_type

    if node_name == "answer":
        if intent == IntentType.COMMAND_AUTOMATE:
            return "Creating automation plan..."
        if intent == IntentType.SCREEN_INTELLIGENCE:
            return "Analyzing your screen..."
        if intent == IntentType.WEB_SEARCH:
            return "Formulating answer from search results..."
        return "Generating response..."

    if node_name == "execute_command":
        if intent == IntentType.COMMAND_AUTOMATE:
            return "Preparing automation..."
        return "Executing command..."

    return _STEP_DESCRIPTIONS.get(node_name, f"Processing: {node_name}...")


async def emit_progress(
    callback: Optional[ProgressCallback],
    node_name: str,
    state: WorkflowState,
    phase: ProgressPhase,
) -> None:
    """Invoke a sync or async progress callback. Never raises."""
    if callback is None:
        return
    state.current_step = describe_step(node_name, state)
    try:
        result: Any = callback(node_name, state, phase)
        if inspect.isawaitable(result):
            await result
    except Exception as e:
        logger.warning(f"Progress callback failed for {node_name} ({phase.value}): {e}")
