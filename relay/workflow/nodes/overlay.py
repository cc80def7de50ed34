"""
Overlay Variant Selector - Picks how the overlay presents the result.

select_overlay_variant() is a pure function of the intent type and the
slot dict: no I/O, no clock, no mutation of its inputs. Precedence is

    error > choice (several candidates) > results (something to show) > loading

with each intent contributing its own notion of "something to show".
Intents without a rule get their descriptor's default variant.
"""

from typing import Any, Callable, Dict, Mapping, Optional

from relay.workflow.intents import (
    INTENT_DESCRIPTORS,
    VARIANT_AUTOMATION_PROGRESS,
    VARIANT_CHOICE,
    VARIANT_ERROR,
    VARIANT_GUIDE_RENDERER,
    VARIANT_LOADING,
    VARIANT_RESULTS,
    IntentDescriptor,
    IntentType,
)
from relay.workflow.nodes.base import WorkflowNode
from relay.workflow.state import WorkflowState


Slots = Mapping[str, Any]


def _has_error(slots: Slots) -> bool:
    return bool(slots.get("error") or slots.get("errorMessage"))


def _search_variant(slots: Slots) -> str:
    if _has_error(slots):
        return VARIANT_ERROR
    if len(slots.get("candidateChannels") or []) > 1:
        return VARIANT_CHOICE
    if slots.get("results") or slots.get("answer"):
        return VARIANT_RESULTS
    return VARIANT_LOADING


def _screen_variant(slots: Slots) -> str:
    if _has_error(slots):
        return VARIANT_ERROR
    if slots.get("analysis") or slots.get("text") or slots.get("answer"):
        return VARIANT_RESULTS
    return VARIANT_LOADING


def _execute_variant(slots: Slots) -> str:
    if _has_error(slots) or slots.get("command_error"):
        return VARIANT_ERROR
    if slots.get("command_executed") or slots.get("answer") or slots.get("output"):
        return VARIANT_RESULTS
    return VARIANT_LOADING


def _automate_variant(slots: Slots) -> str:
    if _has_error(slots):
        return VARIANT_ERROR
    if slots.get("needsClarification"):
        return VARIANT_RESULTS
    if slots.get("automationPlan") and slots.get("steps"):
        return VARIANT_AUTOMATION_PROGRESS
    return VARIANT_LOADING


def _guide_variant(slots: Slots) -> str:
    if _has_error(slots):
        return VARIANT_ERROR
    if slots.get("guideId") and slots.get("steps"):
        return VARIANT_GUIDE_RENDERER
    return VARIANT_LOADING


VARIANT_RULES: Dict[IntentType, Callable[[Slots], str]] = {
    IntentType.WEB_SEARCH: _search_variant,
    IntentType.QUESTION: _search_variant,
    IntentType.SCREEN_INTELLIGENCE: _screen_variant,
    IntentType.COMMAND_EXECUTE: _execute_variant,
    IntentType.COMMAND_AUTOMATE: _automate_variant,
    IntentType.COMMAND_GUIDE: _guide_variant,
}


def select_overlay_variant(
    intent_type: Optional[IntentType],
    slots: Slots,
    descriptors: Mapping[IntentType, IntentDescriptor] = INTENT_DESCRIPTORS,
) -> str:
    """UI variant tag for an intent and its slots."""
    if intent_type is None:
        return VARIANT_ERROR if _has_error(slots) else VARIANT_RESULTS
    rule = VARIANT_RULES.get(intent_type)
    if rule is None:
        return descriptors[intent_type].default_variant
    return rule(slots)


def build_overlay_slots(state: WorkflowState) -> Dict[str, Any]:
    """Slots plus the final answer and error, as the overlay receives them."""
    slots = dict(state.intent_context.slots)
    if state.answer is not None:
        slots["answer"] = state.answer
    if state.error and not slots.get("error"):
        slots["error"] = state.error
    return slots


class OverlayVariantNode(WorkflowNode):
    """Terminal node: fills intent_context for the presentation layer."""

    name = "select_overlay_variant"
    terminal = True

    async def run(self, state: WorkflowState) -> WorkflowState:
        slots = build_overlay_slots(state)
        state.intent_context.intent = state.intent_type
        state.intent_context.slots = slots
        state.intent_context.ui_variant = select_overlay_variant(state.intent_type, slots)
        return state
