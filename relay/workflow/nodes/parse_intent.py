"""
Parse Intent Node - Entry node that decides the route.

Classifies the message with the IntentClassifier and maps the
classifier's category onto a routable IntentType:

    command           → command_guide | command_automate | command_execute
    question          → screen_intelligence | web_search | question
    memory_retrieve   → screen_intelligence | memory_retrieve
    memory_store      → memory_store
    memory_update     → memory_store
    memory_delete     → general
    greeting          → greeting

A pending automation clarification in the conversation history wins
over classification: the message is an answer, so it goes back to
command_automate.
"""

import logging
import re
from typing import Optional

from relay.ai.intent.classifier import IntentClassifier
from relay.ai.intent.schemas import IntentCategory, IntentResult
from relay.core.config import Settings
from relay.workflow.clarification import find_pending_clarification
from relay.workflow.intents import IntentType
from relay.workflow.nodes.base import WorkflowNode
from relay.workflow.state import WorkflowIntent, WorkflowState


logger = logging.getLogger("relay.workflow.nodes.parse_intent")

GUIDE_PATTERN = re.compile(
    r"\b(how (do|can|would|should) i|show me how|walk me through|step[- ]by[- ]step|guide|tutorial|teach me)\b",
    re.I,
)
AUTOMATE_PATTERN = re.compile(
    r"\b(automate|automation|click|fill (out|in)|type (in|into)|navigate to|log ?in to|sign ?in to"
    r"|book an?|order an?|send an? (email|message)|for me)\b",
    re.I,
)
SCREEN_QUESTION_PATTERN = re.compile(
    r"\b(on (my|the) screen|what am i (looking at|reading|watching|viewing)"
    r"|this (page|window|article|document|video|tab|website))\b",
    re.I,
)

_CATEGORY_INTENTS = {
    IntentCategory.MEMORY_STORE: IntentType.MEMORY_STORE,
    IntentCategory.MEMORY_UPDATE: IntentType.MEMORY_STORE,
    IntentCategory.MEMORY_DELETE: IntentType.GENERAL,
    IntentCategory.MEMORY_RETRIEVE: IntentType.MEMORY_RETRIEVE,
    IntentCategory.GREETING: IntentType.GREETING,
    IntentCategory.QUESTION: IntentType.QUESTION,
}


def map_to_intent_type(result: IntentResult, text: str) -> IntentType:
    """Routable intent for a classification of `text`."""
    category = result.primary_intent

    if category == IntentCategory.COMMAND:
        if GUIDE_PATTERN.search(text):
            return IntentType.COMMAND_GUIDE
        if AUTOMATE_PATTERN.search(text):
            return IntentType.COMMAND_AUTOMATE
        return IntentType.COMMAND_EXECUTE

    if category in (IntentCategory.QUESTION, IntentCategory.MEMORY_RETRIEVE):
        if SCREEN_QUESTION_PATTERN.search(text):
            return IntentType.SCREEN_INTELLIGENCE
        if category == IntentCategory.QUESTION and result.requires_external_data:
            return IntentType.WEB_SEARCH

    return _CATEGORY_INTENTS.get(category, IntentType.GENERAL)


class ParseIntentNode(WorkflowNode):
    """Classifies the message unless the request already carries an intent."""

    name = "parse_intent"

    def __init__(self, classifier: IntentClassifier, config: Optional[Settings] = None):
        super().__init__(config=config)
        self.classifier = classifier

    async def run(self, state: WorkflowState) -> WorkflowState:
        if state.intent is not None:
            logger.debug(f"[{state.trace_id}] Intent preset to {state.intent.type.value}")
            state.intent_context.intent = state.intent.type
            return state

        if find_pending_clarification(state.conversation_history) is not None:
            logger.info(f"[{state.trace_id}] Pending clarification found; routing answer to automation")
            state.intent = WorkflowIntent(type=IntentType.COMMAND_AUTOMATE, confidence=1.0)
            state.intent_context.intent = state.intent.type
            return state

        text = state.command_text
        result = self.classifier.classify(text)
        state.classification = result

        intent_type = map_to_intent_type(result, text)
        state.intent = WorkflowIntent(type=intent_type, confidence=result.confidence)
        state.intent_context.intent = intent_type
        logger.info(
            f"[{state.trace_id}] Intent: {result.primary_intent.value} -> {intent_type.value} "
            f"(confidence={result.confidence:.2f})"
        )

        if result.needs_clarification:
            state.needs_clarification = True
            state.clarification_questions = [result.clarification_prompt]
            state.answer = result.clarification_prompt
            state.intent_context.slots["possibleIntents"] = [i.value for i in result.possible_intents]

        return state
