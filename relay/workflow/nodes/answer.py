"""
Answer Node - Final response generation through the LLM service.

Builds one llm/general.answer request from everything earlier nodes
gathered: command output that still needs interpretation, memories,
web and screen context documents, and recent conversation turns.

Greetings are answered locally with the classifier's suggested response.
"""

import logging
from typing import Any, Dict

from relay.ai.intent.schemas import IntentCategory
from relay.services.errors import ServiceError, ServiceTimeoutError
from relay.services.registry import LLM_SERVICE
from relay.workflow.intents import IntentType
from relay.workflow.nodes.base import WorkflowNode
from relay.workflow.state import WorkflowState


logger = logging.getLogger("relay.workflow.nodes.answer")

HISTORY_TURNS = 10
FAILED_ANSWER = "I'm sorry, I couldn't generate a response right now. Please try again."
TIMEOUT_ANSWER = "That took too long to answer. Please try again."


class AnswerNode(WorkflowNode):
    name = "answer"
    generates_answer = True

    async def run(self, state: WorkflowState) -> WorkflowState:
        classification = state.classification
        if (
            state.intent_type == IntentType.GREETING
            and classification is not None
            and classification.primary_intent == IntentCategory.GREETING
        ):
            state.answer = classification.suggested_response
            return state

        has_context = bool(state.context_docs or state.memories)
        timeout_ms = self.config.ANSWER_WITH_CONTEXT_TIMEOUT_MS if has_context else self.config.ANSWER_TIMEOUT_MS

        try:
            response = await self.client.call(
                LLM_SERVICE,
                "general.answer",
                self._build_payload(state),
                timeout_ms=timeout_ms,
                trace_id=state.trace_id,
                context=state.context.service_context(),
            )
        except ServiceTimeoutError as e:
            logger.warning(f"[{state.trace_id}] Answer generation timed out: {e.message}")
            self._fail(state, e.message, TIMEOUT_ANSWER)
            return state
        except ServiceError as e:
            logger.warning(f"[{state.trace_id}] Answer generation failed: {e.message}")
            self._fail(state, e.message, FAILED_ANSWER)
            return state

        answer = response.get("answer") or response.get("text")
        if answer:
            state.answer = answer
            state.needs_interpretation = False
        else:
            self._fail(state, None, FAILED_ANSWER)
        return state

    def _build_payload(self, state: WorkflowState) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "query": state.command_text,
            "intent": state.intent_type.value if state.intent_type else None,
            "conversationHistory": [turn.to_dict() for turn in state.conversation_history[-HISTORY_TURNS:]],
            "sessionMessages": state.session_messages,
            "memories": state.memories,
            "contextDocs": state.context_docs,
        }
        if state.needs_interpretation:
            payload["commandOutput"] = {
                "command": state.executed_command,
                "output": state.command_output,
            }
        return payload

    @staticmethod
    def _fail(state: WorkflowState, error: Any, fallback_answer: str) -> None:
        if state.needs_interpretation and state.command_output:
            # Raw output is still better than nothing
            state.answer = f"Here's the output:\n```\n{state.command_output.strip()}\n```"
            return
        if error:
            state.error = error
        state.answer = fallback_answer
