"""
Screen Intelligence Node - Questions about what is on the user's screen.

Capture and OCR happen inside the screen-intelligence service; this node
only asks it to analyze the current screen for the user's question.
"""

import logging

from relay.services.errors import ServiceError, ServiceTimeoutError
from relay.services.registry import SCREEN_SERVICE
from relay.workflow.nodes.base import WorkflowNode
from relay.workflow.state import WorkflowState


logger = logging.getLogger("relay.workflow.nodes.screen")


class ScreenIntelligenceNode(WorkflowNode):
    name = "screen_intelligence"

    async def run(self, state: WorkflowState) -> WorkflowState:
        slots = state.intent_context.slots
        try:
            response = await self.client.call(
                SCREEN_SERVICE,
                "screen.analyze",
                {"query": state.command_text, "includeScreenshot": False},
                timeout_ms=self.config.SCREEN_TIMEOUT_MS,
                trace_id=state.trace_id,
                context=state.context.service_context(),
            )
        except ServiceTimeoutError as e:
            logger.warning(f"[{state.trace_id}] Screen analysis timed out: {e.message}")
            state.error = e.message
            state.answer = "Analyzing your screen took too long. Please try again."
            return state
        except ServiceError as e:
            logger.warning(f"[{state.trace_id}] Screen analysis failed: {e.message}")
            state.error = e.message
            state.answer = "I couldn't analyze your screen right now. Please try again in a moment."
            return state

        state.screen_analysis = response
        analysis = response.get("analysis") or response.get("text")
        if analysis:
            slots["analysis"] = analysis
            state.context_docs = state.context_docs + [{
                "id": "screen",
                "text": analysis if isinstance(analysis, str) else str(analysis),
                "source": "screen_intelligence",
            }]
        if response.get("answer"):
            state.answer = response["answer"]
        return state
