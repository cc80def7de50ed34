"""
End-to-end tests for the workflow orchestrator.

Requests run through the real graph, nodes and ServiceClient; only the
HTTP layer is replaced by httpx.MockTransport answering per action.

This module tests:
- Command execution answered by the command service
- ECONNREFUSED on a screen question rerouted to screen intelligence
- Web search and memory gathered in parallel, then answered
- The automation clarification round trip
"""

import json
from typing import Any, Callable, Dict, Union

import httpx
import pytest

from conftest import ok_envelope
from relay.services.circuit_breaker import BreakerStatus
from relay.workflow.intents import (
    VARIANT_AUTOMATION_PROGRESS,
    VARIANT_RESULTS,
    IntentType,
)
from relay.workflow.orchestrator import WorkflowOrchestrator
from relay.workflow.schemas import WorkflowRequest, WorkflowResponse


Reply = Union[Dict[str, Any], Callable[[httpx.Request], httpx.Response]]


def backend(replies: Dict[str, Reply]) -> Callable[[httpx.Request], httpx.Response]:
    """Handler answering each action with its data dict (or a custom callable)."""
    def handler(request: httpx.Request) -> httpx.Response:
        action = json.loads(request.content)["action"]
        reply = replies[action]
        if callable(reply):
            return reply(request)
        return ok_envelope(reply)
    return handler


def refuse(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("[Errno 111] Connection refused", request=request)


def actions(transport) -> list:
    return [body["action"] for body in transport.bodies()]


@pytest.fixture
def make_orchestrator(make_service_client, classifier, config):
    def factory(replies: Dict[str, Reply]):
        client, transport = make_service_client(backend(replies))
        return WorkflowOrchestrator(client, classifier=classifier, config=config), transport
    return factory


class TestCommandFlow:
    """Tests for command requests."""

    @pytest.mark.asyncio
    async def test_take_a_screenshot(self, make_orchestrator, metrics):
        """Test a classified command is executed and shown as results."""
        orchestrator, transport = make_orchestrator({
            "command.execute": {
                "success": True,
                "executedCommand": "screencapture ~/Desktop/screenshot.png",
                "category": "screenshot",
                "output": "Screenshot saved to your Desktop.",
                "outputInterpretationSource": "llm",
            },
        })

        state = await orchestrator.run(WorkflowRequest(message="take a screenshot"))

        assert actions(transport) == ["command.execute"]
        assert state.intent_type == IntentType.COMMAND_EXECUTE
        assert state.answer == "Screenshot saved to your Desktop."
        assert state.command_executed is True
        assert state.success is True
        assert state.intent_context.ui_variant == VARIANT_RESULTS
        assert [entry["node"] for entry in state.trace if entry.get("skipped")] == ["answer"]
        assert metrics.get_summary()["total_requests"] == 1

    @pytest.mark.asyncio
    async def test_refused_screen_question_reroutes(self, make_orchestrator, breakers):
        """Test ECONNREFUSED on a screen question is answered by screen intelligence."""
        orchestrator, transport = make_orchestrator({
            "command.execute": refuse,
            "screen.analyze": {
                "analysis": "A code editor showing a Python file",
                "answer": "You're editing a Python file.",
            },
        })
        request = WorkflowRequest(message="what's on my screen", intent=IntentType.COMMAND_EXECUTE)

        state = await orchestrator.run(request)

        assert actions(transport) == ["command.execute", "screen.analyze"]
        assert state.intent.type == IntentType.SCREEN_INTELLIGENCE
        assert state.intent.fallback_from == IntentType.COMMAND_EXECUTE
        assert state.answer == "You're editing a Python file."
        assert state.error is None
        assert state.success is True
        assert state.intent_context.ui_variant == VARIANT_RESULTS
        assert breakers.get("command").snapshot().consecutive_failures == 1
        assert breakers.get("command").status == BreakerStatus.CLOSED


class TestSearchFlow:
    """Tests for questions that need fresh data."""

    @pytest.mark.asyncio
    async def test_weather_question(self, make_orchestrator):
        """Test web results and memories are gathered, then answered with context."""
        orchestrator, transport = make_orchestrator({
            "search.web": {
                "results": [{"title": "Forecast", "snippet": "Sunny, 24C", "url": "https://weather.example/today"}],
            },
            "message.list": {"messages": []},
            "memory.search": {"results": []},
            "general.answer": {"answer": "It will be sunny and 24C."},
        })

        state = await orchestrator.run(WorkflowRequest(
            message="what's the weather forecast today",
            context={"user_id": "user-1", "session_id": "session-1"},
        ))

        assert sorted(actions(transport)) == ["general.answer", "memory.search", "message.list", "search.web"]
        assert actions(transport)[-1] == "general.answer"
        answer_payload = transport.bodies()[-1]["payload"]
        assert answer_payload["contextDocs"][0]["url"] == "https://weather.example/today"
        assert state.intent_type == IntentType.WEB_SEARCH
        assert state.answer == "It will be sunny and 24C."
        assert state.intent_context.ui_variant == VARIANT_RESULTS
        assert state.intent_context.slots["results"][0]["title"] == "Forecast"


class TestClarificationRoundTrip:
    """Tests for an automation that needs more information."""

    @pytest.mark.asyncio
    async def test_question_then_answer(self, make_orchestrator):
        """Test the first run suspends with questions and the answer replans the original command."""
        orchestrator, transport = make_orchestrator({
            "command.automate": {
                "success": True,
                "needsClarification": True,
                "clarificationQuestions": ["Which restaurant?"],
            },
        })
        first = await orchestrator.run(WorkflowRequest(
            message="book a table for dinner",
            intent=IntentType.COMMAND_AUTOMATE,
            context={"session_id": "session-1", "disable_computer_use": True},
        ))
        response = WorkflowResponse.from_state(first)

        assert response.needs_clarification is True
        assert response.clarification_questions == ["Which restaurant?"]
        assert response.intent_context.ui_variant is None
        assert actions(transport) == ["command.automate"]

        orchestrator, transport = make_orchestrator({
            "command.automate": {
                "success": True,
                "plan": {"planId": "p2", "steps": [{"action": "open_url"}, {"action": "click"}]},
            },
        })
        second = await orchestrator.run(WorkflowRequest(
            message="Nopa, at 8pm",
            context={"session_id": "session-1"},
            conversation_history=[
                {"role": "user", "content": "book a table for dinner"},
                {"role": "assistant", "content": response.answer, "metadata": response.intent_context.slots},
            ],
        ))

        payload = transport.bodies()[0]["payload"]
        assert payload["command"] == "book a table for dinner"
        assert payload["clarificationAnswers"] == {"userResponse": "Nopa, at 8pm", "questions": ["Which restaurant?"]}
        assert second.intent_type == IntentType.COMMAND_AUTOMATE
        assert second.needs_clarification is False
        assert second.intent_context.slots["planId"] == "p2"
        assert second.intent_context.ui_variant == VARIANT_AUTOMATION_PROGRESS
        assert second.success is True
