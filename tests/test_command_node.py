"""
Tests for the command execution node.

The ServiceClient is mocked; each test scripts the command service's
responses (or exceptions) and checks the resulting state.

This module tests:
- Shell execution: formatted answers, interpretation hand-off, confirmation
- Execution failures tailored by risk tier
- Service unavailable: screen fallback vs. apology
- Timeouts
- Guides
- Automation: computer-use, static plans, clarification round trip,
  uncertain results
"""

import pytest

from conftest import make_state
from relay.services.errors import (
    CircuitOpenError,
    RemoteServiceError,
    ServiceTimeoutError,
    ServiceUnavailableError,
)
from relay.workflow.intents import IntentType
from relay.workflow.nodes.automation import AutomationOutcome, AutomationVerifier
from relay.workflow.nodes.command import (
    ALLOWED_CATEGORIES_ANSWER,
    APOLOGY_ANSWER,
    TIMEOUT_ANSWER,
    UNAVAILABLE_ANSWER,
    UNCERTAIN_ANSWER,
    CommandExecutionNode,
    format_execution_failure,
    format_guide,
    mentions_screen_content,
)
from relay.workflow.state import ConversationTurn


@pytest.fixture
def node(mock_client, config) -> CommandExecutionNode:
    return CommandExecutionNode(mock_client, config=config)


def connection_refused() -> ServiceUnavailableError:
    return ServiceUnavailableError(
        "Connection refused by command: ECONNREFUSED",
        service="command",
        action="command.execute",
        connection_refused=True,
    )


def called_actions(mock_client):
    return [c.args[1] for c in mock_client.call.call_args_list]


# ---------------------------------------------------------------------------
# SHELL EXECUTE
# ---------------------------------------------------------------------------

class TestShellExecute:
    """Tests for command_execute."""

    @pytest.mark.asyncio
    async def test_screenshot_command(self, node, mock_client):
        """Test 'take a screenshot' runs command.execute and reports the result."""
        mock_client.call.return_value = {
            "success": True,
            "executedCommand": "screencapture ~/Desktop/screenshot.png",
            "category": "screenshot",
            "output": "Screenshot saved to your Desktop.",
            "outputInterpretationSource": "llm",
        }
        state = make_state("take a screenshot", IntentType.COMMAND_EXECUTE)

        await node.run(state)

        service, action, payload = mock_client.call.call_args.args
        assert (service, action) == ("command", "command.execute")
        assert payload["command"] == "take a screenshot"
        assert payload["context"]["userId"] == "user-1"
        assert mock_client.call.call_args.kwargs["timeout_ms"] == 60_000
        assert state.command_executed is True
        assert state.answer == "Screenshot saved to your Desktop."
        assert state.error is None
        assert state.intent_context.slots["executedCommand"] == "screencapture ~/Desktop/screenshot.png"

    @pytest.mark.asyncio
    async def test_resolved_message_is_executed(self, node, mock_client):
        """Test the resolved message is sent as the command, the original alongside it."""
        mock_client.call.return_value = {"success": True, "output": "ok", "outputInterpretationSource": "llm"}
        state = make_state("do that again", IntentType.COMMAND_EXECUTE)
        state.resolved_message = "open safari"

        await node.run(state)

        payload = mock_client.call.call_args.args[2]
        assert payload["command"] == "open safari"
        assert payload["originalMessage"] == "do that again"

    @pytest.mark.asyncio
    async def test_ip_address_is_formatted(self, node, mock_client):
        """Test network output gets a deterministic answer."""
        mock_client.call.return_value = {
            "success": True,
            "executedCommand": "curl -s ifconfig.me",
            "category": "network",
            "rawOutput": "203.0.113.7\n",
        }
        state = make_state("what's my ip", IntentType.COMMAND_EXECUTE)

        await node.run(state)

        assert state.answer == "Your IP address is: **203.0.113.7**"
        assert state.needs_interpretation is False

    @pytest.mark.asyncio
    async def test_unformatted_output_needs_interpretation(self, node, mock_client):
        """Test output without a deterministic format is handed to the answer node."""
        mock_client.call.return_value = {
            "success": True,
            "executedCommand": "top -l 1",
            "category": "system_info",
            "output": "CPU usage: 12% user",
        }
        state = make_state("how busy is my cpu", IntentType.COMMAND_EXECUTE)

        await node.run(state)

        assert state.answer is None
        assert state.needs_interpretation is True
        assert state.command_output == "CPU usage: 12% user"
        assert state.command_executed is True

    @pytest.mark.asyncio
    async def test_confirmation_required(self, node, mock_client):
        """Test risky commands stop for confirmation without executing."""
        mock_client.call.return_value = {
            "success": False,
            "requiresConfirmation": True,
            "interpretedCommand": "rm -rf ~/Downloads/old",
            "category": "file_write",
            "riskLevel": "medium",
        }
        state = make_state("delete my old downloads", IntentType.COMMAND_EXECUTE)

        await node.run(state)

        assert state.requires_confirmation is True
        assert state.confirmation_details["command"] == "rm -rf ~/Downloads/old"
        assert state.confirmation_details["riskLevel"] == "medium"
        assert "rm -rf ~/Downloads/old" in state.answer
        assert state.command_executed is False
        assert state.error is None

    @pytest.mark.asyncio
    async def test_execution_failure(self, node, mock_client):
        """Test success=false is reported as data, not an exception."""
        mock_client.call.return_value = {
            "success": False,
            "error": "Permission denied",
            "interpretedCommand": "sudo shutdown -h now",
            "riskLevel": "critical",
        }
        state = make_state("shut down my mac", IntentType.COMMAND_EXECUTE)

        await node.run(state)

        assert state.command_executed is False
        assert state.command_error == "Permission denied"
        assert state.executed_command == "sudo shutdown -h now"
        assert state.answer.endswith("This command is blocked for security reasons.")
        assert state.intent_context.slots["command_error"] == "Permission denied"


class TestExecutionFailureMessages:
    """Tests for risk-tier tailored failure messages."""

    def test_critical(self):
        """Test critical risk is explained as blocked."""
        message = format_execution_failure({"error": "nope", "riskLevel": "critical"})
        assert message == "I couldn't execute that command: nope This command is blocked for security reasons."

    def test_high(self):
        """Test high risk mentions elevated privileges."""
        message = format_execution_failure({"error": "nope", "riskLevel": "high"})
        assert "elevated privileges" in message

    def test_low(self):
        """Test other tiers only carry the error."""
        assert format_execution_failure({"error": "nope", "riskLevel": "low"}) == "I couldn't execute that command: nope"

    def test_disallowed_category(self):
        """Test a category rejection lists what is allowed."""
        message = format_execution_failure({"error": "Command not in allowed categories"})
        assert ALLOWED_CATEGORIES_ANSWER in message

    def test_critical_category_rejection_is_blocked(self):
        """Test a critical command rejected by category is still reported as blocked."""
        message = format_execution_failure({"error": "Command not in allowed categories", "riskLevel": "critical"})
        assert message.endswith("This command is blocked for security reasons.")
        assert ALLOWED_CATEGORIES_ANSWER not in message

    def test_high_category_rejection_mentions_privileges(self):
        """Test a high-risk category rejection mentions elevated privileges."""
        message = format_execution_failure({"error": "Command not in allowed categories", "riskLevel": "high"})
        assert "elevated privileges" in message


# ---------------------------------------------------------------------------
# UNAVAILABLE / TIMEOUT
# ---------------------------------------------------------------------------

class TestServiceFailures:
    """Tests for unreachable and slow command service."""

    @pytest.mark.asyncio
    async def test_screen_question_falls_back_to_screen_intelligence(self, node, mock_client):
        """Test ECONNREFUSED on a screen question requests a screen_intelligence retry."""
        mock_client.call.side_effect = connection_refused()
        state = make_state("what's on my screen", IntentType.COMMAND_EXECUTE)

        await node.run(state)

        assert state.retry_with_intent == IntentType.SCREEN_INTELLIGENCE
        assert state.error is None
        assert state.command_executed is False
        assert state.answer is None
        assert state.intent.type == IntentType.SCREEN_INTELLIGENCE
        assert state.intent.confidence == 0.95
        assert state.intent.fallback_from == IntentType.COMMAND_EXECUTE

    @pytest.mark.asyncio
    async def test_open_breaker_counts_as_unavailable(self, node, mock_client):
        """Test a breaker rejection takes the same fallback path."""
        mock_client.call.side_effect = CircuitOpenError("Circuit breaker is open for service: command")
        state = make_state("what am I reading in this article", IntentType.COMMAND_EXECUTE)

        await node.run(state)

        assert state.retry_with_intent == IntentType.SCREEN_INTELLIGENCE

    @pytest.mark.asyncio
    async def test_unavailable_without_screen_vocabulary(self, node, mock_client):
        """Test other messages get a generic apology."""
        mock_client.call.side_effect = connection_refused()
        state = make_state("empty the trash", IntentType.COMMAND_EXECUTE)

        await node.run(state)

        assert state.retry_with_intent is None
        assert state.error == "Command service unavailable"
        assert state.answer == UNAVAILABLE_ANSWER
        assert "ECONNREFUSED" not in state.answer

    @pytest.mark.asyncio
    async def test_shell_timeout_asks_to_try_again(self, node, mock_client):
        """Test a timed-out execution is reported as try-again."""
        mock_client.call.side_effect = ServiceTimeoutError("command/command.execute timed out after 60000ms")
        state = make_state("empty the trash", IntentType.COMMAND_EXECUTE)

        await node.run(state)

        assert state.answer == TIMEOUT_ANSWER
        assert state.retry_with_intent is None
        assert state.command_executed is False

    @pytest.mark.asyncio
    async def test_automation_timeout_is_treated_as_unavailable(self, node, mock_client, config):
        """Test automation timeouts take the unavailable path."""
        config.COMPUTER_USE_ENABLED = False
        mock_client.call.side_effect = ServiceTimeoutError("command/command.automate timed out")
        state = make_state("book a table for two", IntentType.COMMAND_AUTOMATE)

        await node.run(state)

        assert state.answer == UNAVAILABLE_ANSWER
        assert state.error == "Command service unavailable"

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_apology(self, node, mock_client):
        """Test anything else is logged and answered with one apology."""
        mock_client.call.side_effect = KeyError("output")
        state = make_state("empty the trash", IntentType.COMMAND_EXECUTE)

        result = await node.run(state)

        assert result is state
        assert state.answer == APOLOGY_ANSWER
        assert state.error

    @pytest.mark.asyncio
    async def test_non_command_intent_passes_through(self, node, mock_client):
        """Test other intents are left untouched."""
        state = make_state("hello", IntentType.GREETING)

        await node.run(state)

        mock_client.call.assert_not_awaited()
        assert state.answer is None

    def test_screen_vocabulary_uses_word_boundaries(self):
        """Test keywords only match whole words."""
        assert mentions_screen_content("what's on my screen") is True
        assert mentions_screen_content("empty the trash") is False
        assert mentions_screen_content("somewhat", None) is False


# ---------------------------------------------------------------------------
# GUIDE
# ---------------------------------------------------------------------------

class TestGuide:
    """Tests for command_guide."""

    @pytest.mark.asyncio
    async def test_guide_success(self, node, mock_client):
        """Test a guide is rendered and its structure exposed in slots."""
        mock_client.call.return_value = {
            "success": True,
            "guide": {
                "guideId": "g-1",
                "title": "Install Homebrew",
                "steps": [
                    {"title": "Open Terminal", "description": "Use Spotlight."},
                    {"title": "Run installer", "command": "/bin/bash -c \"$(curl -fsSL https://brew.sh)\""},
                ],
            },
        }
        state = make_state("how do I install homebrew", IntentType.COMMAND_GUIDE)

        await node.run(state)

        assert called_actions(mock_client) == ["command.guide"]
        assert mock_client.call.call_args.kwargs["timeout_ms"] == 300_000
        assert state.answer.startswith("## Install Homebrew")
        assert "1. **Open Terminal**" in state.answer
        assert state.intent_context.slots["guideId"] == "g-1"
        assert state.intent_context.slots["totalSteps"] == 2
        assert state.command_executed is False

    @pytest.mark.asyncio
    async def test_guide_failure(self, node, mock_client):
        """Test a failed guide asks the user to rephrase."""
        mock_client.call.return_value = {"success": False, "error": "model refused"}
        state = make_state("how do I hack wifi", IntentType.COMMAND_GUIDE)

        await node.run(state)

        assert state.error == "model refused"
        assert "rephras" in state.answer

    def test_format_guide_with_troubleshooting(self):
        """Test string steps and troubleshooting items render as lists."""
        text = format_guide({
            "title": "Reset DNS",
            "steps": ["Open Terminal", "Flush cache"],
            "troubleshooting": [{"problem": "Permission denied", "solution": "Use sudo"}],
        })
        assert "1. Open Terminal" in text
        assert "- **Permission denied**: Use sudo" in text


# ---------------------------------------------------------------------------
# AUTOMATE
# ---------------------------------------------------------------------------

class TestComputerUse:
    """Tests for computer-use automation."""

    @pytest.mark.asyncio
    async def test_computer_use_started(self, node, mock_client):
        """Test a successful initiation returns immediately with session slots."""
        mock_client.call.return_value = {"success": True, "automationId": "auto-1"}
        state = make_state("fill out the signup form for me", IntentType.COMMAND_AUTOMATE)

        await node.run(state)

        assert called_actions(mock_client) == ["command.computer-use"]
        slots = state.intent_context.slots
        assert slots["mode"] == "computer_use"
        assert slots["automationId"] == "auto-1"
        assert slots["status"] == "started"
        assert slots["goal"] == "fill out the signup form for me"
        assert state.answer is None

    @pytest.mark.asyncio
    async def test_declined_computer_use_falls_back_to_static_plan(self, node, mock_client):
        """Test a declined session falls back to command.automate."""
        mock_client.call.side_effect = [
            {"success": False, "error": "No display"},
            {"success": True, "plan": {"planId": "p1", "steps": [{"action": "click"}]}},
        ]
        state = make_state("click the blue button for me", IntentType.COMMAND_AUTOMATE)

        await node.run(state)

        assert called_actions(mock_client) == ["command.computer-use", "command.automate"]
        assert state.context.computer_use_failed is True
        assert state.intent_context.slots["computerUseFailed"] is True
        assert state.intent_context.slots["planId"] == "p1"

    @pytest.mark.asyncio
    async def test_remote_error_falls_back_to_static_plan(self, node, mock_client):
        """Test a remote error on initiation also falls back."""
        mock_client.call.side_effect = [
            RemoteServiceError("agent crashed", code="INTERNAL_ERROR"),
            {"success": True, "message": "Opened Notes."},
        ]
        state = make_state("open notes and type hello for me", IntentType.COMMAND_AUTOMATE)

        await node.run(state)

        assert called_actions(mock_client) == ["command.computer-use", "command.automate"]
        assert state.answer == "Opened Notes."
        assert state.command_executed is True

    @pytest.mark.asyncio
    async def test_disabled_by_request(self, node, mock_client):
        """Test the request context can opt out of computer-use."""
        mock_client.call.return_value = {"success": True, "message": "Done."}
        state = make_state("book a table", IntentType.COMMAND_AUTOMATE, disable_computer_use=True)

        await node.run(state)

        assert called_actions(mock_client) == ["command.automate"]


class TestStaticPlan:
    """Tests for static automation plans."""

    @pytest.fixture
    def node(self, mock_client, config) -> CommandExecutionNode:
        config.COMPUTER_USE_ENABLED = False
        return CommandExecutionNode(mock_client, config=config)

    @pytest.mark.asyncio
    async def test_plan_with_three_steps(self, node, mock_client):
        """Test a returned plan lands in slots and the answer is left to the overlay."""
        mock_client.call.return_value = {
            "success": True,
            "plan": {"planId": "p1", "steps": ["s1", "s2", "s3"], "metadata": {"provider": "gemini"}},
        }
        state = make_state("organize my desktop", IntentType.COMMAND_AUTOMATE)

        await node.run(state)

        slots = state.intent_context.slots
        assert slots["totalSteps"] == 3
        assert slots["planId"] == "p1"
        assert slots["automationPlan"]["metadata"]["provider"] == "gemini"
        assert slots["goal"] == "organize my desktop"
        assert state.answer is None
        assert state.command_executed is False
        assert mock_client.call.call_args.kwargs["timeout_ms"] == 300_000

    @pytest.mark.asyncio
    async def test_needs_clarification(self, node, mock_client):
        """Test planner questions suspend the workflow with a question list."""
        mock_client.call.return_value = {
            "success": True,
            "needsClarification": True,
            "clarificationQuestions": ["Which restaurant?", "For how many people?"],
        }
        state = make_state("book a table for dinner", IntentType.COMMAND_AUTOMATE)

        await node.run(state)

        slots = state.intent_context.slots
        assert state.needs_clarification is True
        assert state.clarification_questions == ["Which restaurant?", "For how many people?"]
        assert slots["originalCommand"] == "book a table for dinner"
        assert slots["needsClarification"] is True
        assert "1. Which restaurant?" in state.answer

    @pytest.mark.asyncio
    async def test_clarification_answer_replans_original_command(self, node, mock_client):
        """Test the next message is sent as the answer to the pending questions."""
        history = [
            ConversationTurn(role="user", content="book a table for dinner"),
            ConversationTurn(
                role="assistant",
                content="I need a bit more information...",
                metadata={
                    "needsClarification": True,
                    "originalCommand": "book a table for dinner",
                    "clarificationQuestions": ["Which restaurant?"],
                },
            ),
        ]
        mock_client.call.return_value = {"success": True, "plan": {"planId": "p2", "steps": ["s1"]}}
        state = make_state("Nopa, at 8pm", IntentType.COMMAND_AUTOMATE, history=history)

        await node.run(state)

        payload = mock_client.call.call_args.args[2]
        assert payload["command"] == "book a table for dinner"
        assert payload["clarificationAnswers"] == {
            "userResponse": "Nopa, at 8pm",
            "questions": ["Which restaurant?"],
        }
        assert state.intent_context.slots["planId"] == "p2"

    @pytest.mark.asyncio
    async def test_uncertain_result(self, node, mock_client):
        """Test an unverifiable side effect is reported as attempted, not failed."""
        mock_client.call.return_value = {"success": False, "uncertainResult": True}
        state = make_state("send the report to my manager", IntentType.COMMAND_AUTOMATE)

        await node.run(state)

        assert state.answer == UNCERTAIN_ANSWER
        assert state.command_executed is True
        assert state.error is None
        assert state.intent_context.slots["uncertainResult"] is True

    @pytest.mark.asyncio
    async def test_failed_automation(self, node, mock_client):
        """Test a confirmed failure sets the error."""
        mock_client.call.return_value = {"success": False, "error": "Window not found"}
        state = make_state("resize the window", IntentType.COMMAND_AUTOMATE)

        await node.run(state)

        assert state.error == "Window not found"
        assert state.command_executed is False
        assert "Window not found" in state.answer

    @pytest.mark.asyncio
    async def test_custom_verifier(self, mock_client, config):
        """Test the outcome policy is pluggable."""
        class AlwaysUncertain(AutomationVerifier):
            def assess(self, response):
                return AutomationOutcome.UNCERTAIN

        config.COMPUTER_USE_ENABLED = False
        node = CommandExecutionNode(mock_client, verifier=AlwaysUncertain(), config=config)
        mock_client.call.return_value = {"success": True}
        state = make_state("archive old emails", IntentType.COMMAND_AUTOMATE)

        await node.run(state)

        assert state.answer == UNCERTAIN_ANSWER
