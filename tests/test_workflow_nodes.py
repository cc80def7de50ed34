"""
Tests for the workflow nodes other than command execution.

The ServiceClient is mocked; the classifier is the real word-overlap
classifier from conftest.

This module tests:
- parse_intent: classification to routable intent, presets, pending
  clarifications, low-confidence clarification
- answer: local greetings, command interpretation, failure fallbacks
- store_memory / retrieve_memory
- web_search
- screen_intelligence
"""

import pytest

from conftest import FIXED_NOW, make_state
from relay.ai.intent.classifier import IntentClassifier
from relay.ai.intent.entities import EntityExtractor
from relay.ai.intent.schemas import IntentCategory
from relay.core.config import Settings
from relay.services.errors import ServiceTimeoutError, ServiceUnavailableError
from relay.workflow.intents import IntentType
from relay.workflow.nodes.answer import FAILED_ANSWER, TIMEOUT_ANSWER, AnswerNode
from relay.workflow.nodes.memory import (
    STORE_FAILED_ANSWER,
    RetrieveMemoryNode,
    StoreMemoryNode,
)
from relay.workflow.nodes.parse_intent import ParseIntentNode
from relay.workflow.nodes.screen import ScreenIntelligenceNode
from relay.workflow.nodes.web_search import WebSearchNode, build_search_query
from relay.workflow.state import ConversationTurn


# ---------------------------------------------------------------------------
# PARSE INTENT
# ---------------------------------------------------------------------------

class TestParseIntent:
    """Tests for the entry node."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("message, expected", [
        ("take a screenshot", IntentType.COMMAND_EXECUTE),
        ("walk me through how to run the backup script", IntentType.COMMAND_GUIDE),
        ("open gmail and send an email for me", IntentType.COMMAND_AUTOMATE),
        ("what's the weather forecast today", IntentType.WEB_SEARCH),
        ("what is on my screen right now", IntentType.SCREEN_INTELLIGENCE),
        ("why is the sky blue", IntentType.QUESTION),
        ("remember my dentist appointment", IntentType.MEMORY_STORE),
        ("hello", IntentType.GREETING),
    ])
    async def test_routes_messages(self, classifier, config, message, expected):
        """Test messages land on the expected routable intent."""
        state = make_state(message)

        await ParseIntentNode(classifier, config).run(state)

        assert state.intent.type == expected
        assert state.intent_context.intent == expected
        assert state.classification is not None
        assert state.needs_clarification is False

    @pytest.mark.asyncio
    async def test_confidence_comes_from_classifier(self, classifier, config):
        """Test the intent carries the classifier's confidence."""
        state = make_state("take a screenshot")

        await ParseIntentNode(classifier, config).run(state)

        assert state.intent.confidence == pytest.approx(0.85)
        assert state.classification.capture_screen is True

    @pytest.mark.asyncio
    async def test_resolved_message_is_classified(self, classifier, config):
        """Test classification uses the resolved message when present."""
        state = make_state("do it again")
        state.resolved_message = "take a screenshot"

        await ParseIntentNode(classifier, config).run(state)

        assert state.intent.type == IntentType.COMMAND_EXECUTE

    @pytest.mark.asyncio
    async def test_preset_intent_is_kept(self, classifier, config):
        """Test a request that already carries an intent skips classification."""
        state = make_state("hello", IntentType.WEB_SEARCH)

        await ParseIntentNode(classifier, config).run(state)

        assert state.intent.type == IntentType.WEB_SEARCH
        assert state.classification is None
        assert state.intent_context.intent == IntentType.WEB_SEARCH

    @pytest.mark.asyncio
    async def test_pending_clarification_routes_to_automation(self, classifier, config):
        """Test an answer to planner questions goes back to command_automate."""
        history = [
            ConversationTurn(role="user", content="book a table for dinner"),
            ConversationTurn(
                role="assistant",
                content="I need a bit more information before I can do that:",
                metadata={
                    "needsClarification": True,
                    "originalCommand": "book a table for dinner",
                    "clarificationQuestions": ["Which restaurant?"],
                },
            ),
        ]
        state = make_state("hello", history=history)

        await ParseIntentNode(classifier, config).run(state)

        assert state.intent.type == IntentType.COMMAND_AUTOMATE
        assert state.intent.confidence == 1.0
        assert state.classification is None

    @pytest.mark.asyncio
    async def test_answered_clarification_is_not_pending(self, classifier, config):
        """Test a later assistant turn closes the earlier question."""
        history = [
            ConversationTurn(
                role="assistant",
                content="Which restaurant?",
                metadata={"needsClarification": True, "originalCommand": "book a table for dinner"},
            ),
            ConversationTurn(role="user", content="Nopa"),
            ConversationTurn(role="assistant", content="Done, your table is booked."),
        ]
        state = make_state("hello", history=history)

        await ParseIntentNode(classifier, config).run(state)

        assert state.intent.type == IntentType.GREETING

    @pytest.mark.asyncio
    async def test_low_confidence_asks_for_clarification(self):
        """Test results under the threshold suspend with a prompt and candidates."""
        config = Settings(_env_file=None, INTENT_CLARIFICATION_THRESHOLD=0.9, INTENT_EMBEDDINGS_ENABLED=False)
        classifier = IntentClassifier(
            embedder=None,
            extractor=EntityExtractor(clock=lambda: FIXED_NOW),
            config=config,
        )
        state = make_state("take a screenshot")

        await ParseIntentNode(classifier, config).run(state)

        assert state.needs_clarification is True
        assert state.answer == state.classification.clarification_prompt
        assert state.clarification_questions == [state.answer]
        assert state.intent_context.slots["possibleIntents"][0] == IntentCategory.COMMAND.value


# ---------------------------------------------------------------------------
# ANSWER
# ---------------------------------------------------------------------------

class TestAnswerNode:
    """Tests for final answer generation."""

    @pytest.mark.asyncio
    async def test_greeting_is_answered_locally(self, mock_client, classifier, config):
        """Test greetings use the classifier's suggestion without an LLM call."""
        state = make_state("hello", IntentType.GREETING)
        state.classification = classifier.classify("hello")

        await AnswerNode(mock_client, config).run(state)

        mock_client.call.assert_not_awaited()
        assert state.answer == "Good to see you! How may I help?"

    @pytest.mark.asyncio
    async def test_command_output_is_interpreted(self, mock_client, config):
        """Test raw command output is sent for interpretation."""
        mock_client.call.return_value = {"answer": "Your CPU is mostly idle."}
        state = make_state("how busy is my cpu", IntentType.COMMAND_EXECUTE)
        state.needs_interpretation = True
        state.executed_command = "top -l 1"
        state.command_output = "CPU usage: 12% user"

        await AnswerNode(mock_client, config).run(state)

        service, action, payload = mock_client.call.call_args.args
        assert (service, action) == ("llm", "general.answer")
        assert payload["query"] == "how busy is my cpu"
        assert payload["intent"] == "command_execute"
        assert payload["commandOutput"] == {"command": "top -l 1", "output": "CPU usage: 12% user"}
        assert mock_client.call.call_args.kwargs["timeout_ms"] == config.ANSWER_TIMEOUT_MS
        assert state.answer == "Your CPU is mostly idle."
        assert state.needs_interpretation is False

    @pytest.mark.asyncio
    async def test_answer_is_not_retried(self, mock_client, config):
        """Test answer generation is side-effecting and asks for a single attempt."""
        mock_client.call.return_value = {"answer": "Paris."}
        state = make_state("what is the capital of france", IntentType.QUESTION)

        await AnswerNode(mock_client, config).run(state)

        assert mock_client.call.await_count == 1
        assert mock_client.call.call_args.kwargs.get("retry", False) is False

    @pytest.mark.asyncio
    async def test_context_uses_longer_timeout(self, mock_client, config):
        """Test answers grounded on documents get the longer timeout."""
        mock_client.call.return_value = {"text": "It will be sunny."}
        state = make_state("what's the weather", IntentType.WEB_SEARCH)
        state.context_docs = [{"id": "w1", "text": "Sunny", "source": "web_search"}]

        await AnswerNode(mock_client, config).run(state)

        assert mock_client.call.call_args.kwargs["timeout_ms"] == config.ANSWER_WITH_CONTEXT_TIMEOUT_MS
        assert mock_client.call.call_args.args[2]["contextDocs"] == state.context_docs
        assert state.answer == "It will be sunny."

    @pytest.mark.asyncio
    async def test_history_is_trimmed(self, mock_client, config):
        """Test only the last ten turns are sent."""
        history = [ConversationTurn(role="user", content=f"message {i}") for i in range(15)]
        state = make_state("and now?", IntentType.QUESTION, history=history)
        mock_client.call.return_value = {"answer": "ok"}

        await AnswerNode(mock_client, config).run(state)

        sent = mock_client.call.call_args.args[2]["conversationHistory"]
        assert len(sent) == 10
        assert sent[0]["content"] == "message 5"

    @pytest.mark.asyncio
    async def test_failure_falls_back_to_raw_output(self, mock_client, config):
        """Test a failed interpretation still shows the command output."""
        mock_client.call.side_effect = ServiceUnavailableError("llm down")
        state = make_state("how busy is my cpu", IntentType.COMMAND_EXECUTE)
        state.needs_interpretation = True
        state.command_output = "CPU usage: 12% user\n"

        await AnswerNode(mock_client, config).run(state)

        assert state.answer == "Here's the output:\n```\nCPU usage: 12% user\n```"
        assert state.error is None

    @pytest.mark.asyncio
    async def test_failure_without_output(self, mock_client, config):
        """Test a failed answer apologizes and records the error."""
        mock_client.call.side_effect = ServiceUnavailableError("llm down")
        state = make_state("why is the sky blue", IntentType.QUESTION)

        await AnswerNode(mock_client, config).run(state)

        assert state.answer == FAILED_ANSWER
        assert state.error == "llm down"

    @pytest.mark.asyncio
    async def test_timeout(self, mock_client, config):
        """Test a timed-out answer asks the user to try again."""
        mock_client.call.side_effect = ServiceTimeoutError("llm/general.answer timed out after 30000ms")
        state = make_state("why is the sky blue", IntentType.QUESTION)

        await AnswerNode(mock_client, config).run(state)

        assert state.answer == TIMEOUT_ANSWER

    @pytest.mark.asyncio
    async def test_empty_response(self, mock_client, config):
        """Test a response without text is treated as a failed answer."""
        mock_client.call.return_value = {}
        state = make_state("why is the sky blue", IntentType.QUESTION)

        await AnswerNode(mock_client, config).run(state)

        assert state.answer == FAILED_ANSWER
        assert state.error is None


# ---------------------------------------------------------------------------
# MEMORY
# ---------------------------------------------------------------------------

class TestStoreMemory:
    """Tests for store_memory."""

    @pytest.mark.asyncio
    async def test_store(self, mock_client, classifier, config):
        """Test the message is stored with tags and entities."""
        message = "remember my meeting tomorrow at 3pm"
        mock_client.call.return_value = {"id": "mem-1"}
        state = make_state(message, IntentType.MEMORY_STORE)
        state.classification = classifier.classify(message)

        await StoreMemoryNode(mock_client, config).run(state)

        service, action, payload = mock_client.call.call_args.args
        assert (service, action) == ("user-memory", "memory.store")
        assert payload["text"] == message
        assert payload["tags"][:2] == ["user_memory", "memory_store"]
        assert len(payload["entities"]) == len(state.classification.entities)
        assert payload["metadata"]["userId"] == "user-1"
        assert state.answer == state.classification.suggested_response
        assert state.intent_context.slots == {"memoryId": "mem-1", "stored": True}
        assert state.error is None

    @pytest.mark.asyncio
    async def test_store_without_classification(self, mock_client, config):
        """Test a preset intent still stores and confirms."""
        mock_client.call.return_value = {"memoryId": "mem-2"}
        state = make_state("my locker code is 4512", IntentType.MEMORY_STORE)

        await StoreMemoryNode(mock_client, config).run(state)

        assert state.answer == "Got it! I'll remember that."
        assert state.intent_context.slots["memoryId"] == "mem-2"

    @pytest.mark.asyncio
    async def test_store_failure(self, mock_client, config):
        """Test a failed store is reported to the user."""
        mock_client.call.side_effect = ServiceUnavailableError("memory down")
        state = make_state("remember my locker code", IntentType.MEMORY_STORE)

        await StoreMemoryNode(mock_client, config).run(state)

        assert state.answer == STORE_FAILED_ANSWER
        assert state.error == "memory down"


class TestRetrieveMemory:
    """Tests for retrieve_memory."""

    @pytest.mark.asyncio
    async def test_collects_messages_and_memories(self, mock_client, config):
        """Test both lookups feed the state."""
        async def fake_call(service, action, payload, **kwargs):
            if action == "message.list":
                return {"messages": [{"role": "user", "content": "hi"}]}
            return {"results": [{"text": "Locker code is 4512", "similarity": 0.8}]}

        mock_client.call.side_effect = fake_call
        state = make_state("what's my locker code", IntentType.MEMORY_RETRIEVE)

        await RetrieveMemoryNode(mock_client, config).run(state)

        assert [c.args[1] for c in mock_client.call.call_args_list] == ["message.list", "memory.search"]
        search_payload = mock_client.call.call_args_list[1].args[2]
        assert search_payload["query"] == "what's my locker code"
        assert search_payload["minSimilarity"] == 0.4
        assert state.session_messages == [{"role": "user", "content": "hi"}]
        assert state.memories[0]["text"] == "Locker code is 4512"

    @pytest.mark.asyncio
    async def test_failures_degrade_to_empty(self, mock_client, config):
        """Test unavailable services leave the lists empty without an error."""
        mock_client.call.side_effect = ServiceUnavailableError("down")
        state = make_state("what's my locker code", IntentType.MEMORY_RETRIEVE)

        await RetrieveMemoryNode(mock_client, config).run(state)

        assert state.memories == []
        assert state.session_messages == []
        assert state.error is None
        assert state.answer is None

    @pytest.mark.asyncio
    async def test_no_session_skips_message_list(self, mock_client, config):
        """Test session history is only fetched for a known session."""
        mock_client.call.return_value = {"memories": []}
        state = make_state("what's my locker code", IntentType.MEMORY_RETRIEVE)
        state.context.session_id = None

        await RetrieveMemoryNode(mock_client, config).run(state)

        assert [c.args[1] for c in mock_client.call.call_args_list] == ["memory.search"]

    @pytest.mark.asyncio
    async def test_collect_does_not_mutate(self, mock_client, config):
        """Test collect only returns updates."""
        mock_client.call.return_value = {"results": [{"text": "x"}]}
        state = make_state("what's my locker code", IntentType.MEMORY_RETRIEVE)

        updates = await RetrieveMemoryNode(mock_client, config).collect(state)

        assert updates["memories"] == [{"text": "x"}]
        assert state.memories == []


# ---------------------------------------------------------------------------
# WEB SEARCH
# ---------------------------------------------------------------------------

class TestWebSearch:
    """Tests for web_search."""

    @pytest.mark.parametrize("text, expected", [
        ("search for weather in Paris", "weather in Paris"),
        ("Google best pizza nearby", "best pizza nearby"),
        ("what's the weather", "what's the weather"),
        ("search", "search"),
    ])
    def test_build_search_query(self, text, expected):
        """Test search verbs are stripped from the query."""
        assert build_search_query(text) == expected

    @pytest.mark.asyncio
    async def test_results_become_context_docs(self, mock_client, config):
        """Test results are kept and converted to context documents."""
        mock_client.call.return_value = {
            "results": [
                {"title": "Paris forecast", "snippet": "Sunny, 24C", "url": "https://weather.example/paris"},
                "not a result",
            ],
        }
        state = make_state("search for weather in Paris", IntentType.WEB_SEARCH)

        await WebSearchNode(mock_client, config).run(state)

        service, action, payload = mock_client.call.call_args.args
        assert (service, action) == ("web-search", "search.web")
        assert payload == {"query": "weather in Paris", "limit": 5}
        assert len(state.search_results) == 1
        assert state.context_docs == [{
            "id": "https://weather.example/paris",
            "text": "Paris forecast\nSunny, 24C",
            "source": "web_search",
            "url": "https://weather.example/paris",
        }]
        assert state.intent_context.slots["query"] == "weather in Paris"

    @pytest.mark.asyncio
    async def test_timeout_asks_to_try_again(self, mock_client, config):
        """Test a timed-out search answers directly and flags an error slot."""
        mock_client.call.side_effect = ServiceTimeoutError("web-search/search.web timed out")
        state = make_state("latest news", IntentType.WEB_SEARCH)

        await WebSearchNode(mock_client, config).run(state)

        assert state.answer == "The web search took too long. Please try again."
        assert state.intent_context.slots["error"] == "Web search timed out"

    @pytest.mark.asyncio
    async def test_failure_continues_without_results(self, mock_client, config):
        """Test other failures leave no results and no answer."""
        mock_client.call.side_effect = ServiceUnavailableError("down")
        state = make_state("latest news", IntentType.WEB_SEARCH)

        await WebSearchNode(mock_client, config).run(state)

        assert state.search_results == []
        assert state.answer is None
        assert state.error is None


# ---------------------------------------------------------------------------
# SCREEN INTELLIGENCE
# ---------------------------------------------------------------------------

class TestScreenIntelligence:
    """Tests for screen_intelligence."""

    @pytest.mark.asyncio
    async def test_analysis(self, mock_client, config):
        """Test analysis is exposed in slots and context documents."""
        mock_client.call.return_value = {
            "analysis": "A code editor showing a Python file",
            "answer": "You're editing a Python file.",
        }
        state = make_state("what's on my screen", IntentType.SCREEN_INTELLIGENCE)

        await ScreenIntelligenceNode(mock_client, config).run(state)

        service, action, payload = mock_client.call.call_args.args
        assert (service, action) == ("screen-intelligence", "screen.analyze")
        assert payload["query"] == "what's on my screen"
        assert mock_client.call.call_args.kwargs["timeout_ms"] == config.SCREEN_TIMEOUT_MS
        assert state.intent_context.slots["analysis"] == "A code editor showing a Python file"
        assert state.context_docs[0]["source"] == "screen_intelligence"
        assert state.answer == "You're editing a Python file."

    @pytest.mark.asyncio
    async def test_analysis_without_answer(self, mock_client, config):
        """Test analysis alone leaves the answer to the answer node."""
        mock_client.call.return_value = {"text": "A browser with a news article"}
        state = make_state("summarize this article", IntentType.SCREEN_INTELLIGENCE)

        await ScreenIntelligenceNode(mock_client, config).run(state)

        assert state.answer is None
        assert state.context_docs[0]["text"] == "A browser with a news article"

    @pytest.mark.asyncio
    async def test_failure(self, mock_client, config):
        """Test a failed analysis answers with an apology and records the error."""
        mock_client.call.side_effect = ServiceUnavailableError("screen down")
        state = make_state("what's on my screen", IntentType.SCREEN_INTELLIGENCE)

        await ScreenIntelligenceNode(mock_client, config).run(state)

        assert state.error == "screen down"
        assert "couldn't analyze your screen" in state.answer

    @pytest.mark.asyncio
    async def test_timeout(self, mock_client, config):
        """Test a timed-out analysis asks the user to try again."""
        mock_client.call.side_effect = ServiceTimeoutError("screen timed out")
        state = make_state("what's on my screen", IntentType.SCREEN_INTELLIGENCE)

        await ScreenIntelligenceNode(mock_client, config).run(state)

        assert state.answer == "Analyzing your screen took too long. Please try again."
