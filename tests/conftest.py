"""
Test configuration and fixtures for pytest.

This module provides shared fixtures used across all tests:
- Isolated metrics collectors and breaker registries (no process globals)
- A ServiceClient wired to httpx.MockTransport
- A mocked ServiceClient for node tests
- State factories
"""

import json
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from relay.ai.intent.classifier import IntentClassifier
from relay.ai.intent.entities import EntityExtractor
from relay.core.config import Settings
from relay.monitoring.metrics import MetricsCollector
from relay.services.circuit_breaker import BreakerRegistry
from relay.services.client import ServiceClient
from relay.services.registry import build_service_registry
from relay.workflow.intents import IntentType
from relay.workflow.state import ConversationTurn, RequestContext, WorkflowIntent, WorkflowState


FIXED_NOW = datetime(2025, 3, 14, 9, 30, 0)


class FakeClock:
    """Monotonic clock the tests advance by hand (seconds)."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance_ms(self, ms: float) -> None:
        self.now += ms / 1000


# ---------------------------------------------------------------------------
# CONFIG / METRICS / BREAKERS
# ---------------------------------------------------------------------------

@pytest.fixture
def config() -> Settings:
    """Settings with fast, deterministic values."""
    return Settings(
        _env_file=None,
        SERVICE_API_KEY="test-key",
        BREAKER_FAILURE_THRESHOLD=3,
        BREAKER_COOLDOWN_MS=1_000,
        RETRY_MAX_ATTEMPTS=3,
        RETRY_INITIAL_DELAY_MS=100,
        RETRY_MAX_DELAY_MS=1_000,
        INTENT_EMBEDDINGS_ENABLED=False,
        COMPUTER_USE_ENABLED=True,
    )


@pytest.fixture
def metrics() -> MetricsCollector:
    return MetricsCollector(history_size=100, latency_window=100)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def breakers(metrics: MetricsCollector, clock: FakeClock, config: Settings) -> BreakerRegistry:
    return BreakerRegistry(
        failure_threshold=config.BREAKER_FAILURE_THRESHOLD,
        cooldown_ms=config.BREAKER_COOLDOWN_MS,
        on_state_change=metrics.record_breaker_transition,
        clock=clock,
    )


# ---------------------------------------------------------------------------
# SERVICE CLIENT OVER MOCK TRANSPORT
# ---------------------------------------------------------------------------

def ok_envelope(data: Dict[str, Any], status_code: int = 200) -> httpx.Response:
    """mcp.v1 success response."""
    return httpx.Response(status_code, json={"status": "ok", "data": data})


def error_envelope(code: str, message: str, retryable: bool = False, status_code: int = 200) -> httpx.Response:
    """mcp.v1 error response."""
    return httpx.Response(
        status_code,
        json={"status": "error", "error": {"code": code, "message": message, "retryable": retryable}},
    )


class RecordingTransport:
    """Collects every request the client sends and answers with `handler`."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.handler = handler
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    def bodies(self) -> List[Dict[str, Any]]:
        return [json.loads(request.content) for request in self.requests]


@pytest.fixture
def make_service_client(config: Settings, breakers: BreakerRegistry, metrics: MetricsCollector):
    """Factory: ServiceClient whose HTTP calls go to a RecordingTransport."""
    def factory(handler: Callable[[httpx.Request], httpx.Response], rng: Optional[Callable[[], float]] = None):
        transport = RecordingTransport(handler)
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(transport))
        client = ServiceClient(
            build_service_registry(config),
            breakers,
            metrics,
            http_client=http_client,
            config=config,
            sleep=AsyncMock(),
            rng=rng or (lambda: 0.5),
        )
        return client, transport
    return factory


# ---------------------------------------------------------------------------
# NODE TEST HELPERS
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_client() -> MagicMock:
    """ServiceClient stand-in; set mock_client.call.return_value / side_effect per test."""
    client = MagicMock(spec=ServiceClient)
    client.call = AsyncMock(return_value={"success": True})
    return client


@pytest.fixture
def classifier(config: Settings) -> IntentClassifier:
    """Word-overlap classifier with a fixed clock for entity dates."""
    return IntentClassifier(
        embedder=None,
        extractor=EntityExtractor(clock=lambda: FIXED_NOW),
        config=config,
    )


def make_state(
    message: str,
    intent: Optional[IntentType] = None,
    history: Optional[List[ConversationTurn]] = None,
    **context: Any,
) -> WorkflowState:
    """WorkflowState for a message, optionally with a preset intent."""
    return WorkflowState(
        message=message,
        intent=WorkflowIntent(type=intent, confidence=0.9) if intent else None,
        context=RequestContext(user_id="user-1", session_id="session-1", **context),
        conversation_history=history or [],
    )
