"""
Workflow Orchestrator - Entry point that wires the whole pipeline.

```
WorkflowRequest
      │
      ▼
WorkflowOrchestrator.run()
      │
      ├── IntentClassifier           (parse_intent)
      ├── ServiceClient ─┬─ ServiceRegistry
      │                  ├─ BreakerRegistry  (shared, injected)
      │                  └─ MetricsCollector (shared, injected)
      └── WorkflowGraph
              │
              ▼
        WorkflowState → WorkflowResponse
```

The breaker registry and metrics collector are built once per process
(see relay.deps) and passed in, so tests construct isolated instances
instead of resetting globals.

Usage:
    orchestrator = WorkflowOrchestrator.create(metrics=MetricsCollector())
    state = await orchestrator.run(WorkflowRequest(message="what's my ip"))
"""

import logging
from typing import Optional, Union

import httpx

from relay.ai.intent.classifier import IntentClassifier
from relay.ai.intent.embedder import build_embedder
from relay.core.config import Settings, settings as default_settings
from relay.monitoring.metrics import MetricsCollector
from relay.services.circuit_breaker import BreakerRegistry
from relay.services.client import ServiceClient
from relay.services.registry import ServiceRegistry, build_service_registry
from relay.workflow.graph import ParallelNode, WorkflowGraph
from relay.workflow.nodes.answer import AnswerNode
from relay.workflow.nodes.automation import AutomationVerifier
from relay.workflow.nodes.command import CommandExecutionNode
from relay.workflow.nodes.memory import RetrieveMemoryNode, StoreMemoryNode
from relay.workflow.nodes.overlay import OverlayVariantNode
from relay.workflow.nodes.parse_intent import ParseIntentNode
from relay.workflow.nodes.screen import ScreenIntelligenceNode
from relay.workflow.nodes.web_search import WebSearchNode
from relay.workflow.progress import ProgressCallback
from relay.workflow.schemas import WorkflowRequest
from relay.workflow.state import WorkflowState


logger = logging.getLogger("relay.workflow.orchestrator")


def build_breaker_registry(metrics: MetricsCollector, config: Optional[Settings] = None) -> BreakerRegistry:
    """Breaker registry whose transitions are reported to `metrics`."""
    config = config or default_settings
    return BreakerRegistry(
        failure_threshold=config.BREAKER_FAILURE_THRESHOLD,
        cooldown_ms=config.BREAKER_COOLDOWN_MS,
        on_state_change=metrics.record_breaker_transition,
    )


class WorkflowOrchestrator:
    """
    Runs requests through the workflow graph.

    Args:
        client: ServiceClient every node calls through
        classifier: IntentClassifier for parse_intent
        verifier: Automation outcome policy for the command node
        config: Settings
    """

    def __init__(
        self,
        client: ServiceClient,
        classifier: Optional[IntentClassifier] = None,
        verifier: Optional[AutomationVerifier] = None,
        config: Optional[Settings] = None,
    ):
        self.config = config or default_settings
        self.client = client
        self.classifier = classifier or IntentClassifier(embedder=build_embedder(self.config), config=self.config)

        web_search = WebSearchNode(client, self.config)
        retrieve_memory = RetrieveMemoryNode(client, self.config)
        self.graph = WorkflowGraph(
            [
                ParseIntentNode(self.classifier, self.config),
                CommandExecutionNode(client, verifier=verifier, config=self.config),
                web_search,
                retrieve_memory,
                ParallelNode("parallel_web_and_memory", [web_search, retrieve_memory]),
                StoreMemoryNode(client, self.config),
                ScreenIntelligenceNode(client, self.config),
                AnswerNode(client, self.config),
                OverlayVariantNode(config=self.config),
            ],
            max_iterations=self.config.WORKFLOW_MAX_ITERATIONS,
        )

    @classmethod
    def create(
        cls,
        metrics: MetricsCollector,
        breakers: Optional[BreakerRegistry] = None,
        registry: Optional[ServiceRegistry] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        classifier: Optional[IntentClassifier] = None,
        config: Optional[Settings] = None,
    ) -> "WorkflowOrchestrator":
        """Build the client stack from settings and return an orchestrator."""
        config = config or default_settings
        client = ServiceClient(
            registry or build_service_registry(config),
            breakers or build_breaker_registry(metrics, config),
            metrics,
            http_client=http_client,
            config=config,
        )
        return cls(client, classifier=classifier, config=config)

    @property
    def metrics(self) -> MetricsCollector:
        return self.client.metrics

    @property
    def breakers(self) -> BreakerRegistry:
        return self.client.breakers

    async def run(
        self,
        request: Union[WorkflowRequest, WorkflowState],
        on_progress: Optional[ProgressCallback] = None,
    ) -> WorkflowState:
        """Process one utterance end to end."""
        state = request.to_state() if isinstance(request, WorkflowRequest) else request
        logger.info(f"[{state.trace_id}] Processing: '{state.message[:80]}'")
        return await self.graph.run(state, on_progress=on_progress)

    async def aclose(self) -> None:
        await self.client.aclose()
