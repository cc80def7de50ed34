"""
Service Registry - Backend service descriptors and declared actions.

This module is the single source of truth for which backend services
exist, where they live, and which actions each one accepts.

Purpose:
========
1. Validate (service, action) pairs before any network attempt
2. Declare which actions are idempotent (safe to retry)
3. Resolve endpoints and default timeouts from settings

Usage:
======
```python
from relay.services.registry import build_service_registry

registry = build_service_registry()

descriptor = registry.get("command")
descriptor.allows("command.execute")       # True
descriptor.is_idempotent("command.execute")  # False - side effects
```
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional

from relay.core.config import Settings, settings as default_settings


logger = logging.getLogger("relay.services.registry")


# ---------------------------------------------------------------------------
# SERVICE NAMES
# ---------------------------------------------------------------------------

COMMAND_SERVICE = "command"
WEB_SEARCH_SERVICE = "web-search"
USER_MEMORY_SERVICE = "user-memory"
CONVERSATION_SERVICE = "conversation"
LLM_SERVICE = "llm"
SCREEN_SERVICE = "screen-intelligence"

# Every service answers these
HEALTH_ACTION = "health"
CAPABILITIES_ACTION = "capabilities"


# ---------------------------------------------------------------------------
# SERVICE DESCRIPTOR
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ServiceDescriptor:
    """
    Definition of a backend service.

    Attributes:
        name: Service identifier used in calls (e.g., "command")
        base_url: Root URL; actions are POSTed to {base_url}/{action}
        allowed_actions: Actions the service accepts
        idempotent_actions: Subset of allowed_actions that are read-only
        timeout_ms: Default timeout for this service's calls
        enabled: Disabled services reject every call
    """
    name: str
    base_url: str
    allowed_actions: FrozenSet[str]
    idempotent_actions: FrozenSet[str] = field(default_factory=frozenset)
    timeout_ms: Optional[int] = None
    enabled: bool = True

    def __post_init__(self):
        undeclared = self.idempotent_actions - self.allowed_actions
        if undeclared:
            raise ValueError(
                f"Service '{self.name}' marks undeclared actions as idempotent: {sorted(undeclared)}"
            )

    def allows(self, action: str) -> bool:
        return action in self.allowed_actions

    def is_idempotent(self, action: str) -> bool:
        return action in self.idempotent_actions

    def url_for(self, action: str) -> str:
        return f"{self.base_url.rstrip('/')}/{action}"


def _descriptor(
    name: str,
    base_url: str,
    actions: Iterable[str],
    idempotent: Iterable[str] = (),
    timeout_ms: Optional[int] = None,
) -> ServiceDescriptor:
    """Build a descriptor; health/capabilities are always declared and idempotent."""
    common = {HEALTH_ACTION, CAPABILITIES_ACTION}
    return ServiceDescriptor(
        name=name,
        base_url=base_url,
        allowed_actions=frozenset(actions) | common,
        idempotent_actions=frozenset(idempotent) | common,
        timeout_ms=timeout_ms,
    )


# ---------------------------------------------------------------------------
# SERVICE REGISTRY
# ---------------------------------------------------------------------------

class ServiceRegistry:
    """Registry of backend services keyed by name."""

    def __init__(self, descriptors: Iterable[ServiceDescriptor] = ()):
        self._services: Dict[str, ServiceDescriptor] = {}
        for descriptor in descriptors:
            self.register(descriptor)

    def register(self, descriptor: ServiceDescriptor) -> None:
        """Register (or replace) a service descriptor."""
        if descriptor.name in self._services:
            logger.warning(f"Overwriting existing service: {descriptor.name}")
        self._services[descriptor.name] = descriptor
        logger.debug(f"Registered service: {descriptor.name} ({len(descriptor.allowed_actions)} actions)")

    def get(self, name: str) -> Optional[ServiceDescriptor]:
        return self._services.get(name)

    def has_service(self, name: str) -> bool:
        return name in self._services

    def list_services(self) -> List[str]:
        return sorted(self._services)

    def __len__(self) -> int:
        return len(self._services)


def build_service_registry(config: Optional[Settings] = None) -> ServiceRegistry:
    """Registry of the built-in backend services, endpoints resolved from settings."""
    config = config or default_settings

    registry = ServiceRegistry([
        # -----------------------------------------------------------------------
        # COMMAND SERVICE - shell execution, guides, automation
        # -----------------------------------------------------------------------
        _descriptor(
            COMMAND_SERVICE,
            config.COMMAND_SERVICE_URL,
            actions={
                "command.execute",
                "command.interpret",
                "command.automate",
                "command.computer-use",
                "command.prompt-anywhere",
                "command.cancel-automation",
                "command.guide",
                "command.guide.execute",
                "system.query",
            },
            idempotent={"command.interpret", "system.query"},
            timeout_ms=config.COMMAND_TIMEOUT_MS,
        ),

        # -----------------------------------------------------------------------
        # WEB SEARCH
        # -----------------------------------------------------------------------
        _descriptor(
            WEB_SEARCH_SERVICE,
            config.WEB_SEARCH_SERVICE_URL,
            actions={"search.web", "search.news"},
            idempotent={"search.web", "search.news"},
        ),

        # -----------------------------------------------------------------------
        # USER MEMORY - long-term memories
        # -----------------------------------------------------------------------
        _descriptor(
            USER_MEMORY_SERVICE,
            config.USER_MEMORY_SERVICE_URL,
            actions={"memory.store", "memory.search", "memory.retrieve", "memory.update", "memory.delete"},
            idempotent={"memory.search", "memory.retrieve"},
        ),

        # -----------------------------------------------------------------------
        # CONVERSATION - session history and context
        # -----------------------------------------------------------------------
        _descriptor(
            CONVERSATION_SERVICE,
            config.CONVERSATION_SERVICE_URL,
            actions={"message.list", "message.add", "context.get"},
            idempotent={"message.list", "context.get"},
        ),

        # -----------------------------------------------------------------------
        # LLM - answer generation and intent parsing
        # -----------------------------------------------------------------------
        _descriptor(
            LLM_SERVICE,
            config.LLM_SERVICE_URL,
            actions={"general.answer", "intent.parse"},
            idempotent={"intent.parse"},
            timeout_ms=config.ANSWER_TIMEOUT_MS,
        ),

        # -----------------------------------------------------------------------
        # SCREEN INTELLIGENCE
        # -----------------------------------------------------------------------
        _descriptor(
            SCREEN_SERVICE,
            config.SCREEN_SERVICE_URL,
            actions={"screen.analyze"},
            idempotent={"screen.analyze"},
            timeout_ms=config.SCREEN_TIMEOUT_MS,
        ),
    ])

    logger.info(f"Service registry initialized with {len(registry)} services")
    return registry
