"""
Workflow Intents - The closed set of routable intents.

Every IntentType has exactly one IntentDescriptor saying which nodes
handle it and which UI variants its overlay can show. The graph checks
at construction that the table covers the whole enum, so adding an
IntentType without a route fails at startup rather than at request time.

Routing Table:
=============
    memory_store          store_memory
    memory_retrieve       retrieve_memory → answer
    web_search            parallel_web_and_memory → answer
    question              retrieve_memory → answer
    greeting              answer
    general               retrieve_memory → answer
    screen_intelligence   screen_intelligence → answer
    command_execute       execute_command → answer
    command_automate      execute_command
    command_guide         execute_command

parse_intent runs before the table, select_overlay_variant after it.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Mapping, Tuple


class IntentType(str, Enum):
    """Routable intents."""
    MEMORY_STORE = "memory_store"
    MEMORY_RETRIEVE = "memory_retrieve"
    WEB_SEARCH = "web_search"
    QUESTION = "question"
    GREETING = "greeting"
    GENERAL = "general"
    SCREEN_INTELLIGENCE = "screen_intelligence"
    COMMAND_EXECUTE = "command_execute"
    COMMAND_AUTOMATE = "command_automate"
    COMMAND_GUIDE = "command_guide"


COMMAND_INTENTS = frozenset({
    IntentType.COMMAND_EXECUTE,
    IntentType.COMMAND_AUTOMATE,
    IntentType.COMMAND_GUIDE,
})


# ---------------------------------------------------------------------------
# UI VARIANTS
# ---------------------------------------------------------------------------

VARIANT_LOADING = "loading"
VARIANT_RESULTS = "results"
VARIANT_CHOICE = "choice"
VARIANT_ERROR = "error"
VARIANT_AUTOMATION_PROGRESS = "automation_progress"
VARIANT_GUIDE_RENDERER = "guide_renderer"


@dataclass(frozen=True)
class IntentDescriptor:
    """Route and presentation metadata for one IntentType."""
    intent: IntentType
    nodes: Tuple[str, ...]
    ui_variants: Tuple[str, ...] = (VARIANT_RESULTS,)
    default_variant: str = VARIANT_RESULTS
    description: str = ""


def _descriptor(intent: IntentType, nodes: Iterable[str], ui_variants: Iterable[str] = (VARIANT_RESULTS,), description: str = "") -> IntentDescriptor:
    return IntentDescriptor(
        intent=intent,
        nodes=tuple(nodes),
        ui_variants=tuple(ui_variants),
        description=description,
    )


INTENT_DESCRIPTORS: Dict[IntentType, IntentDescriptor] = {
    IntentType.MEMORY_STORE: _descriptor(
        IntentType.MEMORY_STORE,
        ["store_memory"],
        description="Save something the user wants remembered",
    ),
    IntentType.MEMORY_RETRIEVE: _descriptor(
        IntentType.MEMORY_RETRIEVE,
        ["retrieve_memory", "answer"],
        description="Answer from the user's stored memories",
    ),
    IntentType.WEB_SEARCH: _descriptor(
        IntentType.WEB_SEARCH,
        ["parallel_web_and_memory", "answer"],
        [VARIANT_LOADING, VARIANT_CHOICE, VARIANT_RESULTS, VARIANT_ERROR],
        description="Answer from fresh web results",
    ),
    IntentType.QUESTION: _descriptor(
        IntentType.QUESTION,
        ["retrieve_memory", "answer"],
        [VARIANT_LOADING, VARIANT_CHOICE, VARIANT_RESULTS, VARIANT_ERROR],
        description="General knowledge question",
    ),
    IntentType.GREETING: _descriptor(
        IntentType.GREETING,
        ["answer"],
        description="Small talk",
    ),
    IntentType.GENERAL: _descriptor(
        IntentType.GENERAL,
        ["retrieve_memory", "answer"],
        description="Anything without a dedicated route",
    ),
    IntentType.SCREEN_INTELLIGENCE: _descriptor(
        IntentType.SCREEN_INTELLIGENCE,
        ["screen_intelligence", "answer"],
        [VARIANT_LOADING, VARIANT_RESULTS, VARIANT_ERROR],
        description="Questions about what is on the user's screen",
    ),
    IntentType.COMMAND_EXECUTE: _descriptor(
        IntentType.COMMAND_EXECUTE,
        ["execute_command", "answer"],
        [VARIANT_LOADING, VARIANT_RESULTS, VARIANT_ERROR],
        description="Run a shell-style command",
    ),
    IntentType.COMMAND_AUTOMATE: _descriptor(
        IntentType.COMMAND_AUTOMATE,
        ["execute_command"],
        [VARIANT_LOADING, VARIANT_RESULTS, VARIANT_AUTOMATION_PROGRESS, VARIANT_ERROR],
        description="Drive the UI to reach a goal",
    ),
    IntentType.COMMAND_GUIDE: _descriptor(
        IntentType.COMMAND_GUIDE,
        ["execute_command"],
        [VARIANT_LOADING, VARIANT_RESULTS, VARIANT_GUIDE_RENDERER, VARIANT_ERROR],
        description="Step-by-step tutorial",
    ),
}


def check_descriptors(descriptors: Mapping[IntentType, IntentDescriptor]) -> None:
    """Raise ValueError unless every IntentType has a well-formed descriptor."""
    missing = [intent.value for intent in IntentType if intent not in descriptors]
    if missing:
        raise ValueError(f"No route declared for intents: {', '.join(missing)}")
    for intent, descriptor in descriptors.items():
        if descriptor.intent != intent:
            raise ValueError(f"Descriptor for {intent.value} is registered as {descriptor.intent.value}")
        if descriptor.default_variant not in descriptor.ui_variants:
            raise ValueError(f"Default variant {descriptor.default_variant} not offered by {intent.value}")


def get_descriptor(intent: IntentType) -> IntentDescriptor:
    return INTENT_DESCRIPTORS[intent]
