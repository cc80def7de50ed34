"""
Intent Schemas - Pydantic models for classification results.

These schemas define the structure of a classified utterance.
Using Pydantic ensures type safety and validation.

Design Philosophy:
=================
- Immutable once created (frozen models): one result per utterance
- Validation at construction time (confidence bounded to [0, 1])
- Easy serialization to JSON/dict
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class IntentCategory(str, Enum):
    """
    Categories the classifier scores.

    MEMORY_STORE: User wants something remembered
    MEMORY_RETRIEVE: User asks about something stored earlier
    MEMORY_UPDATE: User wants to change a stored memory
    MEMORY_DELETE: User wants a stored memory forgotten
    COMMAND: User wants the computer to do something
    QUESTION: General question (default when nothing matches)
    GREETING: Small talk
    """
    MEMORY_STORE = "memory_store"
    MEMORY_RETRIEVE = "memory_retrieve"
    MEMORY_UPDATE = "memory_update"
    MEMORY_DELETE = "memory_delete"
    COMMAND = "command"
    QUESTION = "question"
    GREETING = "greeting"


class EntityType(str, Enum):
    """Entity families extracted from the original message."""
    DATETIME = "datetime"
    PERSON = "person"
    LOCATION = "location"
    EVENT = "event"
    CONTACT = "contact"
    CAPABILITY = "capability"
    TECHNOLOGY = "technology"
    ACTION = "action"


class Entity(BaseModel):
    """A span of the user's message with a type and a normalized value."""
    model_config = ConfigDict(frozen=True)

    type: EntityType
    value: str
    normalized_value: Optional[str] = None


class IntentScore(BaseModel):
    """One ranked candidate intent."""
    model_config = ConfigDict(frozen=True)

    intent: IntentCategory
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str = ""


class IntentResult(BaseModel):
    """
    Result of classifying one utterance.

    Example:
    {
        "intents": [{"intent": "command", "confidence": 0.85, "reasoning": "Pattern: 1, Semantic: 1.00"}],
        "primary_intent": "command",
        "confidence": 0.85,
        "entities": [],
        "requires_memory_access": false,
        "requires_external_data": false,
        "capture_screen": true,
        "suggested_response": "I'll handle that action.",
        "source_text": "take a screenshot"
    }
    """
    model_config = ConfigDict(frozen=True)

    intents: List[IntentScore] = Field(min_length=1, description="Ranked candidates, best first")
    primary_intent: IntentCategory
    confidence: float = Field(ge=0.0, le=1.0)
    entities: List[Entity] = Field(default_factory=list)
    requires_memory_access: bool = False
    requires_external_data: bool = False
    capture_screen: bool = False
    suggested_response: str = ""
    source_text: str = ""

    # Low-confidence results ask the user instead of committing
    needs_clarification: bool = False
    clarification_prompt: Optional[str] = None
    possible_intents: List[IntentCategory] = Field(default_factory=list)
