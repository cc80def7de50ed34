"""
Intent Module - Classifying what the user wants.

Example Flow:
============
User says: "remind me about my dentist appointment tomorrow at 3pm"

IntentClassifier produces:
{
    "primary_intent": "memory_store",
    "confidence": 0.95,
    "entities": [
        {"type": "datetime", "value": "tomorrow", "normalized_value": "2025-01-02"},
        {"type": "datetime", "value": "3pm", "normalized_value": "15:00"},
        {"type": "event", "value": "appointment", "normalized_value": "appointment"}
    ],
    "requires_memory_access": true
}

The workflow's parse_intent node maps the category onto a routable
IntentType (see relay.workflow.intents).
"""

from relay.ai.intent.classifier import (
    IntentClassifier,
    calculate_confidence,
    combine_scores,
    fallback_result,
)
from relay.ai.intent.embedder import (
    Embedder,
    OpenAIEmbedder,
    WordOverlapSimilarity,
    build_embedder,
    cosine_similarity,
    word_overlap,
)
from relay.ai.intent.entities import EntityExtractor
from relay.ai.intent.schemas import (
    Entity,
    EntityType,
    IntentCategory,
    IntentResult,
    IntentScore,
)

__all__ = [
    "IntentClassifier",
    "calculate_confidence",
    "combine_scores",
    "fallback_result",
    "Embedder",
    "OpenAIEmbedder",
    "WordOverlapSimilarity",
    "build_embedder",
    "cosine_similarity",
    "word_overlap",
    "EntityExtractor",
    "Entity",
    "EntityType",
    "IntentCategory",
    "IntentResult",
    "IntentScore",
]
