"""
Embedders - Text similarity backends for semantic intent scoring.

The classifier only needs one capability: turn text into a vector.
Anything with an `embed(text)` method satisfies the Embedder protocol.

Backends:
- OpenAIEmbedder: OpenAI embeddings API (network, enabled by settings)
- WordOverlapSimilarity: used when no embedder is configured (or the
  embedder fails); Jaccard overlap against the raw exemplar texts.
  Deterministic and hermetic, which is what tests use.

Usage:
    embedder = build_embedder()          # None unless embeddings are enabled
    classifier = IntentClassifier(embedder=embedder)
"""

import logging
import math
import re
from typing import List, Optional, Protocol, Sequence, runtime_checkable

from openai import OpenAI

from relay.core.config import Settings, settings as default_settings


logger = logging.getLogger("relay.ai.intent.embedder")

_TOKEN_RE = re.compile(r"[a-z0-9']+")


@runtime_checkable
class Embedder(Protocol):
    """Anything that maps text to a dense vector."""

    def embed(self, text: str) -> Sequence[float]:
        ...


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity; 0.0 for empty or zero-length vectors."""
    if not a or not b or len(a) != len(b):
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


def tokenize(text: str) -> set:
    """Lowercased word tokens of at least 3 characters."""
    return {token for token in _TOKEN_RE.findall(text.lower()) if len(token) >= 3}


def word_overlap(a: str, b: str) -> float:
    """Jaccard similarity over the 3+ character tokens of both texts."""
    tokens_a = tokenize(a)
    tokens_b = tokenize(b)
    if not tokens_a or not tokens_b:
        return 0.0
    return len(tokens_a & tokens_b) / len(tokens_a | tokens_b)


class WordOverlapSimilarity:
    """Lexical stand-in for embeddings: best word overlap against exemplar texts."""

    def best_match(self, text: str, exemplars: Sequence[str]) -> float:
        return max((word_overlap(text, exemplar) for exemplar in exemplars), default=0.0)


class OpenAIEmbedder:
    """
    Embeddings from the OpenAI API.

    Raises whatever the OpenAI client raises; the classifier catches it
    and falls back to word overlap for that call.
    """

    def __init__(self, model: Optional[str] = None, api_key: Optional[str] = None):
        self.model = model or default_settings.OPENAI_EMBEDDING_MODEL
        self.api_key = api_key or default_settings.OPENAI_API_KEY
        self._client = OpenAI(api_key=self.api_key)
        logger.info(f"OpenAI embedder initialized with model: {self.model}")

    def embed(self, text: str) -> List[float]:
        response = self._client.embeddings.create(model=self.model, input=text)
        return list(response.data[0].embedding)


def build_embedder(config: Optional[Settings] = None) -> Optional[Embedder]:
    """
    Embedder selected by settings.

    Returns None (word-overlap fallback) unless INTENT_EMBEDDINGS_ENABLED
    is set and an OpenAI key is configured.
    """
    config = config or default_settings
    if not config.INTENT_EMBEDDINGS_ENABLED:
        return None
    if not config.OPENAI_API_KEY:
        logger.warning("Intent embeddings enabled but OPENAI_API_KEY is not set - using word overlap")
        return None
    return OpenAIEmbedder(model=config.OPENAI_EMBEDDING_MODEL, api_key=config.OPENAI_API_KEY)
