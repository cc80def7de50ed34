"""
Intent Classifier - Hybrid pattern + semantic scoring.

Turns a raw utterance into a ranked intent distribution, entities and a
confidence, without calling an LLM. Runs on every request, so it has to
be fast and it must never fail.

How It Works:
============
```
text ──▶ lowercase ──▶ regex families per category ──▶ pattern[c]   (count)
  │
  └────▶ embedder / word overlap vs. exemplars ─────▶ semantic[c]  (0..1)

score[c] = 0.7 * pattern[c] + 0.3 * semantic[c]

best, second = top two scores
confidence   = min(0.95, 0.6 + 0.15*best + 0.1*(best - second))
               +0.1 when best > 1.0 (still capped at 0.95)
               0.5 and primary "question" when best == 0
```

Entities come from the original text (see entities.py) and do not
influence the intent.

Usage:
    classifier = IntentClassifier()
    result = classifier.classify("take a screenshot")
    result.primary_intent   # IntentCategory.COMMAND
    result.capture_screen   # True
"""

import logging
from threading import Lock
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from relay.ai.intent.embedder import Embedder, WordOverlapSimilarity, cosine_similarity
from relay.ai.intent.entities import EntityExtractor
from relay.ai.intent.patterns import (
    EXTERNAL_DATA_PATTERNS,
    FALLBACK_RESPONSES,
    FALLBACK_SUGGESTED_RESPONSE,
    INTENT_PATTERNS,
    INTENT_PRIORITY,
    MEMORY_ACCESS_PATTERNS,
    SCREENSHOT_PATTERNS,
    SEED_EXAMPLES,
)
from relay.ai.intent.schemas import IntentCategory, IntentResult, IntentScore
from relay.core.config import Settings, settings as default_settings


logger = logging.getLogger("relay.ai.intent.classifier")

PATTERN_WEIGHT = 0.7
SEMANTIC_WEIGHT = 0.3
MAX_CONFIDENCE = 0.95
NO_SIGNAL_CONFIDENCE = 0.5

_MEMORY_CATEGORIES = {
    IntentCategory.MEMORY_STORE,
    IntentCategory.MEMORY_RETRIEVE,
    IntentCategory.MEMORY_UPDATE,
    IntentCategory.MEMORY_DELETE,
}

# Phrases for the clarification prompt
_INTENT_DESCRIPTIONS = {
    IntentCategory.MEMORY_STORE: "remember something for you",
    IntentCategory.MEMORY_RETRIEVE: "recall something you told me",
    IntentCategory.MEMORY_UPDATE: "update something I remembered",
    IntentCategory.MEMORY_DELETE: "forget something I remembered",
    IntentCategory.COMMAND: "run a command on your computer",
    IntentCategory.QUESTION: "answer a question",
    IntentCategory.GREETING: "just chat",
}


# ---------------------------------------------------------------------------
# SCORING FUNCTIONS
# ---------------------------------------------------------------------------

def combine_scores(
    pattern: Mapping[IntentCategory, float],
    semantic: Mapping[IntentCategory, float],
) -> Dict[IntentCategory, float]:
    """0.7 * pattern + 0.3 * semantic for every category in either map."""
    categories = set(pattern) | set(semantic)
    return {
        category: PATTERN_WEIGHT * pattern.get(category, 0.0) + SEMANTIC_WEIGHT * semantic.get(category, 0.0)
        for category in categories
    }


def calculate_confidence(best: float, second: float) -> float:
    if best <= 0:
        return NO_SIGNAL_CONFIDENCE
    confidence = min(MAX_CONFIDENCE, 0.6 + 0.15 * best + 0.1 * (best - second))
    if best > 1.0:
        confidence = min(MAX_CONFIDENCE, confidence + 0.1)
    return max(0.0, confidence)


def rank_scores(scores: Mapping[IntentCategory, float]) -> List[Tuple[IntentCategory, float]]:
    """Highest score first; ties go to the higher-priority category."""
    return sorted(
        scores.items(),
        key=lambda item: (item[1], INTENT_PRIORITY.get(item[0], -1)),
        reverse=True,
    )


def fallback_result(text: str) -> IntentResult:
    """Result used when classification itself fails."""
    return IntentResult(
        intents=[IntentScore(
            intent=IntentCategory.QUESTION,
            confidence=NO_SIGNAL_CONFIDENCE,
            reasoning="Fallback after classification error",
        )],
        primary_intent=IntentCategory.QUESTION,
        confidence=NO_SIGNAL_CONFIDENCE,
        suggested_response=FALLBACK_SUGGESTED_RESPONSE,
        source_text=text,
    )


# ---------------------------------------------------------------------------
# CLASSIFIER
# ---------------------------------------------------------------------------

class IntentClassifier:
    """
    Hybrid intent classifier.

    Args:
        embedder: Optional Embedder for semantic scoring. When None, or when
                  it raises, word overlap against the exemplar texts is used.
        extractor: Entity extractor (inject one with a fixed clock in tests)
        config: Settings (clarification threshold)
        exemplars: Exemplar utterances per category
    """

    def __init__(
        self,
        embedder: Optional[Embedder] = None,
        extractor: Optional[EntityExtractor] = None,
        config: Optional[Settings] = None,
        exemplars: Optional[Mapping[IntentCategory, Sequence[str]]] = None,
    ):
        self.embedder = embedder
        self.extractor = extractor or EntityExtractor()
        self.config = config or default_settings
        self.exemplars = exemplars or SEED_EXAMPLES
        self._overlap = WordOverlapSimilarity()
        self._exemplar_vectors: Optional[Dict[IntentCategory, List[Sequence[float]]]] = None
        self._vectors_lock = Lock()

    def classify(self, text: str, response_text: str = "") -> IntentResult:
        """
        Classify one utterance. Never raises.

        Args:
            text: The user's message
            response_text: Optional assistant draft; used as the suggested
                           response when it is substantial

        Returns:
            IntentResult (fallback "question" result on internal error)
        """
        try:
            return self._classify(text, response_text)
        except Exception as e:
            logger.error(f"Intent classification failed, using fallback: {e}", exc_info=True)
            return fallback_result(text)

    def _classify(self, text: str, response_text: str) -> IntentResult:
        lowered = text.lower()
        pattern = self.pattern_scores(lowered)
        semantic = self.semantic_scores(text)
        ranked = rank_scores(combine_scores(pattern, semantic))

        best = ranked[0][1] if ranked else 0.0
        second = ranked[1][1] if len(ranked) > 1 else 0.0
        confidence = calculate_confidence(best, second)

        if best <= 0:
            primary = IntentCategory.QUESTION
            intents = [IntentScore(
                intent=primary,
                confidence=confidence,
                reasoning="No pattern or semantic signal",
            )]
        else:
            primary = ranked[0][0]
            # Candidates scaled so the primary carries the overall confidence
            intents = [
                IntentScore(
                    intent=category,
                    confidence=min(1.0, confidence * score / best),
                    reasoning=f"Pattern: {pattern.get(category, 0):g}, Semantic: {semantic.get(category, 0.0):.2f}",
                )
                for category, score in ranked
                if score > 0
            ]

        needs_clarification = confidence < self.config.INTENT_CLARIFICATION_THRESHOLD
        possible_intents = [score.intent for score in intents[:3]]

        result = IntentResult(
            intents=intents,
            primary_intent=primary,
            confidence=confidence,
            entities=self.extractor.extract(text),
            requires_memory_access=(
                primary in _MEMORY_CATEGORIES
                or any(p.search(lowered) for p in MEMORY_ACCESS_PATTERNS)
            ),
            requires_external_data=any(p.search(lowered) for p in EXTERNAL_DATA_PATTERNS),
            capture_screen=(
                primary == IntentCategory.COMMAND
                and any(p.search(lowered) for p in SCREENSHOT_PATTERNS)
            ),
            suggested_response=self.suggest_response(text, primary, response_text),
            source_text=text,
            needs_clarification=needs_clarification,
            clarification_prompt=self.clarification_prompt(possible_intents) if needs_clarification else None,
            possible_intents=possible_intents if needs_clarification else [],
        )

        logger.debug(
            f"Classified '{text[:50]}' as {primary.value} "
            f"(confidence={confidence:.2f}, best={best:.2f}, second={second:.2f})"
        )
        return result

    # -------------------------------------------------------------------------
    # SCORING
    # -------------------------------------------------------------------------

    def pattern_scores(self, lowered: str) -> Dict[IntentCategory, float]:
        """Number of regex families matched per category."""
        return {
            category: float(sum(1 for pattern in patterns if pattern.search(lowered)))
            for category, patterns in INTENT_PATTERNS.items()
        }

    def semantic_scores(self, text: str) -> Dict[IntentCategory, float]:
        """Best exemplar similarity per category."""
        if self.embedder is not None:
            try:
                return self._embedding_scores(text)
            except Exception as e:
                logger.warning(f"Embedding similarity failed, using word overlap: {e}")
        return {
            category: self._overlap.best_match(text, examples)
            for category, examples in self.exemplars.items()
        }

    def _embedding_scores(self, text: str) -> Dict[IntentCategory, float]:
        vectors = self._get_exemplar_vectors()
        query = self.embedder.embed(text)
        return {
            category: max(0.0, max((cosine_similarity(query, v) for v in category_vectors), default=0.0))
            for category, category_vectors in vectors.items()
        }

    def _get_exemplar_vectors(self) -> Dict[IntentCategory, List[Sequence[float]]]:
        """Exemplar embeddings, computed once on first use."""
        with self._vectors_lock:
            if self._exemplar_vectors is None:
                logger.info("Computing exemplar embeddings for intent classification")
                self._exemplar_vectors = {
                    category: [self.embedder.embed(example) for example in examples]
                    for category, examples in self.exemplars.items()
                }
            return self._exemplar_vectors

    # -------------------------------------------------------------------------
    # RESPONSES
    # -------------------------------------------------------------------------

    @staticmethod
    def suggest_response(text: str, primary: IntentCategory, response_text: str = "") -> str:
        draft = (response_text or "").strip()
        if len(draft) > 10 and primary != IntentCategory.GREETING:
            return draft
        options = FALLBACK_RESPONSES.get(primary) or FALLBACK_RESPONSES[IntentCategory.QUESTION]
        return options[len(text) % len(options)]

    @staticmethod
    def clarification_prompt(possible_intents: Sequence[IntentCategory]) -> str:
        choices = ", ".join(_INTENT_DESCRIPTIONS.get(i, i.value) for i in possible_intents)
        return (
            "I'm not entirely sure what you'd like me to do. "
            f"Could you clarify if you want me to: {choices}?"
        )
