"""
Entity Extractor - Typed spans from the user's original message.

Extraction runs on the original text (never the lowercased copy used
for intent scoring) so names, addresses and handles keep their casing.
Every match is normalized by a per-type rule:

    datetime   "tomorrow" -> "2025-01-02", "3:30pm" -> "15:30"
    person     "dr smith" -> "Dr. Smith"
    location   "main street" -> "Main Street"
    event      "Meeting" -> "meeting"
    contact    "(555) 123 4567" -> "(555) 123-4567", emails lowercased
"""

import logging
import re
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Set, Tuple

from relay.ai.intent.patterns import ENTITY_NOISE, ENTITY_PATTERNS
from relay.ai.intent.schemas import Entity, EntityType


logger = logging.getLogger("relay.ai.intent.entities")

MIN_ENTITY_LENGTH = 3

_RELATIVE_DAYS = {
    "today": 0,
    "tomorrow": 1,
    "yesterday": -1,
    "next week": 7,
}

_HONORIFICS = {
    "dr": "Dr.",
    "mr": "Mr.",
    "mrs": "Mrs.",
    "ms": "Ms.",
    "prof": "Prof.",
}

_TIME_RE = re.compile(r"^(\d{1,2})(?::(\d{2}))?(?::\d{2})?\s*(am|pm)?$", re.I)
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[a-zA-Z]{2,}$")


class EntityExtractor:
    """
    Regex-driven entity extraction and normalization.

    Args:
        clock: Returns "now"; relative dates resolve against it
    """

    def __init__(self, clock: Callable[[], datetime] = datetime.now):
        self._clock = clock

    def extract(self, text: str) -> List[Entity]:
        """All entities in `text`, in pattern order, without duplicates."""
        entities: List[Entity] = []
        seen: Set[Tuple[EntityType, str]] = set()

        for entity_type, pattern in ENTITY_PATTERNS.items():
            for match in pattern.finditer(text):
                value = match.group(0).strip()
                if len(value) < MIN_ENTITY_LENGTH:
                    continue
                if any(noise in value for noise in ENTITY_NOISE):
                    continue
                key = (entity_type, value.lower())
                if key in seen:
                    continue
                seen.add(key)
                entities.append(Entity(
                    type=entity_type,
                    value=value,
                    normalized_value=self.normalize(entity_type, value),
                ))

        return entities

    def normalize(self, entity_type: EntityType, value: str) -> Optional[str]:
        if entity_type == EntityType.DATETIME:
            return self._normalize_datetime(value)
        if entity_type == EntityType.PERSON:
            return self._normalize_person(value)
        if entity_type == EntityType.LOCATION:
            return value.title()
        if entity_type == EntityType.EVENT:
            return value.lower()
        if entity_type == EntityType.CONTACT:
            return self._normalize_contact(value)
        if entity_type in (EntityType.CAPABILITY, EntityType.ACTION):
            return value.lower()
        return value

    # -------------------------------------------------------------------------
    # NORMALIZERS
    # -------------------------------------------------------------------------

    def _normalize_datetime(self, value: str) -> str:
        lowered = value.lower()
        if lowered in _RELATIVE_DAYS:
            day = self._clock().date() + timedelta(days=_RELATIVE_DAYS[lowered])
            return day.isoformat()

        match = _TIME_RE.match(lowered)
        if match and (match.group(2) or match.group(3)):
            hour = int(match.group(1))
            minute = int(match.group(2) or 0)
            meridiem = match.group(3)
            if meridiem == "pm" and hour < 12:
                hour += 12
            elif meridiem == "am" and hour == 12:
                hour = 0
            if hour <= 23 and minute <= 59:
                return f"{hour:02d}:{minute:02d}"

        return value

    @staticmethod
    def _normalize_person(value: str) -> str:
        words = value.split()
        normalized = []
        for index, word in enumerate(words):
            honorific = _HONORIFICS.get(word.lower().rstrip("."))
            if index == 0 and honorific:
                normalized.append(honorific)
            else:
                normalized.append(word[:1].upper() + word[1:].lower())
        return " ".join(normalized)

    @staticmethod
    def _normalize_contact(value: str) -> str:
        if _EMAIL_RE.match(value):
            return value.lower()

        if value.startswith("@") or "://" in value or value.lower().startswith("www."):
            return value

        digits = re.sub(r"\D", "", value)
        if len(digits) == 10:
            return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"
        if len(digits) == 11 and digits.startswith("1"):
            return f"+1 ({digits[1:4]}) {digits[4:7]}-{digits[7:]}"
        return value
