"""
Clarification Protocol - Detecting a pending automation question.

When a static automation plan needs more information, the response
carries intent_context.slots:

    {"needsClarification": true,
     "originalCommand": "book a table for dinner",
     "clarificationQuestions": ["Which restaurant?", "For how many people?"]}

The desktop client stores those slots as the metadata of the assistant
turn. On the next request, the most recent assistant turn tells us
whether the user's message is an answer to those questions rather than
a new command.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from relay.workflow.state import ConversationTurn


@dataclass(frozen=True)
class PendingClarification:
    original_command: str
    questions: List[str] = field(default_factory=list)


def find_pending_clarification(history: Sequence[ConversationTurn]) -> Optional[PendingClarification]:
    """
    Clarification awaiting an answer, if any.

    Only the latest assistant turn counts: once the assistant has said
    anything else, an older question is no longer pending.
    """
    for turn in reversed(history):
        if turn.role != "assistant":
            continue
        metadata = turn.metadata or {}
        original_command = metadata.get("originalCommand")
        if not metadata.get("needsClarification") or not original_command:
            return None
        return PendingClarification(
            original_command=original_command,
            questions=[str(q) for q in metadata.get("clarificationQuestions") or []],
        )
    return None


def format_clarification_answer(questions: Sequence[str]) -> str:
    """User-facing text listing the planner's questions."""
    if not questions:
        return "I need a bit more information before I can do that. Could you give me more details?"
    lines = ["I need a bit more information before I can do that:", ""]
    lines.extend(f"{index}. {question}" for index, question in enumerate(questions, start=1))
    return "\n".join(lines)
