"""
Automation results - Plans and outcome verification.

The automation service can report three kinds of outcome:

    CONFIRMED   the side effect happened and was verified
    UNCERTAIN   something may have happened but could not be verified
    FAILED      nothing useful happened

UNCERTAIN is not an error. Retrying could repeat a side effect that
already took place, so the user is asked to check instead.

How a response is classified is a policy (AutomationVerifier). The
default trusts the service's own `uncertainResult` / `success` flags.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class AutomationOutcome(str, Enum):
    CONFIRMED = "confirmed"
    UNCERTAIN = "uncertain"
    FAILED = "failed"


class AutomationVerifier(ABC):
    """Decides how an automation response should be reported."""

    @abstractmethod
    def assess(self, response: Dict[str, Any]) -> AutomationOutcome:
        pass


class ServiceReportedVerifier(AutomationVerifier):
    """Trusts the flags the automation service sets on its response."""

    def assess(self, response: Dict[str, Any]) -> AutomationOutcome:
        if response.get("uncertainResult"):
            return AutomationOutcome.UNCERTAIN
        if response.get("success"):
            return AutomationOutcome.CONFIRMED
        return AutomationOutcome.FAILED


@dataclass(frozen=True)
class AutomationPlan:
    """Static automation plan, executed step by step by the desktop client."""
    plan_id: str
    goal: str
    steps: List[Dict[str, Any]] = field(default_factory=list)
    provider: Optional[str] = None
    total_time: Optional[float] = None

    @classmethod
    def from_response(cls, plan: Dict[str, Any], goal: str) -> "AutomationPlan":
        metadata = plan.get("metadata") or {}
        return cls(
            plan_id=str(plan.get("planId") or plan.get("id") or ""),
            goal=plan.get("goal") or goal,
            steps=list(plan.get("steps") or []),
            provider=metadata.get("provider"),
            total_time=metadata.get("totalTime"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "planId": self.plan_id,
            "goal": self.goal,
            "steps": self.steps,
            "metadata": {
                "provider": self.provider,
                "totalTime": self.total_time,
            },
        }
