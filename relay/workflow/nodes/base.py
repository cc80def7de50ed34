"""
Base classes for workflow nodes.

Design Pattern: Strategy
========================
- WorkflowNode: a named async step `run(state) -> state`
- PartialUpdateNode: a step that computes a dict of field updates
  instead of mutating the state itself, so it can also run as a branch
  of a ParallelNode

Node Attributes:
===============
- name: Key used by the routing table and in traces
- generates_answer: Skipped when an earlier node already set state.answer
- terminal: Runs at the end of every run that is not suspended for
  clarification, even after a failure

Nodes are expected to catch their own failures and return a well-formed
state. The graph still guards against a node that raises.

Example:
    class GreetingNode(WorkflowNode):
        name = "greet"

        async def run(self, state: WorkflowState) -> WorkflowState:
            state.answer = "Hello!"
            return state
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from relay.core.config import Settings, settings as default_settings
from relay.services.client import ServiceClient
from relay.workflow.state import WorkflowState


class WorkflowNode(ABC):
    """Abstract base class for every node in the graph."""

    name: str = ""
    generates_answer: bool = False
    terminal: bool = False

    def __init__(self, client: Optional[ServiceClient] = None, config: Optional[Settings] = None):
        self.client = client
        self.config = config or default_settings

    @abstractmethod
    async def run(self, state: WorkflowState) -> WorkflowState:
        """Transform the state. Should not raise."""
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class PartialUpdateNode(WorkflowNode):
    """Node whose work is expressed as a dict of state updates."""

    async def run(self, state: WorkflowState) -> WorkflowState:
        state.apply(await self.collect(state))
        return state

    @abstractmethod
    async def collect(self, state: WorkflowState) -> Dict[str, Any]:
        """
        Compute updates without mutating the state.

        Returns:
            Field name -> new value ("slots" is merged into the slot dict)
        """
        pass
