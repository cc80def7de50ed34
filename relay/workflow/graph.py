"""
Workflow Graph - Runs the node sequence for one request.

How a Run Proceeds:
==================
```
entry nodes (parse_intent)
   │
   ▼
route = descriptors[state.intent.type].nodes
   │
   ├─▶ node ─▶ needs_clarification? ──yes──▶ return now (suspended, no terminal nodes)
   │     │
   │     ├─▶ retry_with_intent?  ──first time──▶ clear it, re-route to the new intent
   │     │                       ──second time─▶ error, stop route
   │     │
   │     └─▶ raised?  ──▶ error + failed_node, stop route
   │
   ▼
terminal nodes (select_overlay_variant), always unless suspended
```

- Nodes marked generates_answer are skipped once state.answer is set.
- At most `max_iterations` node executions per run.
- on_progress(node_name, state, phase) is called around each node; it
  can never break the run.
- Every executed or skipped node leaves a trace entry.

Usage:
    graph = WorkflowGraph([parse_node, command_node, answer_node, overlay_node])
    state = await graph.run(WorkflowState(message="take a screenshot"))
"""

import asyncio
import logging
import time
from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, Iterable, List, Mapping, Optional, Sequence

from relay.workflow.intents import INTENT_DESCRIPTORS, IntentDescriptor, IntentType, check_descriptors
from relay.workflow.nodes.base import PartialUpdateNode, WorkflowNode
from relay.workflow.progress import ProgressCallback, ProgressPhase, emit_progress
from relay.workflow.state import WorkflowIntent, WorkflowState


logger = logging.getLogger("relay.workflow.graph")

DEFAULT_MAX_ITERATIONS = 50
MAX_REROUTES = 1


class ParallelNode(PartialUpdateNode):
    """
    Runs several PartialUpdateNodes concurrently and merges their updates.

    Waits for every branch. If a branch raises, the others are cancelled
    and the error propagates to the graph. Updates are applied in branch
    order, so a later branch wins on a conflicting field.
    """

    def __init__(self, name: str, branches: Sequence[PartialUpdateNode]):
        super().__init__()
        if len(branches) < 2:
            raise ValueError("ParallelNode needs at least two branches")
        self.name = name
        self.branches = list(branches)

    async def collect(self, state: WorkflowState) -> Dict[str, Any]:
        tasks = [asyncio.ensure_future(branch.collect(state)) for branch in self.branches]
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)

        failed = next((task for task in done if not task.cancelled() and task.exception() is not None), None)
        if failed is not None:
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
            raise failed.exception()

        merged: Dict[str, Any] = {}
        for task in tasks:
            updates = task.result()
            slots = updates.get("slots")
            if slots:
                merged.setdefault("slots", {}).update(slots)
            merged.update({key: value for key, value in updates.items() if key != "slots"})
        return merged


class WorkflowGraph:
    """
    Executes nodes over a WorkflowState.

    Args:
        nodes: Every node the routes refer to (plus entry and terminal nodes)
        entry_nodes: Names run first, before routing
        descriptors: IntentType -> IntentDescriptor; must cover the whole enum
        max_iterations: Hard cap on node executions per run

    Raises:
        ValueError: Incomplete descriptor table or a route naming an unknown node
    """

    def __init__(
        self,
        nodes: Iterable[WorkflowNode],
        entry_nodes: Sequence[str] = ("parse_intent",),
        descriptors: Mapping[IntentType, IntentDescriptor] = INTENT_DESCRIPTORS,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ):
        self.nodes: Dict[str, WorkflowNode] = {}
        for node in nodes:
            if not node.name:
                raise ValueError(f"Node {node!r} has no name")
            if node.name in self.nodes:
                raise ValueError(f"Duplicate node name: {node.name}")
            self.nodes[node.name] = node

        check_descriptors(descriptors)
        self.descriptors = descriptors
        self.entry_nodes = list(entry_nodes)
        self.terminal_nodes = [node.name for node in self.nodes.values() if node.terminal]
        self.max_iterations = max_iterations

        referenced = set(self.entry_nodes)
        for descriptor in descriptors.values():
            referenced.update(descriptor.nodes)
        unknown = sorted(name for name in referenced if name not in self.nodes)
        if unknown:
            raise ValueError(f"Routes reference unknown nodes: {', '.join(unknown)}")

    def route(self, intent_type: IntentType) -> List[str]:
        return list(self.descriptors[intent_type].nodes)

    async def run(self, state: WorkflowState, on_progress: Optional[ProgressCallback] = None) -> WorkflowState:
        """
        Run the workflow to completion (or suspension) and return the state.

        Never raises for node failures; they are recorded on the state.
        """
        start_time = time.perf_counter()
        state.iterations = 0
        suspended = False
        stopped = False

        for name in self.entry_nodes:
            if not await self._execute(self.nodes[name], state, on_progress):
                stopped = True
                break
            if state.needs_clarification:
                suspended = True
                break

        if not suspended and not stopped:
            suspended = await self._run_route(state, on_progress)

        if suspended:
            logger.info(f"[{state.trace_id}] Workflow suspended awaiting clarification")
        else:
            for name in self.terminal_nodes:
                await self._execute(self.nodes[name], state, on_progress)

        state.elapsed_ms = (time.perf_counter() - start_time) * 1000
        state.success = state.error is None
        logger.info(
            f"[{state.trace_id}] Workflow finished in {state.elapsed_ms:.0f}ms "
            f"({state.iterations} nodes, success={state.success})"
        )
        return state

    async def _run_route(self, state: WorkflowState, on_progress: Optional[ProgressCallback]) -> bool:
        """Run the routed nodes. Returns True if the run was suspended."""
        if state.intent is None:
            state.intent = WorkflowIntent(type=IntentType.GENERAL)

        queue: Deque[str] = deque(self.route(state.intent.type))
        reroutes = 0

        while queue:
            name = queue.popleft()
            node = self.nodes[name]

            if state.iterations >= self.max_iterations:
                state.error = f"Workflow exceeded {self.max_iterations} node executions"
                logger.error(f"[{state.trace_id}] {state.error}")
                return False

            if node.generates_answer and state.answer is not None:
                self._trace_skip(state, name, "answer already set")
                continue

            if not await self._execute(node, state, on_progress):
                return False

            if state.needs_clarification:
                return True

            if state.retry_with_intent is not None:
                new_intent = state.retry_with_intent
                state.retry_with_intent = None
                if reroutes >= MAX_REROUTES:
                    state.error = f"Repeated intent retry requested ({new_intent.value}); giving up"
                    logger.error(f"[{state.trace_id}] {state.error}")
                    return False
                reroutes += 1

                if state.intent_type != new_intent:
                    state.intent = WorkflowIntent(
                        type=new_intent,
                        confidence=state.intent.confidence,
                        fallback_from=state.intent_type,
                    )
                state.intent_context.intent = new_intent
                fallback_from = state.intent.fallback_from
                logger.info(
                    f"[{state.trace_id}] Re-routing "
                    f"{fallback_from.value if fallback_from else 'unknown'} -> {new_intent.value}"
                )
                queue = deque(self.route(new_intent))

        return False

    async def _execute(
        self,
        node: WorkflowNode,
        state: WorkflowState,
        on_progress: Optional[ProgressCallback],
    ) -> bool:
        """Run one node with progress and tracing. Returns False if it raised."""
        input_snapshot = state.snapshot()
        timestamp = datetime.now(timezone.utc).isoformat()
        state.iterations += 1

        await emit_progress(on_progress, node.name, state, ProgressPhase.STARTED)
        start_time = time.perf_counter()
        success = True
        try:
            result = await node.run(state)
            if result is not None and result is not state:
                raise TypeError(f"Node {node.name} returned a different state object")
        except Exception as e:
            success = False
            state.error = str(e) or f"{node.name} failed"
            state.failed_node = node.name
            logger.error(f"[{state.trace_id}] Node {node.name} raised: {e}", exc_info=True)
        duration_ms = (time.perf_counter() - start_time) * 1000

        state.trace.append({
            "node": node.name,
            "duration_ms": round(duration_ms, 2),
            "timestamp": timestamp,
            "input": input_snapshot,
            "output": state.snapshot(),
            "success": success,
            "skipped": False,
        })
        await emit_progress(on_progress, node.name, state, ProgressPhase.COMPLETED)
        return success

    @staticmethod
    def _trace_skip(state: WorkflowState, name: str, reason: str) -> None:
        logger.debug(f"[{state.trace_id}] Skipping {name}: {reason}")
        state.trace.append({
            "node": name,
            "duration_ms": 0.0,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "success": True,
            "skipped": True,
            "reason": reason,
        })
