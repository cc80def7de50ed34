"""
Memory Nodes - Storing and recalling what the user told us.

- StoreMemoryNode: user-memory/memory.store with the message, its
  entities and tags derived from the classification
- RetrieveMemoryNode: recent session messages (conversation/message.list)
  and semantically similar memories (user-memory/memory.search).
  Either lookup failing just leaves that part empty.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

from relay.ai.intent.schemas import IntentCategory
from relay.services.errors import ServiceError
from relay.services.registry import CONVERSATION_SERVICE, USER_MEMORY_SERVICE
from relay.workflow.nodes.base import PartialUpdateNode, WorkflowNode
from relay.workflow.state import WorkflowState


logger = logging.getLogger("relay.workflow.nodes.memory")

SESSION_MESSAGE_LIMIT = 10
MEMORY_SEARCH_LIMIT = 5
MIN_SIMILARITY = 0.4

STORED_ANSWER = "Got it! I'll remember that."
STORE_FAILED_ANSWER = "I had trouble storing that memory. Please try again."


class RetrieveMemoryNode(PartialUpdateNode):
    name = "retrieve_memory"

    async def collect(self, state: WorkflowState) -> Dict[str, Any]:
        context = state.context
        service_context = context.service_context()

        session_messages: List[Dict[str, Any]] = []
        if context.session_id:
            try:
                response = await self.client.call(
                    CONVERSATION_SERVICE,
                    "message.list",
                    {"sessionId": context.session_id, "limit": SESSION_MESSAGE_LIMIT, "direction": "DESC"},
                    retry=True,
                    trace_id=state.trace_id,
                    context=service_context,
                )
                session_messages = list(response.get("messages") or [])
            except ServiceError as e:
                logger.warning(f"[{state.trace_id}] Session history unavailable: {e.message}")

        memories: List[Dict[str, Any]] = []
        try:
            response = await self.client.call(
                USER_MEMORY_SERVICE,
                "memory.search",
                {
                    "query": state.command_text,
                    "limit": MEMORY_SEARCH_LIMIT,
                    "sessionId": context.session_id,
                    "userId": context.user_id,
                    "minSimilarity": MIN_SIMILARITY,
                },
                retry=True,
                trace_id=state.trace_id,
                context=service_context,
            )
            memories = list(response.get("results") or response.get("memories") or [])
        except ServiceError as e:
            logger.warning(f"[{state.trace_id}] Memory search unavailable: {e.message}")

        logger.debug(f"[{state.trace_id}] Retrieved {len(memories)} memories, {len(session_messages)} session messages")
        return {"memories": memories, "session_messages": session_messages}


class StoreMemoryNode(WorkflowNode):
    name = "store_memory"

    async def run(self, state: WorkflowState) -> WorkflowState:
        classification = state.classification
        entities = list(classification.entities) if classification else []
        intent_value = state.intent_type.value if state.intent_type else "memory_store"

        tags = ["user_memory", intent_value]
        for entity in entities:
            if entity.type.value not in tags:
                tags.append(entity.type.value)

        payload = {
            "text": state.message,
            "tags": tags,
            "entities": [entity.model_dump(mode="json") for entity in entities],
            "metadata": {
                "userId": state.context.user_id,
                "sessionId": state.context.session_id,
                "source": "workflow",
                "confidence": state.intent.confidence if state.intent else None,
            },
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

        try:
            response = await self.client.call(
                USER_MEMORY_SERVICE,
                "memory.store",
                payload,
                trace_id=state.trace_id,
                context=state.context.service_context(),
            )
        except ServiceError as e:
            logger.warning(f"[{state.trace_id}] Failed to store memory: {e.message}")
            state.error = e.message
            state.answer = STORE_FAILED_ANSWER
            return state

        suggested = classification.suggested_response if classification else None
        if classification and classification.primary_intent == IntentCategory.MEMORY_STORE and suggested:
            state.answer = suggested
        else:
            state.answer = STORED_ANSWER
        state.intent_context.slots.update({
            "memoryId": response.get("id") or response.get("memoryId"),
            "stored": True,
        })
        logger.info(f"[{state.trace_id}] Stored memory with tags {tags}")
        return state
