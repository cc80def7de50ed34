"""
Web Search Node - Fresh results for questions that need current data.

Results become context documents for the answer node:

    {"id": url, "text": "title\nsnippet", "source": "web_search", "url": url}

A failed search degrades to no results; a timed-out search asks the
user to try again.
"""

import logging
import re
from typing import Any, Dict

from relay.services.errors import ServiceError, ServiceTimeoutError
from relay.services.registry import WEB_SEARCH_SERVICE
from relay.workflow.nodes.base import PartialUpdateNode
from relay.workflow.state import WorkflowState


logger = logging.getLogger("relay.workflow.nodes.web_search")

SEARCH_LIMIT = 5
_QUERY_PREFIX = re.compile(r"^(search for|search|find|look up|google)\s+", re.I)


def build_search_query(text: str) -> str:
    return _QUERY_PREFIX.sub("", text.strip()).strip() or text.strip()


class WebSearchNode(PartialUpdateNode):
    name = "web_search"

    async def collect(self, state: WorkflowState) -> Dict[str, Any]:
        query = build_search_query(state.command_text)
        try:
            response = await self.client.call(
                WEB_SEARCH_SERVICE,
                "search.web",
                {"query": query, "limit": SEARCH_LIMIT},
                retry=True,
                trace_id=state.trace_id,
                context=state.context.service_context(),
            )
        except ServiceTimeoutError as e:
            logger.warning(f"[{state.trace_id}] Web search timed out: {e.message}")
            return {
                "answer": "The web search took too long. Please try again.",
                "slots": {"error": "Web search timed out"},
            }
        except ServiceError as e:
            logger.warning(f"[{state.trace_id}] Web search failed, continuing without results: {e.message}")
            return {"search_results": []}

        results = [r for r in response.get("results") or [] if isinstance(r, dict)]
        docs = [
            {
                "id": r.get("url") or f"web_{index}",
                "text": f"{r.get('title', '')}\n{r.get('snippet', '')}".strip(),
                "source": "web_search",
                "url": r.get("url"),
            }
            for index, r in enumerate(results)
        ]
        logger.info(f"[{state.trace_id}] Web search returned {len(results)} results")
        return {
            "search_results": results,
            "context_docs": docs,
            "slots": {"results": results, "query": query},
        }
