"""
Relay Logger - Console handler setup and structured event logging.

Every module logs through a child of the "relay" logger
(e.g. "relay.services.client", "relay.workflow.graph"), so configuring
the root "relay" logger once is enough for the whole application.

Log Format:
==========
    [2025-01-01 12:00:00] INFO [relay.services.client] [req-abc] command.execute ok in 120ms

Structured events are emitted as a single JSON object so they can be
grepped or shipped to a log pipeline as-is:

    [2025-01-01 12:00:00] INFO [relay.events] Relay Event: {"event": "breaker_transition", ...}

Usage:
    from relay.monitoring.logger import log_event

    log_event("breaker_transition", service="command", from_status="closed", to_status="open")
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from relay.core.config import settings


# ---------------------------------------------------------------------------
# LOGGING SETUP
# ---------------------------------------------------------------------------
logger = logging.getLogger("relay")
logger.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)

if not logger.handlers:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(logging.DEBUG)
    formatter = logging.Formatter(
        '[%(asctime)s] %(levelname)s [%(name)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)

event_logger = logging.getLogger("relay.events")


def log_event(event: str, level: int = logging.INFO, **data: Any) -> None:
    """
    Write one structured JSON log line.

    Args:
        event: Event name (e.g. "service_call", "breaker_transition")
        level: Logging level for the line
        **data: Event payload; values that are not JSON serializable
                are rendered with str()
    """
    log_data = {
        "event": event,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        **data,
    }
    event_logger.log(level, f"Relay Event: {json.dumps(log_data, default=str)}")
