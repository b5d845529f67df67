#!/usr/bin/env python3
"""
events.py
--------------------
In-process publish/subscribe for sync state changes.

Services are constructed once and handed to their consumers; whoever needs
to observe them (CLI, host application) subscribes to a topic instead of
polling shared state.

Topics:
    state_changed       {"phase": SyncPhase}
    progress            {"progress": float, "stage": str}
    conflict_detected   {"conflict": ConflictRecord}
    conflict_pending    {"conflict": ConflictRecord}
    conflict_resolved   {"entity_id": str, "winner": "local" | "remote"}
    queue_changed       {"pending": int, "failed": int}
    cycle_finished      {"report": SyncReport}

A handler that raises is logged and skipped; it never breaks the publisher.
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
import threading
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional

# --- Local imports ---
from waypoint.core.logging_manager import WaypointLogger, safe_logger

STATE_CHANGED = "state_changed"
PROGRESS = "progress"
CONFLICT_DETECTED = "conflict_detected"
CONFLICT_PENDING = "conflict_pending"
CONFLICT_RESOLVED = "conflict_resolved"
QUEUE_CHANGED = "queue_changed"
CYCLE_FINISHED = "cycle_finished"

Handler = Callable[[str, Dict[str, Any]], None]


class EventBus:
    """Thread-safe topic based event channel."""

    def __init__(self, logger: Optional[WaypointLogger] = None) -> None:
        self.logger = logger
        self._handlers: Dict[str, List[Handler]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, topic: str, handler: Handler) -> None:
        """Register `handler(topic, payload)`; '*' receives every topic."""
        with self._lock:
            if handler not in self._handlers[topic]:
                self._handlers[topic].append(handler)

    def unsubscribe(self, topic: str, handler: Handler) -> None:
        with self._lock:
            if handler in self._handlers.get(topic, []):
                self._handlers[topic].remove(handler)

    def publish(self, topic: str, **payload: Any) -> int:
        """
        Deliver an event to the topic's handlers and to wildcard handlers.

        Returns:
            Number of handlers that ran without error
        """
        with self._lock:
            handlers = list(self._handlers.get(topic, [])) + list(
                self._handlers.get("*", [])
            )

        delivered = 0
        for handler in handlers:
            try:
                handler(topic, payload)
                delivered += 1
            except Exception as e:
                safe_logger(self.logger).log_error(
                    e, {"operation": "publish_event", "topic": topic}
                )
        return delivered
