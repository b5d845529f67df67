#!/usr/bin/env python3
"""
base_manager.py
--------------------
Session-bound base for entity managers.

SQLite allows one writer at a time; a flush that hits "database is
locked" while a sync cycle commits on another connection is retried with
exponential backoff before the error is allowed out.
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
import time
from abc import ABC
from typing import Any, Callable, Optional

# --- Third party imports ---
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

# --- Local imports ---
from waypoint.core.logging_manager import WaypointLogger, safe_logger

LOCK_MARKERS = ("database is locked", "database table is locked", "busy")


def is_lock_error(error: OperationalError) -> bool:
    message = str(error).lower()
    return any(marker in message for marker in LOCK_MARKERS)


class BaseManager(ABC):
    """
    Shared state of managers working on one open session.

    Attributes:
        session: Session owned by the caller's scope
        logger: Optional logger
        lock_attempts: Tries for a write that meets a locked database
        lock_delay: First backoff delay in seconds, doubled per retry
    """

    lock_attempts = 3
    lock_delay = 0.1

    def __init__(self, session: Session, logger: Optional[WaypointLogger] = None):
        self.session = session
        self.logger = logger

    def _with_lock_retry(self, write: Callable[[], Any]) -> Any:
        """
        Run `write`, retrying while SQLite reports a lock.

        Raises:
            OperationalError: Non-lock failures, or a lock that outlasts
                every attempt
        """
        delay = self.lock_delay
        for attempt in range(1, self.lock_attempts + 1):
            try:
                return write()
            except OperationalError as e:
                if attempt == self.lock_attempts or not is_lock_error(e):
                    raise
                safe_logger(self.logger).log_debug(
                    "Store locked, retrying", {"attempt": attempt, "delay": delay}
                )
                time.sleep(delay)
                delay *= 2

    def _flush(self) -> None:
        self._with_lock_retry(self.session.flush)
