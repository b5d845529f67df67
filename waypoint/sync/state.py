#!/usr/bin/env python3
"""
state.py
--------------------
Engine state kept in the journal store.

    sync_state          key/value rows: 'last_synced_at', 'conflict_strategy'
    pending_conflicts   one row per conflict parked for a manual decision

The last-sync timestamp is read at startup to decide whether the data
shown to the user is stale. Pending conflicts survive restarts so that a
manual decision can be taken from a later CLI invocation.

Writes take an optional `session` to join a running transaction: a
conflict parked while remote records are applied commits or rolls back
with them.
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, TypeVar

# --- Third party ---
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

# --- Local imports ---
from waypoint.core.exceptions import StateError, TransactionError, ValidationError
from waypoint.core.logging_manager import WaypointLogger, safe_logger
from waypoint.core.validators import DataValidator
from waypoint.database.manager import JournalDB
from waypoint.database.models import PendingConflict, SyncStateEntry

T = TypeVar("T")

LAST_SYNCED_AT = "last_synced_at"
CONFLICT_STRATEGY = "conflict_strategy"


class SyncStateStore:
    """
    Sync bookkeeping over the journal store.

    Attributes:
        db: Journal store holding the sync_state and pending_conflicts tables
    """

    def __init__(self, db: JournalDB, logger: Optional[WaypointLogger] = None) -> None:
        self.db = db
        self.logger = logger

    # ---- Store access ----
    def _run(
        self, work: Callable[[Session], T], name: str, session: Optional[Session] = None
    ) -> T:
        if session is not None:
            result = work(session)
            session.flush()
            return result
        try:
            return self.db.transactions.perform_transaction_with_rollback(
                work, name=f"sync_state_{name}"
            )
        except TransactionError as e:
            raise StateError(f"Sync state {name} failed: {e}") from e

    def get_value(self, key: str) -> Optional[str]:
        def load(s: Session) -> Optional[str]:
            entry = s.get(SyncStateEntry, key)
            return entry.value if entry is not None else None

        return self._run(load, "get_value")

    def set_value(self, key: str, value: Optional[Any], session: Optional[Session] = None) -> None:
        """Store `value` as text under `key`; None removes the key."""

        def store(s: Session) -> None:
            entry = s.get(SyncStateEntry, key)
            if value is None:
                if entry is not None:
                    s.delete(entry)
            elif entry is None:
                s.add(SyncStateEntry(key=key, value=str(value)))
            else:
                entry.value = str(value)

        self._run(store, "set_value", session)

    # ---- Last sync ----
    @property
    def last_synced_at(self) -> Optional[datetime]:
        raw = self.get_value(LAST_SYNCED_AT)
        try:
            return DataValidator.normalize_datetime(raw)
        except ValidationError:
            safe_logger(self.logger).log_warning(
                "Ignoring unreadable last_synced_at", {"value": raw}
            )
            return None

    def record_sync(self, when: Optional[datetime] = None) -> datetime:
        """Persist the completion time of a fully successful cycle."""
        when = DataValidator.ensure_utc(when or datetime.now(timezone.utc))
        self.set_value(LAST_SYNCED_AT, when.isoformat())
        safe_logger(self.logger).log_operation("sync_recorded", {"at": when})
        return when

    def is_stale(
        self, max_age: timedelta = timedelta(hours=24), now: Optional[datetime] = None
    ) -> bool:
        """True when no cycle ever completed or the last one is older than max_age."""
        last = self.last_synced_at
        if last is None:
            return True
        now = DataValidator.ensure_utc(now or datetime.now(timezone.utc))
        return now - last > max_age

    # ---- Conflict settings ----
    @property
    def conflict_strategy(self) -> Optional[str]:
        return self.get_value(CONFLICT_STRATEGY)

    @conflict_strategy.setter
    def conflict_strategy(self, value: Optional[str]) -> None:
        self.set_value(CONFLICT_STRATEGY, value)

    @property
    def pending_conflicts(self) -> List[Dict[str, Any]]:
        """Stored conflict records, oldest first."""

        def load(s: Session) -> List[Dict[str, Any]]:
            rows = s.scalars(select(PendingConflict).order_by(PendingConflict.id))
            return [dict(row.record) for row in rows]

        return self._run(load, "pending_conflicts")

    def save_pending_conflicts(
        self, records: List[Dict[str, Any]], session: Optional[Session] = None
    ) -> None:
        """Replace the stored pending list with `records`."""

        def replace_all(s: Session) -> None:
            s.execute(delete(PendingConflict))
            for record in records:
                s.add(
                    PendingConflict(
                        entity_type=str(record.get("entity_type", "")),
                        entity_id=str(record.get("entity_id", "")),
                        record=dict(record),
                    )
                )

        self._run(replace_all, "save_pending_conflicts", session)
