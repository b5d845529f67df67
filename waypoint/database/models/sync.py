"""
Sync Bookkeeping Models
------------------------

Engine state kept in the journal store, next to the records it describes,
so it commits and rolls back with them.

Models:
    - OfflineTask: One queued local mutation waiting for upload
    - PendingConflict: A conflict parked for a manual decision
    - SyncStateEntry: Key/value engine state (last sync, strategy)
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
from datetime import datetime
from typing import Any, Dict, Optional

# --- Third party ---
from sqlalchemy import JSON, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

# --- Local imports ---
from .base import Base, UTCDateTime, utcnow


class OfflineTask(Base):
    """
    Queued mutation of one entity.

    Attributes:
        seq: Insertion order, the final ordering tie-break
        task_id: Public task id (uuid4 hex)
        entity_type: EntityType value of the mutated entity
        entity_id: Local id of the mutated entity
        operation: 'create', 'update' or 'delete'
        priority: Priority tier name
        priority_rank: Numeric tier, higher dequeues first
        payload: Entity snapshot at enqueue time
        created_at: Enqueue time
        retry_count: Failed attempts so far
        max_retries: Attempts allowed before the task fails
        status: 'pending', 'in_flight', 'failed' or 'cancelled'
        last_error: Message of the latest failure

    Completed tasks are deleted, never kept with a 'completed' status.
    """

    __tablename__ = "offline_tasks"

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    task_id: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    operation: Mapped[str] = mapped_column(String(20), nullable=False)
    priority: Mapped[str] = mapped_column(String(20), nullable=False)
    priority_rank: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    payload: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    retry_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_retries: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<OfflineTask {self.operation} {self.entity_type}({self.entity_id}) "
            f"status={self.status}>"
        )


class PendingConflict(Base):
    """
    Conflict waiting for a manual decision.

    One row per (entity_type, entity_id); a newer conflict on the same
    entity replaces the row.
    """

    __tablename__ = "pending_conflicts"
    __table_args__ = (
        UniqueConstraint("entity_type", "entity_id", name="uq_pending_conflict_entity"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    record: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    detected_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<PendingConflict {self.entity_type}({self.entity_id})>"


class SyncStateEntry(Base):
    """Engine-wide setting or marker, e.g. 'last_synced_at'."""

    __tablename__ = "sync_state"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<SyncStateEntry {self.key}={self.value!r}>"
