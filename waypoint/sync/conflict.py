#!/usr/bin/env python3
"""
conflict.py
--------------------
Conflict detection and resolution between local and remote snapshots.

Detection is timestamp-driven: two snapshots of the same entity conflict
whenever their updated_at values differ, whether or not any attribute
actually changed. The list of differing fields is kept on the record for
diagnostics only and never changes the decision.

Strategies:
    local_wins       always keep the local snapshot
    remote_wins      always take the remote snapshot
    last_write_wins  the strictly newer updated_at wins; a tie keeps local
    manual           park the conflict, keep local until a person decides

Under the manual strategy the pending list is the only state mutated.
It is deduplicated by entity (a newer conflict for the same entity
replaces the older one in place) and persisted through the sync state
store, inside the caller's transaction when one is passed.

Usage:
    resolver = ConflictResolver(ConflictStrategy.LAST_WRITE_WINS)
    conflict = resolver.detect_conflict(local_snapshot, remote_snapshot)
    if conflict:
        winner = resolver.resolve_conflict(conflict)
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

# --- Third party ---
from sqlalchemy.orm import Session

# --- Local imports ---
from waypoint.core.exceptions import ValidationError
from waypoint.core.logging_manager import WaypointLogger, safe_logger
from waypoint.core.validators import DataValidator
from waypoint.database.models.enums import EntityType
from waypoint.database.snapshot import EntitySnapshot

from .enums import ConflictStrategy, ConflictType
from .events import CONFLICT_DETECTED, CONFLICT_PENDING, CONFLICT_RESOLVED, EventBus
from .state import SyncStateStore


@dataclass
class ConflictRecord:
    """
    Divergence between the local and remote state of one entity.

    Attributes:
        entity_type: Type of the entity
        entity_id: Server id shared by both sides
        conflict_type: create, update or delete
        local_version: Local updated_at
        remote_version: Remote updated_at
        local_data: Local snapshot
        remote_data: Remote snapshot
        detected_at: When the conflict was detected
        differing_fields: Advisory list of fields whose values differ
    """

    entity_type: EntityType
    entity_id: str
    conflict_type: ConflictType
    local_version: datetime
    remote_version: datetime
    local_data: EntitySnapshot
    remote_data: EntitySnapshot
    detected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    differing_fields: Tuple[str, ...] = ()

    @property
    def key(self) -> Tuple[EntityType, str]:
        return (self.entity_type, self.entity_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity_type": self.entity_type.value,
            "entity_id": self.entity_id,
            "conflict_type": self.conflict_type.value,
            "local_version": self.local_version.isoformat(),
            "remote_version": self.remote_version.isoformat(),
            "local_data": self.local_data.to_dict(),
            "remote_data": self.remote_data.to_dict(),
            "detected_at": self.detected_at.isoformat(),
            "differing_fields": list(self.differing_fields),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConflictRecord":
        """
        Raises:
            ValidationError: If the stored record is malformed
        """
        try:
            return cls(
                entity_type=EntityType(data["entity_type"]),
                entity_id=str(data["entity_id"]),
                conflict_type=ConflictType(data["conflict_type"]),
                local_version=DataValidator.normalize_datetime(data["local_version"]),
                remote_version=DataValidator.normalize_datetime(data["remote_version"]),
                local_data=EntitySnapshot.from_dict(data["local_data"]),
                remote_data=EntitySnapshot.from_dict(data["remote_data"]),
                detected_at=DataValidator.normalize_datetime(data["detected_at"]),
                differing_fields=tuple(data.get("differing_fields", ())),
            )
        except (KeyError, ValueError) as e:
            raise ValidationError(f"Malformed conflict record: {e}") from e


class ConflictResolver:
    """
    Detects and resolves conflicts; owns the pending (manual) list.

    Attributes:
        strategy: Strategy used when resolve_conflict gets none
        state_store: Optional persistence for strategy and pending list
        events: Optional event bus
    """

    def __init__(
        self,
        strategy: ConflictStrategy = ConflictStrategy.LAST_WRITE_WINS,
        state_store: Optional[SyncStateStore] = None,
        events: Optional[EventBus] = None,
        logger: Optional[WaypointLogger] = None,
    ) -> None:
        self.state_store = state_store
        self.events = events
        self.logger = logger
        self._lock = threading.RLock()
        self._pending: List[ConflictRecord] = []

        stored_strategy = state_store.conflict_strategy if state_store else None
        self.strategy = ConflictStrategy(stored_strategy or strategy)

        self.reload()

    def reload(self) -> None:
        """Re-read the pending list from the state store (after a rollback)."""
        if self.state_store is None:
            return
        restored = []
        for raw in self.state_store.pending_conflicts:
            try:
                restored.append(ConflictRecord.from_dict(raw))
            except ValidationError as e:
                safe_logger(self.logger).log_warning(
                    "Dropping unreadable pending conflict", {"error": str(e)}
                )
        with self._lock:
            self._pending = restored

    # ---- Detection ----
    def detect_conflict(
        self, local: EntitySnapshot, remote: EntitySnapshot, adopted: bool = False
    ) -> Optional[ConflictRecord]:
        """
        Compare two snapshots of what should be the same entity.

        Args:
            local: Snapshot of the local record
            remote: Snapshot of the fetched record
            adopted: The local record was just matched to a create whose
                response never arrived; its conflict is typed CREATE

        Returns:
            A ConflictRecord when both carry the same server id and their
            updated_at differ, otherwise None
        """
        if local.entity_type != remote.entity_type:
            return None
        if not local.server_id or local.server_id != remote.server_id:
            return None
        if local.updated_at == remote.updated_at:
            return None

        if local.deleted or remote.deleted:
            conflict_type = ConflictType.DELETE
        elif adopted:
            conflict_type = ConflictType.CREATE
        else:
            conflict_type = ConflictType.UPDATE
        conflict = ConflictRecord(
            entity_type=local.entity_type,
            entity_id=local.server_id,
            conflict_type=conflict_type,
            local_version=local.updated_at,
            remote_version=remote.updated_at,
            local_data=local,
            remote_data=remote,
            differing_fields=tuple(local.diff(remote)),
        )
        safe_logger(self.logger).log_debug(
            "Conflict detected",
            {
                "entity_type": conflict.entity_type.value,
                "entity_id": conflict.entity_id,
                "differing_fields": list(conflict.differing_fields),
            },
        )
        self._publish(CONFLICT_DETECTED, conflict=conflict)
        return conflict

    # ---- Resolution ----
    def resolve_conflict(
        self,
        conflict: ConflictRecord,
        strategy: Optional[ConflictStrategy] = None,
        session: Optional[Session] = None,
    ) -> EntitySnapshot:
        """
        Decide the final state of a conflicting entity.

        Args:
            conflict: Detected conflict
            strategy: Overrides the resolver's strategy for this call
            session: Transaction a parked conflict is stored in

        Returns:
            The winning snapshot; under MANUAL the local snapshot as an
            interim value
        """
        strategy = ConflictStrategy(strategy or self.strategy)

        if strategy == ConflictStrategy.MANUAL:
            self._park(conflict, session)
            return conflict.local_data

        if strategy == ConflictStrategy.LOCAL_WINS:
            use_local = True
        elif strategy == ConflictStrategy.REMOTE_WINS:
            use_local = False
        else:
            use_local = conflict.remote_version <= conflict.local_version

        winner = conflict.local_data if use_local else conflict.remote_data
        self._publish(
            CONFLICT_RESOLVED,
            entity_type=conflict.entity_type,
            entity_id=conflict.entity_id,
            winner="local" if use_local else "remote",
            strategy=strategy,
        )
        return winner

    def _park(self, conflict: ConflictRecord, session: Optional[Session] = None) -> None:
        with self._lock:
            for index, existing in enumerate(self._pending):
                if existing.key == conflict.key:
                    self._pending[index] = conflict
                    break
            else:
                self._pending.append(conflict)
            self._persist_pending(session)
        safe_logger(self.logger).log_info(
            "Conflict parked for manual resolution",
            {"entity_type": conflict.entity_type.value, "entity_id": conflict.entity_id},
        )
        self._publish(CONFLICT_PENDING, conflict=conflict)

    def resolve_manually(
        self,
        entity_id: str,
        use_local: bool,
        entity_type: Optional[EntityType] = None,
        session: Optional[Session] = None,
    ) -> Optional[EntitySnapshot]:
        """
        Apply a human decision to a pending conflict.

        Args:
            entity_id: Server id of the conflicting entity
            use_local: Keep the local snapshot when True, else the remote one
            entity_type: Needed only when the id is pending for several types
            session: Transaction the removal from the stored list joins

        Returns:
            The chosen snapshot for the caller to apply, or None when no
            such conflict is pending

        Raises:
            ValidationError: If `entity_id` is ambiguous across entity types
        """
        entity_id = str(entity_id)
        with self._lock:
            matches = [
                c
                for c in self._pending
                if c.entity_id == entity_id
                and (entity_type is None or c.entity_type == EntityType(entity_type))
            ]
            if not matches:
                return None
            if len(matches) > 1:
                raise ValidationError(
                    f"Conflict id {entity_id} is pending for several entity types: "
                    + ", ".join(c.entity_type.value for c in matches)
                )
            conflict = matches[0]
            self._pending.remove(conflict)
            self._persist_pending(session)

        winner = conflict.local_data if use_local else conflict.remote_data
        safe_logger(self.logger).log_operation(
            "conflict_resolved_manually",
            {
                "entity_type": conflict.entity_type.value,
                "entity_id": entity_id,
                "winner": "local" if use_local else "remote",
            },
        )
        self._publish(
            CONFLICT_RESOLVED,
            entity_type=conflict.entity_type,
            entity_id=entity_id,
            winner="local" if use_local else "remote",
            strategy=ConflictStrategy.MANUAL,
        )
        return winner

    # ---- Pending list ----
    @property
    def pending_conflicts(self) -> List[ConflictRecord]:
        with self._lock:
            return list(self._pending)

    def has_pending(self, entity_type: EntityType, entity_id: str) -> bool:
        key = (EntityType(entity_type), str(entity_id))
        with self._lock:
            return any(c.key == key for c in self._pending)

    def set_strategy(self, strategy: ConflictStrategy) -> ConflictStrategy:
        """Change and persist the default strategy."""
        self.strategy = ConflictStrategy(strategy)
        if self.state_store is not None:
            self.state_store.conflict_strategy = self.strategy.value
        safe_logger(self.logger).log_operation(
            "conflict_strategy_changed", {"strategy": self.strategy.value}
        )
        return self.strategy

    # ---- Helpers ----
    def _persist_pending(self, session: Optional[Session] = None) -> None:
        if self.state_store is not None:
            self.state_store.save_pending_conflicts(
                [c.to_dict() for c in self._pending], session
            )

    def _publish(self, topic: str, **payload: Any) -> None:
        if self.events is not None:
            self.events.publish(topic, **payload)
