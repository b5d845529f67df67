#!/usr/bin/env python3
"""
health_monitor.py
-----------------
Consistency checks for the local journal store.

Sync applies records in dependency order and refuses children whose parents
are unknown, but user edits and interrupted imports can still leave broken
links behind. These checks find them.

Health Checks Performed:
    1. **Connectivity**: Basic query execution
    2. **Missing parents**: Live records whose required parent is absent
       - Memories without a trip
       - Media items without a memory
       - GPX tracks without a trip
       - Track segments without a track
    3. **Identity**: Server ids shared by two rows of the same type, and
       records lacking a local id

Health Report Structure:
    {
        "status": "healthy" | "warning",
        "issues": ["3 memory record(s) without trip", ...],
        "metrics": {
            "missing_parents": {"memory_without_trip": 3, ...},
            "duplicate_server_ids": {"trip": 0, ...},
            "missing_local_ids": {"media_item": 2, ...},
            "unsynced": {"trip": 1, ...}
        }
    }

Usage:
    monitor = HealthMonitor(identity, logger)
    with db.session_scope() as session:
        report = monitor.health_check(session)
"""
from typing import Any, Dict, Optional

from sqlalchemy import func, select, text
from sqlalchemy.orm import Session

from waypoint.core.exceptions import HealthCheckError
from waypoint.core.logging_manager import WaypointLogger, safe_logger

from .decorators import handle_db_errors, log_database_operation
from .identity import EntityIdentity
from .models import MODEL_REGISTRY, GPXTrack, MediaItem, Memory, TrackSegment


class HealthMonitor:
    """
    Consistency checks over the journal store.

    Attributes:
        identity: Identity layer used to find the id columns of each model
        logger: Optional logger
    """

    # Missing parent config: (name, model, fk_attr)
    _PARENT_CHECKS = [
        ("memory_without_trip", Memory, "trip_id"),
        ("media_item_without_memory", MediaItem, "memory_id"),
        ("gpx_track_without_trip", GPXTrack, "trip_id"),
        ("track_segment_without_track", TrackSegment, "gpx_track_id"),
    ]

    def __init__(
        self, identity: EntityIdentity, logger: Optional[WaypointLogger] = None
    ) -> None:
        self.identity = identity
        self.logger = logger

    @handle_db_errors
    @log_database_operation("health_check")
    def health_check(self, session: Session) -> Dict[str, Any]:
        """
        Run every check.

        Raises:
            HealthCheckError: If the store cannot be queried
        """
        health: Dict[str, Any] = {"status": "healthy", "issues": [], "metrics": {}}

        try:
            session.execute(text("SELECT 1"))
            health["metrics"]["missing_parents"] = self.check_relationships(session)
            health["metrics"]["duplicate_server_ids"] = self.check_duplicate_server_ids(session)
            health["metrics"]["missing_local_ids"] = self.check_missing_local_ids(session)
            health["metrics"]["unsynced"] = self.count_unsynced(session)
        except Exception as e:
            safe_logger(self.logger).log_error(e, {"operation": "health_check"})
            raise HealthCheckError(f"Health check failed: {e}") from e

        for name, count in health["metrics"]["missing_parents"].items():
            if count:
                entity, _, parent = name.partition("_without_")
                health["issues"].append(f"{count} {entity} record(s) without {parent}")
        for entity, count in health["metrics"]["duplicate_server_ids"].items():
            if count:
                health["issues"].append(f"{count} duplicated {entity} server id(s)")

        if health["issues"]:
            health["status"] = "warning"
        return health

    def check_relationships(self, session: Session) -> Dict[str, int]:
        """Count live records whose required parent is missing."""
        results = {}
        for name, model, fk_attr in self._PARENT_CHECKS:
            fk_column = getattr(model, fk_attr)
            stmt = (
                select(func.count())
                .select_from(model)
                .where(fk_column.is_(None), model.deleted_at.is_(None))
            )
            results[name] = session.scalar(stmt) or 0
        return results

    def check_duplicate_server_ids(self, session: Session) -> Dict[str, int]:
        """Count server ids used by more than one row, per entity type."""
        results = {}
        for entity_type, model in MODEL_REGISTRY.items():
            column = self.identity.server_id_column(model)
            duplicated = (
                select(column)
                .where(column.is_not(None))
                .group_by(column)
                .having(func.count() > 1)
                .subquery()
            )
            results[entity_type.value] = (
                session.scalar(select(func.count()).select_from(duplicated)) or 0
            )
        return results

    def check_missing_local_ids(self, session: Session) -> Dict[str, int]:
        """Count rows that predate the identity scheme and have no local id yet."""
        results = {}
        for entity_type, model in MODEL_REGISTRY.items():
            column = self.identity.local_id_column(model)
            stmt = select(func.count()).select_from(model).where(column.is_(None))
            results[entity_type.value] = session.scalar(stmt) or 0
        return results

    def count_unsynced(self, session: Session) -> Dict[str, int]:
        """Count live rows never pushed, per entity type."""
        results = {}
        for entity_type, model in MODEL_REGISTRY.items():
            column = self.identity.server_id_column(model)
            stmt = (
                select(func.count())
                .select_from(model)
                .where(column.is_(None), model.deleted_at.is_(None))
            )
            results[entity_type.value] = session.scalar(stmt) or 0
        return results
