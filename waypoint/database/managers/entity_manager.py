#!/usr/bin/env python3
"""
entity_manager.py
-----------------
Schema-driven manager for every syncable entity type.

One class serves all eight types. Each instance is configured by the
entity type's EntitySchema (fields, parent references, memberships) and its
ORM model, and offers:

    - host-side CRUD that keeps updated_at and the local id current
    - identity lookups by local id and server id
    - conversion of a record to an EntitySnapshot
    - application of a (winning) snapshot to the store

Usage:
    trips = EntityManager(session, EntityType.TRIP, identity, logger)
    trip = trips.create({"name": "Iceland"})

    memories = EntityManager(session, EntityType.MEMORY, identity, logger)
    memory = memories.create({"title": "Glacier walk", "trip": trip})
    snapshot = memories.snapshot(memory)
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from waypoint.core.exceptions import ValidationError
from waypoint.core.logging_manager import WaypointLogger
from waypoint.database.decorators import (
    DatabaseOperation,
    handle_db_errors,
    log_database_operation,
)
from waypoint.database.identity import EntityIdentity
from waypoint.database.models import EntityType, model_for, utcnow
from waypoint.database.schema import get_schema
from waypoint.database.snapshot import EntitySnapshot

from .base_manager import BaseManager


class EntityManager(BaseManager):
    """
    Manager for one entity type.

    Attributes:
        entity_type: Managed type
        model: ORM class
        schema: Snapshot schema of the type
        identity: Identity layer used for every id read and write
    """

    def __init__(
        self,
        session: Session,
        entity_type: EntityType,
        identity: Optional[EntityIdentity] = None,
        logger: Optional[WaypointLogger] = None,
    ) -> None:
        super().__init__(session, logger)
        self.entity_type = EntityType(entity_type)
        self.model = model_for(self.entity_type)
        self.schema = get_schema(self.entity_type)
        self.identity = identity or EntityIdentity(logger)

    def _for(self, entity_type: EntityType) -> "EntityManager":
        return EntityManager(self.session, entity_type, self.identity, self.logger)

    # -------------------------------------------------------------------------
    # Host-side CRUD
    # -------------------------------------------------------------------------

    def _assign(self, record: Any, metadata: Dict[str, Any]) -> None:
        """Set schema fields, parent relationships and memberships."""
        reference_attrs = {spec.attribute for spec in self.schema.references}
        membership_attrs = {spec.attribute for spec in self.schema.memberships}

        for key, value in metadata.items():
            if key in reference_attrs or key in membership_attrs:
                setattr(record, key, list(value) if key in membership_attrs else value)
            else:
                setattr(record, key, self.schema.field_spec(key).coerce(value))

    @handle_db_errors
    @log_database_operation("create_entity")
    def create(self, metadata: Dict[str, Any]) -> Any:
        """
        Create a record from user input.

        Args:
            metadata: Schema field values plus parent records under their
                relationship name (e.g. 'trip') and member lists
                (e.g. 'tags')

        Returns:
            The new record, flushed, with a local id

        Raises:
            ValidationError: On unknown keys or invalid values
        """
        record = self.model()
        for spec in self.schema.fields:
            if spec.default is not None:
                setattr(record, spec.name, spec.default)
        self._assign(record, metadata)

        now = utcnow()
        record.created_at = now
        record.updated_at = now
        self.identity.get_local_id(record)

        self.session.add(record)
        self._flush()
        return record

    @handle_db_errors
    @log_database_operation("update_entity")
    def update(self, record: Any, metadata: Dict[str, Any]) -> Any:
        """Apply user edits and bump updated_at."""
        self._assign(record, metadata)
        self.touch(record)
        self._flush()
        return record

    def touch(self, record: Any, when: Optional[datetime] = None) -> None:
        """Mark a user-originated modification."""
        record.updated_at = when or utcnow()

    @handle_db_errors
    def delete(
        self, record: Any, deleted_by: Optional[str] = None, reason: Optional[str] = None
    ) -> None:
        """Soft delete; the row is purged once the delete reached the remote."""
        record.soft_delete(deleted_by=deleted_by, reason=reason)
        self.touch(record)
        self._flush()

    def purge(self, record: Any) -> None:
        """Remove the row permanently."""
        with DatabaseOperation(self.logger, f"purge_{self.entity_type.value}"):
            self.session.delete(record)
            self._flush()

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def get_by_local_id(self, local_id: Optional[str]) -> Optional[Any]:
        if not local_id:
            return None
        column = self.identity.local_id_column(self.model)
        return self.session.scalars(select(self.model).where(column == local_id)).first()

    def get_by_server_id(self, server_id: Optional[str]) -> Optional[Any]:
        if not server_id:
            return None
        column = self.identity.server_id_column(self.model)
        return self.session.scalars(
            select(self.model).where(column == str(server_id))
        ).first()

    def list_unsynced(self) -> List[Any]:
        """Live records that were never pushed, oldest first."""
        column = self.identity.server_id_column(self.model)
        stmt = (
            select(self.model)
            .where(column.is_(None), self.model.deleted_at.is_(None))
            .order_by(self.model.id)
        )
        return list(self.session.scalars(stmt))

    def list_all(self, include_deleted: bool = False) -> List[Any]:
        stmt = select(self.model).order_by(self.model.id)
        if not include_deleted:
            stmt = stmt.where(self.model.deleted_at.is_(None))
        return list(self.session.scalars(stmt))

    # -------------------------------------------------------------------------
    # Snapshots
    # -------------------------------------------------------------------------

    def snapshot(self, record: Any) -> EntitySnapshot:
        """Typed snapshot of the record's current state."""
        references: Dict[str, Optional[str]] = {}
        for spec in self.schema.references:
            parent = getattr(record, spec.attribute)
            references[spec.wire_name] = (
                self.identity.get_server_id(parent) if parent is not None else None
            )

        memberships: Dict[str, List[str]] = {}
        for spec in self.schema.memberships:
            server_ids = []
            for member in getattr(record, spec.attribute):
                server_id = self.identity.get_server_id(member)
                if server_id and not member.is_deleted:
                    server_ids.append(server_id)
            memberships[spec.wire_name] = server_ids

        return EntitySnapshot.build(
            self.entity_type,
            updated_at=record.updated_at or utcnow(),
            local_id=self.identity.get_local_id(record),
            server_id=self.identity.get_server_id(record),
            fields={name: getattr(record, name) for name in self.schema.field_names},
            references=references,
            memberships=memberships,
            deleted=record.is_deleted,
        )

    def unsynced_parents(self, record: Any) -> List[tuple]:
        """
        Parents and members of `record` that have no server id yet.

        Returns:
            List of (entity_type, record) pairs
        """
        pending = []
        for spec in self.schema.references:
            parent = getattr(record, spec.attribute)
            if parent is not None and not parent.is_deleted:
                if not self.identity.has_server_id(parent):
                    pending.append((spec.target, parent))
        for spec in self.schema.memberships:
            for member in getattr(record, spec.attribute):
                if not member.is_deleted and not self.identity.has_server_id(member):
                    pending.append((spec.target, member))
        return pending

    @handle_db_errors
    def apply_snapshot(self, snapshot: EntitySnapshot, record: Optional[Any] = None) -> Any:
        """
        Write a winning snapshot to the store.

        Locates the record by server id, then local id, creating it if
        absent. Fields missing from the snapshot keep their current value.
        updated_at is copied verbatim so the next comparison sees no
        divergence. Parents and identity are checked before anything is
        written, so a refused snapshot leaves the session untouched.

        Args:
            snapshot: State to write
            record: Target record, if the caller already holds it

        Returns:
            The written record

        Raises:
            ValidationError: If a referenced parent or member is unknown locally
            IdentityConflictError: If the record holds a different server id
        """
        if record is None:
            record = self.get_by_server_id(snapshot.server_id) or self.get_by_local_id(
                snapshot.local_id
            )

        if record is not None and snapshot.server_id:
            current = self.identity.get_server_id(record)
            if current is not None and current != snapshot.server_id:
                self.identity.assign_server_id(record, snapshot.server_id)

        parents = self._resolve_references(snapshot)
        members = self._resolve_memberships(snapshot)

        if record is None:
            record = self.model()
            for spec in self.schema.fields:
                if spec.default is not None:
                    setattr(record, spec.name, spec.default)
            record.created_at = snapshot.updated_at
            if snapshot.local_id and self.get_by_local_id(snapshot.local_id) is None:
                self.identity.assign_local_id(record, snapshot.local_id)
            self.identity.get_local_id(record)
            self.session.add(record)

        for name, value in snapshot.fields.items():
            spec = self.schema.field_spec(name)
            setattr(record, name, spec.default if value is None and spec.default is not None else value)
        for attribute, parent in parents.items():
            setattr(record, attribute, parent)
        for attribute, member_list in members.items():
            setattr(record, attribute, member_list)

        if snapshot.server_id:
            self.identity.assign_server_id(record, snapshot.server_id)

        if snapshot.deleted and not record.is_deleted:
            record.soft_delete(deleted_by="sync")
        elif not snapshot.deleted and record.is_deleted:
            record.restore()

        record.updated_at = snapshot.updated_at
        self._flush()
        return record

    def _resolve_references(self, snapshot: EntitySnapshot) -> Dict[str, Any]:
        """Parent records of the snapshot, keyed by relationship attribute."""
        parents: Dict[str, Any] = {}
        for spec in self.schema.references:
            if spec.wire_name not in snapshot.references:
                continue
            parent_server_id = snapshot.references[spec.wire_name]
            parent = None
            if parent_server_id:
                parent = self._for(spec.target).get_by_server_id(parent_server_id)
                if parent is None:
                    raise ValidationError(
                        f"{self.entity_type.value} {snapshot.server_id}: "
                        f"{spec.target.value} {parent_server_id} is not available locally"
                    )
            if parent is None and spec.required:
                raise ValidationError(
                    f"{self.entity_type.value} {snapshot.server_id} has no {spec.wire_name}"
                )
            parents[spec.attribute] = parent
        return parents

    def _resolve_memberships(self, snapshot: EntitySnapshot) -> Dict[str, List[Any]]:
        """
        Member records of the snapshot, keyed by relationship attribute.

        An unknown member refuses the whole snapshot: applying a shortened
        list would stamp the remote timestamp on it, and the next upload of
        the record would drop the membership remotely.
        """
        resolved: Dict[str, List[Any]] = {}
        for spec in self.schema.memberships:
            if spec.wire_name not in snapshot.memberships:
                continue
            members = []
            manager = self._for(spec.target)
            for member_server_id in snapshot.memberships[spec.wire_name]:
                member = manager.get_by_server_id(member_server_id)
                if member is None:
                    raise ValidationError(
                        f"{self.entity_type.value} {snapshot.server_id}: "
                        f"{spec.wire_name} member {member_server_id} is not available locally"
                    )
                members.append(member)
            resolved[spec.attribute] = members
        return resolved
