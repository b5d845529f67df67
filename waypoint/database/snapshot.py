#!/usr/bin/env python3
"""
snapshot.py
--------------------
Typed, immutable attribute snapshots of syncable entities.

A snapshot is what the conflict resolver compares and returns, what the
offline queue persists as a task payload, and what the remote backend
receives. Its content is checked against the entity type's schema.

Wire payload layout (to_payload):

    {
        "local_id": "5b1f...",
        "updated_at": "2026-05-01T10:00:00+00:00",
        "name": "Iceland",                # fields
        "trip_id": "17",                  # references (parent server ids)
        "tag_ids": ["3", "8"]             # memberships
    }
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping, Optional, Tuple

# --- Local imports ---
from waypoint.core.exceptions import ValidationError
from waypoint.core.validators import DataValidator
from .models.enums import EntityType

from .schema import EntitySchema, get_schema

if TYPE_CHECKING:
    from waypoint.sync.transport import RemoteEntity


@dataclass(frozen=True)
class EntitySnapshot:
    """
    Point-in-time state of one entity.

    Attributes:
        entity_type: Type of the entity
        local_id: Device-side identity (None for records only known remotely)
        server_id: Remote identity (None until first push)
        updated_at: Last mutation time, aware UTC
        fields: Attribute values, keyed by schema field name
        references: Parent server ids, keyed by wire name
        memberships: Sorted member server ids, keyed by wire name
        deleted: Whether the entity is (soft) deleted
    """

    entity_type: EntityType
    local_id: Optional[str]
    server_id: Optional[str]
    updated_at: datetime
    fields: Mapping[str, Any] = field(default_factory=dict)
    references: Mapping[str, Optional[str]] = field(default_factory=dict)
    memberships: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)
    deleted: bool = False

    # ---- Construction ----
    @classmethod
    def build(
        cls,
        entity_type: EntityType,
        *,
        updated_at: Any,
        local_id: Optional[str] = None,
        server_id: Optional[str] = None,
        fields: Optional[Mapping[str, Any]] = None,
        references: Optional[Mapping[str, Optional[str]]] = None,
        memberships: Optional[Mapping[str, Iterable[Any]]] = None,
        deleted: bool = False,
    ) -> "EntitySnapshot":
        """
        Build a snapshot, validating every key against the type's schema.

        Raises:
            ValidationError: On unknown keys, bad values or missing updated_at
        """
        entity_type = EntityType(entity_type)
        schema = get_schema(entity_type)

        timestamp = DataValidator.normalize_datetime(updated_at)
        if timestamp is None:
            raise ValidationError(f"{entity_type.value} snapshot needs updated_at")

        refs: Dict[str, Optional[str]] = {}
        for wire_name, value in (references or {}).items():
            schema.reference(wire_name)
            refs[wire_name] = str(value) if value not in (None, "") else None

        members: Dict[str, Tuple[str, ...]] = {}
        for wire_name, values in (memberships or {}).items():
            schema.membership(wire_name)
            members[wire_name] = tuple(sorted(str(v) for v in (values or ())))

        return cls(
            entity_type=entity_type,
            local_id=local_id or None,
            server_id=str(server_id) if server_id not in (None, "") else None,
            updated_at=timestamp,
            fields=schema.coerce_fields(fields or {}),
            references=refs,
            memberships=members,
            deleted=bool(deleted),
        )

    @classmethod
    def from_remote(
        cls,
        entity_type: EntityType,
        remote: "RemoteEntity",
        local_id: Optional[str] = None,
    ) -> "EntitySnapshot":
        """
        Parse a remote record.

        Keys the schema does not know are ignored; the remote may carry
        server-only metadata. Known keys are still type-checked.

        Raises:
            ValidationError: If a known key holds an invalid value
        """
        schema = get_schema(entity_type)
        data = remote.data
        return cls.build(
            entity_type,
            updated_at=remote.updated_at,
            local_id=local_id or data.get("local_id"),
            server_id=remote.id,
            fields={name: data[name] for name in schema.field_names if name in data},
            references={
                spec.wire_name: data.get(spec.wire_name)
                for spec in schema.references
                if spec.wire_name in data
            },
            memberships={
                spec.wire_name: data.get(spec.wire_name) or ()
                for spec in schema.memberships
                if spec.wire_name in data
            },
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EntitySnapshot":
        """Inverse of to_dict."""
        try:
            return cls.build(
                data["entity_type"],
                updated_at=data["updated_at"],
                local_id=data.get("local_id"),
                server_id=data.get("server_id"),
                fields=data.get("fields") or {},
                references=data.get("references") or {},
                memberships=data.get("memberships") or {},
                deleted=data.get("deleted", False),
            )
        except (KeyError, ValueError) as e:
            raise ValidationError(f"Malformed snapshot: {e}") from e

    # ---- Derived values ----
    @property
    def schema(self) -> EntitySchema:
        return get_schema(self.entity_type)

    def with_server_id(self, server_id: str) -> "EntitySnapshot":
        return replace(self, server_id=str(server_id))

    def with_updated_at(self, updated_at: datetime) -> "EntitySnapshot":
        return replace(self, updated_at=DataValidator.ensure_utc(updated_at))

    def missing_required(self) -> List[str]:
        return self.schema.missing_required(self.fields, self.references)

    def validate_for_upload(self) -> None:
        """
        Raises:
            ValidationError: If required fields or parents are missing
        """
        self.schema.validate_for_upload(self.fields, self.references)

    def diff(self, other: "EntitySnapshot") -> List[str]:
        """
        Names of fields, references and memberships that differ.

        Identity and timestamps are not compared. Used for diagnostics
        only; conflict decisions are timestamp-driven.
        """
        differing: List[str] = []
        for name in self.schema.field_names:
            if self.fields.get(name) != other.fields.get(name):
                differing.append(name)
        for spec in self.schema.references:
            if self.references.get(spec.wire_name) != other.references.get(spec.wire_name):
                differing.append(spec.wire_name)
        for spec in self.schema.memberships:
            if tuple(self.memberships.get(spec.wire_name, ())) != tuple(
                other.memberships.get(spec.wire_name, ())
            ):
                differing.append(spec.wire_name)
        return differing

    # ---- Serialization ----
    def to_payload(self) -> Dict[str, Any]:
        """Body sent to the remote backend."""
        schema = self.schema
        payload: Dict[str, Any] = {
            "local_id": self.local_id,
            "updated_at": self.updated_at.isoformat(),
        }
        for name, value in self.fields.items():
            payload[name] = schema.field_spec(name).serialize(value)
        payload.update(self.references)
        for wire_name, values in self.memberships.items():
            payload[wire_name] = list(values)
        return payload

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready form for the offline queue and the sync state file."""
        schema = self.schema
        return {
            "entity_type": self.entity_type.value,
            "local_id": self.local_id,
            "server_id": self.server_id,
            "updated_at": self.updated_at.isoformat(),
            "fields": {
                name: schema.field_spec(name).serialize(value)
                for name, value in self.fields.items()
            },
            "references": dict(self.references),
            "memberships": {k: list(v) for k, v in self.memberships.items()},
            "deleted": self.deleted,
        }
