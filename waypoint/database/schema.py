#!/usr/bin/env python3
"""
schema.py
--------------------
Per-type field schemas for entity snapshots.

An EntitySchema lists, for one entity type:
    - the attribute fields a snapshot may carry and their value kinds
    - parent references (wire name -> ORM relationship -> target type)
    - memberships (many-to-many links exchanged as lists of server ids)
    - which fields and references must be present before upload

Snapshots built with a field outside the schema are rejected, so conflict
snapshots and queue payloads stay typed.
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

# --- Local imports ---
from waypoint.core.exceptions import ValidationError
from waypoint.core.validators import DataValidator
from .models.enums import EntityType


class FieldKind(str, Enum):
    """Value kind of a snapshot field."""

    STRING = "string"
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    DATETIME = "datetime"


@dataclass(frozen=True)
class FieldSpec:
    """
    One attribute field.

    Attributes:
        name: ORM attribute and wire key
        kind: Value kind used for coercion
        required: Must be non-empty before upload
        default: Value written locally when the remote omits the field
    """

    name: str
    kind: FieldKind = FieldKind.STRING
    required: bool = False
    default: Any = None

    def coerce(self, value: Any) -> Any:
        """
        Convert `value` to this field's kind.

        Raises:
            ValidationError: If the value cannot be converted
        """
        if value is None:
            return None
        try:
            if self.kind is FieldKind.STRING:
                return DataValidator.normalize_string(value)
            if self.kind is FieldKind.INTEGER:
                return DataValidator.normalize_int(value)
            if self.kind is FieldKind.FLOAT:
                return DataValidator.normalize_float(value)
            if self.kind is FieldKind.BOOLEAN:
                return DataValidator.normalize_bool(value)
            return DataValidator.normalize_datetime(value)
        except ValidationError as e:
            raise ValidationError(f"Field '{self.name}': {e}") from e

    def serialize(self, value: Any) -> Any:
        """JSON-ready form of a coerced value."""
        if isinstance(value, datetime):
            return DataValidator.ensure_utc(value).isoformat()
        return value


@dataclass(frozen=True)
class ReferenceSpec:
    """
    Parent reference exchanged as the parent's server id.

    Attributes:
        wire_name: Payload key (e.g. 'trip_id')
        attribute: ORM relationship on the child (e.g. 'trip')
        target: Parent entity type
        required: Child cannot be uploaded without it
    """

    wire_name: str
    attribute: str
    target: EntityType
    required: bool = False


@dataclass(frozen=True)
class MembershipSpec:
    """Many-to-many link exchanged as a sorted list of server ids."""

    wire_name: str
    attribute: str
    target: EntityType


@dataclass(frozen=True)
class EntitySchema:
    """
    Allowed content of snapshots for one entity type.

    Attributes:
        entity_type: Type described
        fields: Attribute fields
        references: Parent references
        memberships: Many-to-many links
    """

    entity_type: EntityType
    fields: Tuple[FieldSpec, ...]
    references: Tuple[ReferenceSpec, ...] = ()
    memberships: Tuple[MembershipSpec, ...] = ()
    _index: Dict[str, FieldSpec] = field(default_factory=dict, compare=False, repr=False)

    def __post_init__(self) -> None:
        self._index.update({spec.name: spec for spec in self.fields})

    @property
    def field_names(self) -> Tuple[str, ...]:
        return tuple(spec.name for spec in self.fields)

    def field_spec(self, name: str) -> FieldSpec:
        """
        Spec of field `name`.

        Raises:
            ValidationError: If the field is not part of the schema
        """
        try:
            return self._index[name]
        except KeyError:
            raise ValidationError(
                f"Unknown field '{name}' for {self.entity_type.value}"
            ) from None

    def reference(self, wire_name: str) -> ReferenceSpec:
        for spec in self.references:
            if spec.wire_name == wire_name:
                return spec
        raise ValidationError(
            f"Unknown reference '{wire_name}' for {self.entity_type.value}"
        )

    def membership(self, wire_name: str) -> MembershipSpec:
        for spec in self.memberships:
            if spec.wire_name == wire_name:
                return spec
        raise ValidationError(
            f"Unknown membership '{wire_name}' for {self.entity_type.value}"
        )

    # ---- Validation ----
    def coerce_fields(self, values: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Validate and coerce a field mapping.

        Raises:
            ValidationError: On unknown fields or uncoercible values
        """
        return {name: self.field_spec(name).coerce(value) for name, value in values.items()}

    def missing_required(
        self,
        values: Mapping[str, Any],
        references: Optional[Mapping[str, Optional[str]]] = None,
    ) -> List[str]:
        """Required fields and references that are absent or empty."""
        missing = DataValidator.missing_fields(
            dict(values), [spec.name for spec in self.fields if spec.required]
        )
        references = references or {}
        missing.extend(
            spec.wire_name
            for spec in self.references
            if spec.required and not references.get(spec.wire_name)
        )
        return missing

    def validate_for_upload(
        self,
        values: Mapping[str, Any],
        references: Optional[Mapping[str, Optional[str]]] = None,
    ) -> None:
        """
        Check required fields and references before upload.

        Raises:
            ValidationError: Naming every missing field
        """
        missing = self.missing_required(values, references)
        if missing:
            raise ValidationError(
                f"{self.entity_type.value} is missing required field(s): "
                f"{', '.join(missing)}"
            )


_S = FieldKind.STRING
_I = FieldKind.INTEGER
_F = FieldKind.FLOAT
_B = FieldKind.BOOLEAN
_D = FieldKind.DATETIME

SCHEMAS: Dict[EntityType, EntitySchema] = {
    EntityType.TAG_CATEGORY: EntitySchema(
        EntityType.TAG_CATEGORY,
        fields=(FieldSpec("name", _S, required=True), FieldSpec("color", _S)),
    ),
    EntityType.TAG: EntitySchema(
        EntityType.TAG,
        fields=(FieldSpec("name", _S, required=True), FieldSpec("color", _S)),
        references=(ReferenceSpec("category_id", "category", EntityType.TAG_CATEGORY),),
    ),
    EntityType.BUCKET_LIST_ITEM: EntitySchema(
        EntityType.BUCKET_LIST_ITEM,
        fields=(
            FieldSpec("name", _S, required=True),
            FieldSpec("country", _S),
            FieldSpec("item_type", _S),
            FieldSpec("is_done", _B, default=False),
            FieldSpec("completed_at", _D),
        ),
    ),
    EntityType.TRIP: EntitySchema(
        EntityType.TRIP,
        fields=(
            FieldSpec("name", _S, required=True),
            FieldSpec("description", _S),
            FieldSpec("start_date", _D),
            FieldSpec("end_date", _D),
            FieldSpec("is_active", _B, default=False),
            FieldSpec("total_distance", _F),
        ),
    ),
    EntityType.MEMORY: EntitySchema(
        EntityType.MEMORY,
        fields=(
            FieldSpec("title", _S, required=True),
            FieldSpec("text", _S),
            FieldSpec("timestamp", _D),
            FieldSpec("latitude", _F),
            FieldSpec("longitude", _F),
            FieldSpec("location_name", _S),
        ),
        references=(ReferenceSpec("trip_id", "trip", EntityType.TRIP, required=True),),
        memberships=(
            MembershipSpec("tag_ids", "tags", EntityType.TAG),
            MembershipSpec(
                "bucket_list_item_ids", "bucket_list_items", EntityType.BUCKET_LIST_ITEM
            ),
        ),
    ),
    EntityType.MEDIA_ITEM: EntitySchema(
        EntityType.MEDIA_ITEM,
        fields=(
            FieldSpec("filename", _S),
            FieldSpec("media_type", _S, required=True, default="photo"),
            FieldSpec("object_name", _S),
            FieldSpec("file_size", _I),
            FieldSpec("order_index", _I, default=0),
            FieldSpec("timestamp", _D),
            FieldSpec("duration", _F),
        ),
        references=(
            ReferenceSpec("memory_id", "memory", EntityType.MEMORY, required=True),
        ),
    ),
    EntityType.GPX_TRACK: EntitySchema(
        EntityType.GPX_TRACK,
        fields=(
            FieldSpec("name", _S, required=True),
            FieldSpec("original_filename", _S),
            FieldSpec("object_name", _S),
            FieldSpec("track_type", _S),
            FieldSpec("creator", _S),
            FieldSpec("total_distance", _F),
        ),
        references=(
            ReferenceSpec("trip_id", "trip", EntityType.TRIP, required=True),
            ReferenceSpec("memory_id", "memory", EntityType.MEMORY),
        ),
    ),
    EntityType.TRACK_SEGMENT: EntitySchema(
        EntityType.TRACK_SEGMENT,
        fields=(
            FieldSpec("segment_index", _I, required=True, default=0),
            FieldSpec("encoded_points", _S),
            FieldSpec("point_count", _I, default=0),
            FieldSpec("start_time", _D),
            FieldSpec("end_time", _D),
        ),
        references=(
            ReferenceSpec("gpx_track_id", "gpx_track", EntityType.GPX_TRACK, required=True),
        ),
    ),
}


def get_schema(entity_type: EntityType) -> EntitySchema:
    """Schema registered for `entity_type`."""
    return SCHEMAS[EntityType(entity_type)]
