"""
Waypoint Journal Models
------------------------

SQLAlchemy ORM models for the local journal store.

Modules:
    - base: Declarative base, timestamp/identity/soft-delete mixins
    - enums: EntityType and attribute enums
    - associations: Memory membership tables
    - catalog: TagCategory, Tag, BucketListItem
    - travel: Trip, Memory
    - media: MediaItem, GPXTrack, TrackSegment
    - sync: OfflineTask, PendingConflict, SyncStateEntry (engine bookkeeping)
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
from typing import Dict, Type

from .base import (
    Base,
    LegacyIdentityMixin,
    SoftDeleteMixin,
    SyncIdentityMixin,
    TimestampMixin,
    UTCDateTime,
    utcnow,
)
from .enums import BucketListType, EntityType, MediaType
from .associations import memory_bucket_list_items, memory_tags
from .catalog import BucketListItem, Tag, TagCategory
from .travel import Memory, Trip
from .media import GPXTrack, MediaItem, TrackSegment
from .sync import OfflineTask, PendingConflict, SyncStateEntry

MODEL_REGISTRY: Dict[EntityType, Type[Base]] = {
    EntityType.TAG_CATEGORY: TagCategory,
    EntityType.TAG: Tag,
    EntityType.BUCKET_LIST_ITEM: BucketListItem,
    EntityType.TRIP: Trip,
    EntityType.MEMORY: Memory,
    EntityType.MEDIA_ITEM: MediaItem,
    EntityType.GPX_TRACK: GPXTrack,
    EntityType.TRACK_SEGMENT: TrackSegment,
}


def model_for(entity_type: EntityType) -> Type[Base]:
    """ORM class backing `entity_type`."""
    return MODEL_REGISTRY[EntityType(entity_type)]


def entity_type_of(record: object) -> EntityType:
    """
    Entity type of an ORM record.

    Raises:
        KeyError: If the record is not a syncable model instance
    """
    for entity_type, model in MODEL_REGISTRY.items():
        if isinstance(record, model):
            return entity_type
    raise KeyError(f"{type(record).__name__} is not a syncable model")


__all__ = [
    "Base",
    "TimestampMixin",
    "SyncIdentityMixin",
    "LegacyIdentityMixin",
    "SoftDeleteMixin",
    "UTCDateTime",
    "utcnow",
    "EntityType",
    "MediaType",
    "BucketListType",
    "memory_tags",
    "memory_bucket_list_items",
    "TagCategory",
    "Tag",
    "BucketListItem",
    "Trip",
    "Memory",
    "MediaItem",
    "GPXTrack",
    "TrackSegment",
    "OfflineTask",
    "PendingConflict",
    "SyncStateEntry",
    "MODEL_REGISTRY",
    "model_for",
    "entity_type_of",
]
