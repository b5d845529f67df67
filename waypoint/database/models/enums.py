"""
Enumeration Types
------------------

Enum classes for the Waypoint journal models.

Enums:
    - EntityType: Every syncable entity type, in declaration order
    - MediaType: Kind of media attached to a memory
    - BucketListType: Category of a bucket-list destination
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
from enum import Enum
from typing import List


class EntityType(str, Enum):
    """
    Syncable entity types.

    Declaration order doubles as the tie-breaker of the dependency
    resolver, so types without mutual constraints keep a stable order.
    """

    TAG_CATEGORY = "tag_category"
    TAG = "tag"
    BUCKET_LIST_ITEM = "bucket_list_item"
    TRIP = "trip"
    MEMORY = "memory"
    MEDIA_ITEM = "media_item"
    GPX_TRACK = "gpx_track"
    TRACK_SEGMENT = "track_segment"

    @classmethod
    def choices(cls) -> List[str]:
        """Get all available entity type choices."""
        return [entity_type.value for entity_type in cls]

    @property
    def position(self) -> int:
        """Declaration index."""
        return list(EntityType).index(self)

    @property
    def display_name(self) -> str:
        """Get human-readable display name."""
        display_map = {
            self.TAG_CATEGORY: "Tag Category",
            self.TAG: "Tag",
            self.BUCKET_LIST_ITEM: "Bucket List Item",
            self.TRIP: "Trip",
            self.MEMORY: "Memory",
            self.MEDIA_ITEM: "Media Item",
            self.GPX_TRACK: "GPX Track",
            self.TRACK_SEGMENT: "Track Segment",
        }
        return display_map.get(self, self.value.title())


class MediaType(str, Enum):
    """Kind of media attached to a memory."""

    PHOTO = "photo"
    VIDEO = "video"
    AUDIO = "audio"

    @classmethod
    def choices(cls) -> List[str]:
        return [media_type.value for media_type in cls]


class BucketListType(str, Enum):
    """Category of a bucket-list destination."""

    CITY = "city"
    COUNTRY = "country"
    NATIONAL_PARK = "national_park"
    LANDMARK = "landmark"
    EXPERIENCE = "experience"
    OTHER = "other"

    @classmethod
    def choices(cls) -> List[str]:
        return [item_type.value for item_type in cls]
