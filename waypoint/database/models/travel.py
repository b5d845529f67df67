"""
Travel Models
--------------

Trips and the memories recorded during them.

Models:
    - Trip: A journey with a date range
    - Memory: A dated, located journal note inside a trip
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

# --- Third party ---
from sqlalchemy import Boolean, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

# --- Local imports ---
from .associations import memory_bucket_list_items, memory_tags
from .base import Base, SoftDeleteMixin, SyncIdentityMixin, UTCDateTime

if TYPE_CHECKING:
    from .catalog import BucketListItem, Tag
    from .media import GPXTrack, MediaItem


class Trip(Base, SyncIdentityMixin, SoftDeleteMixin):
    """
    A journey.

    Attributes:
        name: Trip title
        description: Free text
        start_date / end_date: Date range
        is_active: Whether the trip is currently being recorded
        total_distance: Kilometres travelled, as computed by the host app
        memories: Memories recorded in this trip
        gpx_tracks: Tracks recorded in this trip
    """

    __tablename__ = "trips"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    start_date: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    end_date: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    total_distance: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    memories: Mapped[List["Memory"]] = relationship(back_populates="trip")
    gpx_tracks: Mapped[List["GPXTrack"]] = relationship(back_populates="trip")

    def __repr__(self) -> str:
        return f"<Trip(id={self.id}, name='{self.name}')>"


class Memory(Base, SyncIdentityMixin, SoftDeleteMixin):
    """
    A journal note inside a trip.

    Attributes:
        title: Short title
        text: Body text
        timestamp: When the memory happened
        latitude / longitude / location_name: Where it happened
        trip: Owning trip (required for upload)
        tags: Labels
        bucket_list_items: Bucket-list items this memory fulfils
        media_items: Attached photos, videos, audio
        gpx_tracks: Tracks attached to this memory
    """

    __tablename__ = "memories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    timestamp: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    location_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    trip_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("trips.id", ondelete="CASCADE"), nullable=True, index=True
    )

    trip: Mapped[Optional[Trip]] = relationship(back_populates="memories")
    tags: Mapped[List["Tag"]] = relationship(
        secondary=memory_tags, back_populates="memories"
    )
    bucket_list_items: Mapped[List["BucketListItem"]] = relationship(
        secondary=memory_bucket_list_items, back_populates="memories"
    )
    media_items: Mapped[List["MediaItem"]] = relationship(back_populates="memory")
    gpx_tracks: Mapped[List["GPXTrack"]] = relationship(back_populates="memory")

    def __repr__(self) -> str:
        return f"<Memory(id={self.id}, title='{self.title}')>"
