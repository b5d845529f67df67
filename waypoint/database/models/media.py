"""
Media Models
-------------

Attachments and GPS data linked to trips and memories.

Models:
    - MediaItem: Photo, video or audio attached to a memory
    - GPXTrack: Recorded GPS track of a trip, optionally tied to a memory
    - TrackSegment: Encoded polyline chunk of a GPXTrack

MediaItem and GPXTrack predate the sync identity scheme and keep the
`uuid` / `backend_id` column names. Binary content lives in object
storage; only the opaque `object_name` reference is stored here.
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

# --- Third party ---
from sqlalchemy import Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

# --- Local imports ---
from .base import (
    Base,
    LegacyIdentityMixin,
    SoftDeleteMixin,
    SyncIdentityMixin,
    UTCDateTime,
)

if TYPE_CHECKING:
    from .travel import Memory, Trip


class MediaItem(Base, LegacyIdentityMixin, SoftDeleteMixin):
    """
    Media attached to a memory.

    Attributes:
        filename: Original file name
        media_type: One of MediaType values
        object_name: Object-storage key of the binary
        file_size: Size in bytes
        order_index: Position inside the memory
        timestamp: Capture time
        duration: Seconds, for video and audio
        memory: Owning memory (required for upload)
    """

    __tablename__ = "media_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    filename: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    media_type: Mapped[str] = mapped_column(String(20), nullable=False, default="photo")
    object_name: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    file_size: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    timestamp: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    duration: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    memory_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("memories.id", ondelete="CASCADE"), nullable=True, index=True
    )

    memory: Mapped[Optional["Memory"]] = relationship(back_populates="media_items")

    def __repr__(self) -> str:
        return f"<MediaItem(id={self.id}, filename='{self.filename}')>"


class GPXTrack(Base, LegacyIdentityMixin, SoftDeleteMixin):
    """
    GPS track recorded during a trip.

    Attributes:
        name: Display name
        original_filename: Imported file name
        object_name: Object-storage key of the GPX file
        track_type: 'recorded' or 'imported'
        creator: Device or app that produced the file
        total_distance: Kilometres
        trip: Owning trip (required for upload)
        memory: Memory the track belongs to, if any
        segments: Encoded polyline chunks
    """

    __tablename__ = "gpx_tracks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    original_filename: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    object_name: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    track_type: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    creator: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    total_distance: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    trip_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("trips.id", ondelete="CASCADE"), nullable=True, index=True
    )
    memory_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("memories.id", ondelete="SET NULL"), nullable=True, index=True
    )

    trip: Mapped[Optional["Trip"]] = relationship(back_populates="gpx_tracks")
    memory: Mapped[Optional["Memory"]] = relationship(back_populates="gpx_tracks")
    segments: Mapped[List["TrackSegment"]] = relationship(
        back_populates="gpx_track", order_by="TrackSegment.segment_index"
    )

    def __repr__(self) -> str:
        return f"<GPXTrack(id={self.id}, name='{self.name}')>"


class TrackSegment(Base, SyncIdentityMixin, SoftDeleteMixin):
    """
    Encoded chunk of a GPX track.

    Attributes:
        segment_index: Position inside the track
        encoded_points: Polyline-encoded coordinates
        point_count: Number of points in the chunk
        start_time / end_time: Time range covered
        gpx_track: Owning track (required for upload)
    """

    __tablename__ = "track_segments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    segment_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    encoded_points: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    point_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    start_time: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    end_time: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    gpx_track_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("gpx_tracks.id", ondelete="CASCADE"), nullable=True, index=True
    )

    gpx_track: Mapped[Optional[GPXTrack]] = relationship(back_populates="segments")

    def __repr__(self) -> str:
        return f"<TrackSegment(id={self.id}, index={self.segment_index})>"
