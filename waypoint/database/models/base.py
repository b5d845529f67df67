"""
Base Classes and Mixins
------------------------

Foundational ORM classes for the Waypoint journal store.

Classes:
    - UTCDateTime: DateTime column type that always returns aware UTC values
    - Base: Declarative base of the journal models
    - TimestampMixin: created_at / updated_at columns
    - SyncIdentityMixin: local_id / server_id identity columns
    - LegacyIdentityMixin: uuid / backend_id identity columns of older tables
    - SoftDeleteMixin: deleted_at tombstone columns

Identity columns are read and written only through
`waypoint.database.identity.EntityIdentity`.
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
from datetime import datetime, timezone
from typing import Optional

# --- Third party ---
from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """
    Timezone-safe DateTime.

    SQLite drops tzinfo on storage, so values are stored as naive UTC and
    handed back as aware UTC. Timestamp comparisons in conflict detection
    rely on this.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


# --- Base ORM class ---
class Base(DeclarativeBase):
    """Declarative base; its metadata backs create_all and the Alembic env."""


class TimestampMixin:
    """
    Creation and modification timestamps.

    `updated_at` is the sole basis for conflict ordering. It is not bumped
    by the ORM: user edits call `EntityManager.touch`, sync writes copy the
    winning snapshot's timestamp verbatim.
    """

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, nullable=False, index=True
    )


class SyncIdentityMixin(TimestampMixin):
    """
    Identity columns for tables created with the sync scheme.

    Attributes:
        local_id: Device-generated UUID, immutable once set
        server_id: Remote-assigned id, set at most once
    """

    local_id: Mapped[Optional[str]] = mapped_column(
        String(36), unique=True, nullable=True, index=True
    )
    server_id: Mapped[Optional[str]] = mapped_column(
        String(64), nullable=True, index=True
    )


class LegacyIdentityMixin(TimestampMixin):
    """
    Identity columns of tables that predate the sync scheme.

    Attributes:
        uuid: Device-generated UUID (same role as local_id)
        backend_id: Remote-assigned id (same role as server_id)
    """

    uuid: Mapped[Optional[str]] = mapped_column(
        String(36), unique=True, nullable=True, index=True
    )
    backend_id: Mapped[Optional[str]] = mapped_column(
        String(64), nullable=True, index=True
    )


# --- Soft Delete ---
class SoftDeleteMixin:
    """
    Tombstone columns.

    A local delete only sets deleted_at until the delete has reached the
    remote backend; the sync engine purges the row afterwards. Remote
    snapshots flagged as deleted are applied the same way.
    """

    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime, nullable=True, index=True
    )
    deleted_by: Mapped[Optional[str]] = mapped_column(
        String(100), nullable=True
    )
    deletion_reason: Mapped[Optional[str]] = mapped_column(
        Text, nullable=True
    )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def soft_delete(
        self, deleted_by: Optional[str] = None, reason: Optional[str] = None
    ) -> None:
        self.deleted_at = utcnow()
        self.deleted_by = deleted_by
        self.deletion_reason = reason

    def restore(self) -> None:
        """Undo soft_delete (a remote restore won the conflict)."""
        self.deleted_at = None
        self.deleted_by = None
        self.deletion_reason = None
