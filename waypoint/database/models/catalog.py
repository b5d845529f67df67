"""
Catalog Models
---------------

Reference data that memories point at.

Models:
    - TagCategory: Grouping of tags
    - Tag: Free-form label attached to memories
    - BucketListItem: Destination or experience the user wants to reach
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

# --- Third party ---
from sqlalchemy import Boolean, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

# --- Local imports ---
from .associations import memory_bucket_list_items, memory_tags
from .base import Base, SoftDeleteMixin, SyncIdentityMixin, UTCDateTime

if TYPE_CHECKING:
    from .travel import Memory


class TagCategory(Base, SyncIdentityMixin, SoftDeleteMixin):
    """
    Grouping of tags (e.g. 'Food', 'Nature').

    Attributes:
        name: Display name
        color: Hex color used by the UI
        tags: Tags in this category
    """

    __tablename__ = "tag_categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    color: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    tags: Mapped[List["Tag"]] = relationship(back_populates="category")

    def __repr__(self) -> str:
        return f"<TagCategory(id={self.id}, name='{self.name}')>"


class Tag(Base, SyncIdentityMixin, SoftDeleteMixin):
    """
    Free-form label attached to memories.

    Attributes:
        name: Tag text
        color: Hex color used by the UI
        category: Optional owning TagCategory
        memories: Memories carrying this tag
    """

    __tablename__ = "tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    color: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    category_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("tag_categories.id", ondelete="SET NULL"), nullable=True, index=True
    )

    category: Mapped[Optional[TagCategory]] = relationship(back_populates="tags")
    memories: Mapped[List["Memory"]] = relationship(
        secondary=memory_tags, back_populates="tags"
    )

    def __repr__(self) -> str:
        return f"<Tag(id={self.id}, name='{self.name}')>"


class BucketListItem(Base, SyncIdentityMixin, SoftDeleteMixin):
    """
    Destination or experience on the user's bucket list.

    Attributes:
        name: Display name
        country: Country the item belongs to
        item_type: One of BucketListType values
        is_done: Whether the item has been completed
        completed_at: When it was completed
        memories: Memories linked to this item
    """

    __tablename__ = "bucket_list_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    country: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    item_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    is_done: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    memories: Mapped[List["Memory"]] = relationship(
        secondary=memory_bucket_list_items, back_populates="bucket_list_items"
    )

    def __repr__(self) -> str:
        return f"<BucketListItem(id={self.id}, name='{self.name}')>"
