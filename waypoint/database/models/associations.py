"""
Association Tables
-------------------

Many-to-many link tables between memories and their memberships.

Tables:
    - memory_tags: Memory <-> Tag
    - memory_bucket_list_items: Memory <-> BucketListItem
"""
from __future__ import annotations

from sqlalchemy import Column, ForeignKey, Integer, Table

from .base import Base

memory_tags = Table(
    "memory_tags",
    Base.metadata,
    Column("memory_id", Integer, ForeignKey("memories.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)

memory_bucket_list_items = Table(
    "memory_bucket_list_items",
    Base.metadata,
    Column("memory_id", Integer, ForeignKey("memories.id", ondelete="CASCADE"), primary_key=True),
    Column(
        "bucket_list_item_id",
        Integer,
        ForeignKey("bucket_list_items.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)
