"""initial_journal_schema

Revision ID: 3c1f5a9e2b47
Revises:
Create Date: 2026-04-12 09:30:00.000000

"""
from typing import List, Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3c1f5a9e2b47'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _sync_columns(local_name: str = 'local_id', server_name: str = 'server_id') -> List[sa.Column]:
    """Identity, timestamp and soft-delete columns shared by every table."""
    return [
        sa.Column(local_name, sa.String(length=36), nullable=True),
        sa.Column(server_name, sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.Column('deleted_by', sa.String(), nullable=True),
        sa.Column('deletion_reason', sa.Text(), nullable=True),
    ]


def _sync_indexes(table: str, local_name: str = 'local_id', server_name: str = 'server_id') -> None:
    op.create_index(f'ix_{table}_{local_name}', table, [local_name], unique=True)
    op.create_index(f'ix_{table}_{server_name}', table, [server_name], unique=False)
    op.create_index(f'ix_{table}_updated_at', table, ['updated_at'], unique=False)


def upgrade() -> None:
    """
    Create the journal store.

    Tables created with the sync scheme use local_id / server_id; media
    items and GPX tracks keep their older uuid / backend_id names.
    """

    # ===== Catalog =====
    op.create_table(
        'tag_categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('color', sa.String(length=20), nullable=True),
        *_sync_columns(),
        sa.PrimaryKeyConstraint('id'),
    )
    _sync_indexes('tag_categories')

    op.create_table(
        'tags',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('color', sa.String(length=20), nullable=True),
        sa.Column('category_id', sa.Integer(), nullable=True),
        *_sync_columns(),
        sa.ForeignKeyConstraint(['category_id'], ['tag_categories.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    _sync_indexes('tags')
    op.create_index('ix_tags_category_id', 'tags', ['category_id'], unique=False)

    op.create_table(
        'bucket_list_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('country', sa.String(length=100), nullable=True),
        sa.Column('item_type', sa.String(length=50), nullable=True),
        sa.Column('is_done', sa.Boolean(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        *_sync_columns(),
        sa.PrimaryKeyConstraint('id'),
    )
    _sync_indexes('bucket_list_items')

    # ===== Travel =====
    op.create_table(
        'trips',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('start_date', sa.DateTime(), nullable=True),
        sa.Column('end_date', sa.DateTime(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('total_distance', sa.Float(), nullable=True),
        *_sync_columns(),
        sa.PrimaryKeyConstraint('id'),
    )
    _sync_indexes('trips')

    op.create_table(
        'memories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('text', sa.Text(), nullable=True),
        sa.Column('timestamp', sa.DateTime(), nullable=True),
        sa.Column('latitude', sa.Float(), nullable=True),
        sa.Column('longitude', sa.Float(), nullable=True),
        sa.Column('location_name', sa.String(length=200), nullable=True),
        sa.Column('trip_id', sa.Integer(), nullable=True),
        *_sync_columns(),
        sa.ForeignKeyConstraint(['trip_id'], ['trips.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    _sync_indexes('memories')
    op.create_index('ix_memories_trip_id', 'memories', ['trip_id'], unique=False)

    op.create_table(
        'memory_tags',
        sa.Column('memory_id', sa.Integer(), nullable=False),
        sa.Column('tag_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['memory_id'], ['memories.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['tag_id'], ['tags.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('memory_id', 'tag_id'),
    )

    op.create_table(
        'memory_bucket_list_items',
        sa.Column('memory_id', sa.Integer(), nullable=False),
        sa.Column('bucket_list_item_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['memory_id'], ['memories.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(
            ['bucket_list_item_id'], ['bucket_list_items.id'], ondelete='CASCADE'
        ),
        sa.PrimaryKeyConstraint('memory_id', 'bucket_list_item_id'),
    )

    # ===== Media =====
    op.create_table(
        'media_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('filename', sa.String(length=255), nullable=True),
        sa.Column('media_type', sa.String(length=20), nullable=False),
        sa.Column('object_name', sa.String(length=500), nullable=True),
        sa.Column('file_size', sa.Integer(), nullable=True),
        sa.Column('order_index', sa.Integer(), nullable=False),
        sa.Column('timestamp', sa.DateTime(), nullable=True),
        sa.Column('duration', sa.Float(), nullable=True),
        sa.Column('memory_id', sa.Integer(), nullable=True),
        *_sync_columns('uuid', 'backend_id'),
        sa.ForeignKeyConstraint(['memory_id'], ['memories.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    _sync_indexes('media_items', 'uuid', 'backend_id')
    op.create_index('ix_media_items_memory_id', 'media_items', ['memory_id'], unique=False)

    op.create_table(
        'gpx_tracks',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('original_filename', sa.String(length=255), nullable=True),
        sa.Column('object_name', sa.String(length=500), nullable=True),
        sa.Column('track_type', sa.String(length=20), nullable=True),
        sa.Column('creator', sa.String(length=100), nullable=True),
        sa.Column('total_distance', sa.Float(), nullable=True),
        sa.Column('trip_id', sa.Integer(), nullable=True),
        sa.Column('memory_id', sa.Integer(), nullable=True),
        *_sync_columns('uuid', 'backend_id'),
        sa.ForeignKeyConstraint(['trip_id'], ['trips.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['memory_id'], ['memories.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    _sync_indexes('gpx_tracks', 'uuid', 'backend_id')
    op.create_index('ix_gpx_tracks_trip_id', 'gpx_tracks', ['trip_id'], unique=False)
    op.create_index('ix_gpx_tracks_memory_id', 'gpx_tracks', ['memory_id'], unique=False)

    op.create_table(
        'track_segments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('segment_index', sa.Integer(), nullable=False),
        sa.Column('encoded_points', sa.Text(), nullable=True),
        sa.Column('point_count', sa.Integer(), nullable=False),
        sa.Column('start_time', sa.DateTime(), nullable=True),
        sa.Column('end_time', sa.DateTime(), nullable=True),
        sa.Column('gpx_track_id', sa.Integer(), nullable=True),
        *_sync_columns(),
        sa.ForeignKeyConstraint(['gpx_track_id'], ['gpx_tracks.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    _sync_indexes('track_segments')
    op.create_index(
        'ix_track_segments_gpx_track_id', 'track_segments', ['gpx_track_id'], unique=False
    )


def downgrade() -> None:
    """Drop the journal store."""
    for table in (
        'track_segments',
        'gpx_tracks',
        'media_items',
        'memory_bucket_list_items',
        'memory_tags',
        'memories',
        'trips',
        'bucket_list_items',
        'tags',
        'tag_categories',
    ):
        op.drop_table(table)
