"""sync_bookkeeping_tables

Revision ID: 8d24b6e1f0a3
Revises: 3c1f5a9e2b47
Create Date: 2026-05-20 14:15:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '8d24b6e1f0a3'
down_revision: Union[str, Sequence[str], None] = '3c1f5a9e2b47'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Move the offline queue and sync state into the journal store."""
    op.create_table(
        'offline_tasks',
        sa.Column('seq', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('task_id', sa.String(length=32), nullable=False),
        sa.Column('entity_type', sa.String(length=50), nullable=False),
        sa.Column('entity_id', sa.String(length=36), nullable=False),
        sa.Column('operation', sa.String(length=20), nullable=False),
        sa.Column('priority', sa.String(length=20), nullable=False),
        sa.Column('priority_rank', sa.Integer(), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('retry_count', sa.Integer(), nullable=False),
        sa.Column('max_retries', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('seq'),
        sa.UniqueConstraint('task_id'),
    )
    op.create_index('ix_offline_tasks_entity_id', 'offline_tasks', ['entity_id'], unique=False)
    op.create_index(
        'ix_offline_tasks_priority_rank', 'offline_tasks', ['priority_rank'], unique=False
    )
    op.create_index('ix_offline_tasks_status', 'offline_tasks', ['status'], unique=False)

    op.create_table(
        'pending_conflicts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('entity_type', sa.String(length=50), nullable=False),
        sa.Column('entity_id', sa.String(length=64), nullable=False),
        sa.Column('record', sa.JSON(), nullable=False),
        sa.Column('detected_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('entity_type', 'entity_id', name='uq_pending_conflict_entity'),
    )

    op.create_table(
        'sync_state',
        sa.Column('key', sa.String(length=64), nullable=False),
        sa.Column('value', sa.Text(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('key'),
    )


def downgrade() -> None:
    """Drop the bookkeeping tables."""
    op.drop_table('sync_state')
    op.drop_table('pending_conflicts')
    op.drop_index('ix_offline_tasks_status', table_name='offline_tasks')
    op.drop_index('ix_offline_tasks_priority_rank', table_name='offline_tasks')
    op.drop_index('ix_offline_tasks_entity_id', table_name='offline_tasks')
    op.drop_table('offline_tasks')
