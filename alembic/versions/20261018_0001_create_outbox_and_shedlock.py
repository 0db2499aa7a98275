"""create outbox and shedlock tables

Revision ID: 0001_outbox_shedlock
Revises:
Create Date: 2026-10-18 09:00:00.000000+00:00

"""
from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = '0001_outbox_shedlock'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Upgrade database schema."""
    op.create_table(
        'outbox',
        sa.Column('aggregate_type', sa.String(length=100), nullable=False, comment='Aggregate type (e.g., Order)'),
        sa.Column('aggregate_id', sa.String(length=100), nullable=False, comment='Aggregate identifier'),
        sa.Column('event_type', sa.String(length=100), nullable=False, comment='Event type identifier'),
        sa.Column('destination', sa.String(length=255), nullable=False, comment='Logical destination (queue) name'),
        sa.Column('payload', sa.Text(), nullable=False, comment='Opaque message body'),
        sa.Column(
            'status',
            sa.String(length=16),
            server_default='PENDING',
            nullable=False,
            comment='PENDING | PUBLISHED | FAILED',
        ),
        sa.Column(
            'retry_count',
            sa.Integer(),
            server_default=sa.text('0'),
            nullable=False,
            comment='Number of failed delivery attempts',
        ),
        sa.Column(
            'max_retries',
            sa.Integer(),
            server_default=sa.text('5'),
            nullable=False,
            comment='Maximum delivery attempts for this entry',
        ),
        sa.Column('last_error', sa.Text(), nullable=True, comment='Last delivery error (truncated)'),
        sa.Column(
            'next_retry_at',
            sa.DateTime(timezone=True),
            nullable=True,
            comment='Earliest next attempt when backoff is enabled',
        ),
        sa.Column(
            'published_at',
            sa.DateTime(timezone=True),
            nullable=True,
            comment='When the entry was acknowledged by the broker',
        ),
        sa.Column('id', sa.Uuid(), nullable=False, comment='UUID v7 primary key (time-sortable)'),
        sa.Column(
            'created_at',
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
            comment='Timestamp of record creation',
        ),
        sa.Column(
            'updated_at',
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
            comment='Timestamp of last update',
        ),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_outbox')),
    )
    op.create_index(
        'ix_outbox_status_created_at',
        'outbox',
        ['status', 'created_at'],
        unique=False,
        postgresql_where=sa.text("status = 'PENDING'"),
    )

    op.create_table(
        'shedlock',
        sa.Column('name', sa.String(length=64), nullable=False, comment='Lock name'),
        sa.Column('lock_until', sa.DateTime(timezone=True), nullable=False, comment='Lease expiry'),
        sa.Column(
            'locked_at',
            sa.DateTime(timezone=True),
            nullable=False,
            comment='When the current lease was taken',
        ),
        sa.Column('locked_by', sa.String(length=255), nullable=False, comment='Holder identity (hostname:pid)'),
        sa.PrimaryKeyConstraint('name', name=op.f('pk_shedlock')),
    )


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_table('shedlock')
    op.drop_index('ix_outbox_status_created_at', table_name='outbox', postgresql_where=sa.text("status = 'PENDING'"))
    op.drop_table('outbox')
