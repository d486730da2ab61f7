"""Create integration, sync queue and mirror tables

Revision ID: create_sync_core_tables
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = 'create_sync_core_tables'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    ]


def upgrade() -> None:
    """Create the sync core tables."""
    op.create_table('user_integrations',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('provider', sa.String(length=50), nullable=False),
        sa.Column('access_token', sa.Text(), nullable=False),
        sa.Column('refresh_token', sa.Text(), nullable=True),
        sa.Column('token_expires_at', sa.DateTime(), nullable=True),
        sa.Column('sync_token', sa.Text(), nullable=True),
        sa.Column('last_synced_at', sa.DateTime(), nullable=True),
        sa.Column('provider_user_id', sa.String(length=255), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'provider', name='uq_user_integrations_user_provider'),
    )
    op.create_index(op.f('ix_user_integrations_user_id'), 'user_integrations', ['user_id'], unique=False)

    op.create_table('sync_queue',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('integration_type', sa.String(length=50), nullable=False),
        sa.Column('operation', sa.String(length=50), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('resource_id', sa.String(length=255), nullable=True),
        sa.Column('priority', sa.Integer(), nullable=False, server_default='5'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('scheduled_at', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_sync_queue_user_id'), 'sync_queue', ['user_id'], unique=False)
    op.create_index('ix_sync_queue_pick', 'sync_queue', ['status', 'priority', 'created_at'], unique=False)

    op.create_table('calendar_events',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('external_event_id', sa.String(length=1024), nullable=False),
        sa.Column('title', sa.String(length=1024), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('location', sa.Text(), nullable=True),
        sa.Column('start_time', sa.String(length=64), nullable=True),
        sa.Column('end_time', sa.String(length=64), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'external_event_id', name='uq_calendar_events_user_external'),
    )
    op.create_index(op.f('ix_calendar_events_user_id'), 'calendar_events', ['user_id'], unique=False)

    op.create_table('calendar_metadata',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('calendar_id', sa.String(length=1024), nullable=False),
        sa.Column('name', sa.String(length=1024), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('color', sa.String(length=32), nullable=True),
        sa.Column('is_primary', sa.Boolean(), nullable=True),
        sa.Column('is_selected', sa.Boolean(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'calendar_id', name='uq_calendar_metadata_user_calendar'),
    )
    op.create_index(op.f('ix_calendar_metadata_user_id'), 'calendar_metadata', ['user_id'], unique=False)

    op.create_table('slack_channels',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('workspace_id', sa.String(length=64), nullable=False),
        sa.Column('channel_id', sa.String(length=64), nullable=False),
        sa.Column('channel_name', sa.String(length=255), nullable=False),
        sa.Column('is_private', sa.Boolean(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'workspace_id', 'channel_id', name='uq_slack_channels_user_channel'),
    )
    op.create_index(op.f('ix_slack_channels_user_id'), 'slack_channels', ['user_id'], unique=False)

    op.create_table('notion_databases',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('database_id', sa.String(length=64), nullable=False),
        sa.Column('title', sa.String(length=1024), nullable=False),
        sa.Column('property_mappings', sa.JSON(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'database_id', name='uq_notion_databases_user_database'),
    )
    op.create_index(op.f('ix_notion_databases_user_id'), 'notion_databases', ['user_id'], unique=False)

    op.create_table('food_orders',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('provider', sa.String(length=50), nullable=False),
        sa.Column('order_id', sa.String(length=64), nullable=True),
        sa.Column('restaurant_name', sa.String(length=255), nullable=False),
        sa.Column('delivery_address', sa.Text(), nullable=False),
        sa.Column('order_items', sa.JSON(), nullable=False),
        sa.Column('order_total', sa.Float(), nullable=False),
        sa.Column('status', sa.String(length=30), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_food_orders_user_id'), 'food_orders', ['user_id'], unique=False)
    op.create_index(op.f('ix_food_orders_order_id'), 'food_orders', ['order_id'], unique=False)

    op.create_table('ride_bookings',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('provider', sa.String(length=50), nullable=False),
        sa.Column('booking_id', sa.String(length=64), nullable=True),
        sa.Column('pickup_location', sa.Text(), nullable=False),
        sa.Column('dropoff_location', sa.Text(), nullable=False),
        sa.Column('pickup_time', sa.String(length=64), nullable=False),
        sa.Column('fare', sa.Float(), nullable=True),
        sa.Column('status', sa.String(length=30), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_ride_bookings_user_id'), 'ride_bookings', ['user_id'], unique=False)
    op.create_index(op.f('ix_ride_bookings_booking_id'), 'ride_bookings', ['booking_id'], unique=False)


def downgrade() -> None:
    """Drop the sync core tables."""
    for table in (
        'ride_bookings',
        'food_orders',
        'notion_databases',
        'slack_channels',
        'calendar_metadata',
        'calendar_events',
        'sync_queue',
        'user_integrations',
    ):
        op.drop_table(table)
