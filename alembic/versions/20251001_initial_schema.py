"""Initial schema - teams, locations, resources, recurring events

Revision ID: 3c9d1e7a5b20
Revises:
Create Date: 2025-10-01

Tables:
- teams, locations: conflict dimensions besides resources
- resources, resource_bookings: exclusive bookings held by events
- recurrence_rules: repeating patterns owned by series anchors
- events: single events, series anchors and exception instances
- event_participants: RSVPs
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from club_scheduler.models.base import GUID, UTCDateTime


# revision identifiers, used by Alembic.
revision: str = '3c9d1e7a5b20'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')


def audit_columns() -> list:
    return [
        sa.Column('id', GUID(), nullable=False),
        sa.Column('created_at', UTCDateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', UTCDateTime(), nullable=True),
        sa.Column('deleted_at', UTCDateTime(), nullable=True),
    ]


def upgrade() -> None:
    op.create_table('teams',
        sa.Column('organization_id', GUID(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=False),
        *audit_columns(),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('teams', schema=None) as batch_op:
        batch_op.create_index('idx_team_organization', ['organization_id'], unique=False)
        batch_op.create_index('idx_team_deleted', ['deleted_at'], unique=False)

    op.create_table('locations',
        sa.Column('organization_id', GUID(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=False),
        *audit_columns(),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('locations', schema=None) as batch_op:
        batch_op.create_index('idx_location_organization', ['organization_id'], unique=False)
        batch_op.create_index('idx_location_deleted', ['deleted_at'], unique=False)

    op.create_table('resources',
        sa.Column('organization_id', GUID(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('resource_type', sa.String(length=50), nullable=False),
        sa.Column('capacity', sa.Integer(), nullable=False),
        sa.Column('location_id', GUID(), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=False),
        sa.Column('resource_metadata', JSON, nullable=False),
        *audit_columns(),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('resources', schema=None) as batch_op:
        batch_op.create_index('idx_resource_organization', ['organization_id'], unique=False)
        batch_op.create_index('idx_resource_type', ['resource_type'], unique=False)
        batch_op.create_index('idx_resource_active', ['active'], unique=False)
        batch_op.create_index('idx_resource_deleted', ['deleted_at'], unique=False)

    op.create_table('recurrence_rules',
        sa.Column('frequency', sa.String(length=20), nullable=False),
        sa.Column('interval', sa.Integer(), nullable=False),
        sa.Column('start_date', UTCDateTime(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('count', sa.Integer(), nullable=True),
        sa.Column('week_days', JSON, nullable=True),
        sa.Column('month_days', JSON, nullable=True),
        sa.Column('months', JSON, nullable=True),
        sa.Column('exception_dates', JSON, nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        *audit_columns(),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('recurrence_rules', schema=None) as batch_op:
        batch_op.create_index('idx_rule_deleted', ['deleted_at'], unique=False)

    op.create_table('events',
        sa.Column('organization_id', GUID(), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('event_type', sa.String(length=50), nullable=False),
        sa.Column('start_time', UTCDateTime(), nullable=False),
        sa.Column('end_time', UTCDateTime(), nullable=False),
        sa.Column('status', sa.String(length=50), nullable=False),
        sa.Column('visibility', sa.String(length=50), nullable=False),
        sa.Column('team_id', GUID(), nullable=True),
        sa.Column('location_id', GUID(), nullable=True),
        sa.Column('recurrence_rule_id', GUID(), nullable=True),
        sa.Column('series_id', GUID(), nullable=True),
        sa.Column('parent_event_id', GUID(), nullable=True),
        sa.Column('recurrence_exception_date', sa.Date(), nullable=True),
        sa.Column('created_by', GUID(), nullable=False),
        sa.Column('approved_by', GUID(), nullable=True),
        sa.Column('approved_at', UTCDateTime(), nullable=True),
        sa.Column('cancelled_at', UTCDateTime(), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('event_metadata', JSON, nullable=False),
        *audit_columns(),
        sa.ForeignKeyConstraint(['team_id'], ['teams.id'], ),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.ForeignKeyConstraint(['recurrence_rule_id'], ['recurrence_rules.id'], ),
        sa.ForeignKeyConstraint(['parent_event_id'], ['events.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('events', schema=None) as batch_op:
        batch_op.create_index('idx_event_organization', ['organization_id'], unique=False)
        batch_op.create_index('idx_event_team', ['team_id'], unique=False)
        batch_op.create_index('idx_event_location', ['location_id'], unique=False)
        batch_op.create_index('idx_event_status', ['status'], unique=False)
        batch_op.create_index('idx_event_series', ['series_id'], unique=False)
        batch_op.create_index('idx_event_parent', ['parent_event_id'], unique=False)
        batch_op.create_index('idx_event_rule', ['recurrence_rule_id'], unique=False)
        batch_op.create_index('idx_event_deleted', ['deleted_at'], unique=False)
        batch_op.create_index('idx_event_time_range', ['organization_id', 'start_time', 'end_time'], unique=False)
        batch_op.create_index('idx_event_status_time', ['status', 'start_time', 'end_time'], unique=False)

    op.create_table('event_participants',
        sa.Column('event_id', GUID(), nullable=False),
        sa.Column('participant_id', GUID(), nullable=False),
        sa.Column('role', sa.String(length=50), nullable=False),
        sa.Column('status', sa.String(length=50), nullable=False),
        sa.Column('responded_at', UTCDateTime(), nullable=True),
        sa.Column('response_message', sa.Text(), nullable=True),
        *audit_columns(),
        sa.ForeignKeyConstraint(['event_id'], ['events.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('event_id', 'participant_id', name='uq_event_participant')
    )
    with op.batch_alter_table('event_participants', schema=None) as batch_op:
        batch_op.create_index('idx_participant_event', ['event_id'], unique=False)
        batch_op.create_index('idx_participant_user', ['participant_id'], unique=False)

    op.create_table('resource_bookings',
        sa.Column('event_id', GUID(), nullable=False),
        sa.Column('resource_id', GUID(), nullable=False),
        sa.Column('start_time', UTCDateTime(), nullable=False),
        sa.Column('end_time', UTCDateTime(), nullable=False),
        sa.Column('status', sa.String(length=50), nullable=False),
        *audit_columns(),
        sa.ForeignKeyConstraint(['event_id'], ['events.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['resource_id'], ['resources.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('resource_bookings', schema=None) as batch_op:
        batch_op.create_index('idx_booking_event', ['event_id'], unique=False)
        batch_op.create_index('idx_booking_resource', ['resource_id'], unique=False)
        batch_op.create_index('idx_booking_status', ['status'], unique=False)
        batch_op.create_index('idx_booking_resource_time', ['resource_id', 'start_time', 'end_time'], unique=False)


def downgrade() -> None:
    # Reverse dependency order
    for table in (
        'resource_bookings',
        'event_participants',
        'events',
        'recurrence_rules',
        'resources',
        'locations',
        'teams',
    ):
        op.drop_table(table)
