"""Initial club outings schema

Revision ID: 0001
Revises:
Create Date: 2030-01-01 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Upgrade database schema."""
    # Create members table
    op.create_table('members',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sa.String(length=320), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('role', sa.String(length=20), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('length(email) > 0', name='ck_member_email_not_empty'),
        sa.CheckConstraint("role in ('admin', 'organizer', 'member')", name='ck_member_role_valid'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_members_email'), 'members', ['email'], unique=False)

    # Create outings table
    op.create_table('outings',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('date_time', sa.DateTime(), nullable=False),
        sa.Column('end_date', sa.DateTime(), nullable=True),
        sa.Column('location', sa.String(length=255), nullable=False),
        sa.Column('outing_type', sa.String(length=20), nullable=False),
        sa.Column('max_participants', sa.Integer(), nullable=False),
        sa.Column('confirmed_count', sa.Integer(), nullable=False),
        sa.Column('organizer_id', sa.Uuid(), nullable=True),
        sa.Column('is_staff_only', sa.Boolean(), nullable=False),
        sa.Column('is_archived', sa.Boolean(), nullable=False),
        sa.Column('is_deleted', sa.Boolean(), nullable=False),
        sa.Column('reminder_sent', sa.Boolean(), nullable=False),
        sa.Column('session_report', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('max_participants >= 1', name='ck_outing_max_participants_positive'),
        sa.CheckConstraint('confirmed_count >= 0', name='ck_outing_confirmed_count_non_negative'),
        sa.CheckConstraint('confirmed_count <= max_participants', name='ck_outing_confirmed_lte_max'),
        sa.CheckConstraint('NOT (is_archived AND is_deleted)', name='ck_outing_single_lifecycle_state'),
        sa.CheckConstraint('length(title) > 0', name='ck_outing_title_not_empty'),
        sa.ForeignKeyConstraint(['organizer_id'], ['members.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_outings_date_time'), 'outings', ['date_time'], unique=False)
    op.create_index(op.f('ix_outings_outing_type'), 'outings', ['outing_type'], unique=False)
    op.create_index(op.f('ix_outings_organizer_id'), 'outings', ['organizer_id'], unique=False)
    op.create_index(op.f('ix_outings_is_deleted'), 'outings', ['is_deleted'], unique=False)

    # Create reservations table
    op.create_table('reservations',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('outing_id', sa.Uuid(), nullable=False),
        sa.Column('member_id', sa.Uuid(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('is_present', sa.Boolean(), nullable=False),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('carpool_option', sa.String(length=20), nullable=False),
        sa.Column('carpool_seats', sa.Integer(), nullable=False),
        sa.Column('queue_seq', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "status in ('confirmed', 'waitlisted', 'cancelled')", name='ck_reservation_status_valid'
        ),
        sa.CheckConstraint(
            "carpool_option in ('none', 'driver', 'passenger')", name='ck_reservation_carpool_option_valid'
        ),
        sa.CheckConstraint('carpool_seats >= 0', name='ck_reservation_carpool_seats_non_negative'),
        sa.CheckConstraint(
            "(status = 'cancelled') = (cancelled_at IS NOT NULL)",
            name='ck_reservation_cancelled_at_matches_status'
        ),
        sa.ForeignKeyConstraint(['outing_id'], ['outings.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['member_id'], ['members.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('outing_id', 'queue_seq', name='uq_reservation_outing_queue_seq')
    )
    op.create_index(op.f('ix_reservations_outing_id'), 'reservations', ['outing_id'], unique=False)
    op.create_index(op.f('ix_reservations_member_id'), 'reservations', ['member_id'], unique=False)
    op.create_index(op.f('ix_reservations_status'), 'reservations', ['status'], unique=False)
    op.create_index(op.f('ix_reservations_created_at'), 'reservations', ['created_at'], unique=False)
    op.create_index(
        'uq_reservation_active_member',
        'reservations',
        ['outing_id', 'member_id'],
        unique=True,
        postgresql_where=sa.text("status != 'cancelled'"),
        sqlite_where=sa.text("status != 'cancelled'")
    )

    # Create carpools table
    op.create_table('carpools',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('outing_id', sa.Uuid(), nullable=False),
        sa.Column('driver_id', sa.Uuid(), nullable=False),
        sa.Column('departure_time', sa.DateTime(), nullable=False),
        sa.Column('meeting_point', sa.String(length=255), nullable=False),
        sa.Column('available_seats', sa.Integer(), nullable=False),
        sa.Column('maps_link', sa.String(length=2048), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('available_seats >= 1', name='ck_carpool_available_seats_positive'),
        sa.CheckConstraint('length(meeting_point) > 0', name='ck_carpool_meeting_point_not_empty'),
        sa.ForeignKeyConstraint(['outing_id'], ['outings.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['driver_id'], ['members.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('outing_id', 'driver_id', name='uq_carpool_outing_driver')
    )
    op.create_index(op.f('ix_carpools_outing_id'), 'carpools', ['outing_id'], unique=False)
    op.create_index(op.f('ix_carpools_driver_id'), 'carpools', ['driver_id'], unique=False)

    # Create carpool_passengers table
    op.create_table('carpool_passengers',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('carpool_id', sa.Uuid(), nullable=False),
        sa.Column('outing_id', sa.Uuid(), nullable=False),
        sa.Column('passenger_id', sa.Uuid(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['carpool_id'], ['carpools.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['outing_id'], ['outings.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['passenger_id'], ['members.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('outing_id', 'passenger_id', name='uq_carpool_passenger_per_outing')
    )
    op.create_index(op.f('ix_carpool_passengers_carpool_id'), 'carpool_passengers', ['carpool_id'], unique=False)
    op.create_index(op.f('ix_carpool_passengers_outing_id'), 'carpool_passengers', ['outing_id'], unique=False)
    op.create_index(
        op.f('ix_carpool_passengers_passenger_id'), 'carpool_passengers', ['passenger_id'], unique=False
    )


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_table('carpool_passengers')
    op.drop_table('carpools')
    op.drop_table('reservations')
    op.drop_table('outings')
    op.drop_table('members')
