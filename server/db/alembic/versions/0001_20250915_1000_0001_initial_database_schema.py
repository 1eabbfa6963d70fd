"""Initial database schema

Revision ID: 0001
Revises:
Create Date: 2025-09-15 10:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

ACTIVE_RESERVATION = sa.text("status IN ('PENDING', 'CONFIRMED')")
GLOBAL_SCOPE = sa.text("scope IS NULL")


def _reserver_columns() -> list[sa.Column]:
    return [
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('venue_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('member_id', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('reserver_name', sa.String(length=50), nullable=False),
        sa.Column('primary_phone', sa.String(length=20), nullable=False),
        sa.Column('secondary_phone', sa.String(length=20), nullable=True),
        sa.Column('pet_name', sa.String(length=50), nullable=False),
        sa.Column('pet_birth_year', sa.Integer(), nullable=True),
        sa.Column('pet_species', sa.String(length=30), nullable=True),
        sa.Column('pet_gender', sa.String(length=10), nullable=True),
        sa.Column('memo', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    """Upgrade database schema."""
    # Create members table
    op.create_table('members',
        sa.Column('member_id', sa.String(length=64), nullable=False),
        sa.Column('display_name', sa.String(length=100), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('member_id')
    )

    # Create venues table
    op.create_table('venues',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('latitude', sa.Float(), nullable=True),
        sa.Column('longitude', sa.Float(), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=False),
        sa.Column('hotel_capacity', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint('hotel_capacity >= 0', name='ck_venue_hotel_capacity_non_negative'),
        sa.CheckConstraint('length(name) > 0', name='ck_venue_name_not_empty'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_venues_name'), 'venues', ['name'], unique=False)

    # Create doctors table
    op.create_table('doctors',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('venue_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['venue_id'], ['venues.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_doctors_venue_id'), 'doctors', ['venue_id'], unique=False)

    # Create hospital_closed_times table
    op.create_table('hospital_closed_times',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('venue_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('doctor_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('day', sa.Date(), nullable=False),
        sa.Column('slot_at', sa.DateTime(), nullable=False),
        sa.Column('reason', sa.String(length=200), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['venue_id'], ['venues.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['doctor_id'], ['doctors.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_hospital_closed_times_venue_day', 'hospital_closed_times', ['venue_id', 'day'], unique=False)

    # Create hospital_reservations table
    op.create_table('hospital_reservations',
        *_reserver_columns(),
        sa.Column('doctor_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('appointment_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('length(reserver_name) > 0', name='ck_hospital_reserver_name_not_empty'),
        sa.ForeignKeyConstraint(['venue_id'], ['venues.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['member_id'], ['members.member_id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['doctor_id'], ['doctors.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_hospital_reservations_venue_id'), 'hospital_reservations', ['venue_id'], unique=False)
    op.create_index(op.f('ix_hospital_reservations_member_id'), 'hospital_reservations', ['member_id'], unique=False)
    op.create_index(op.f('ix_hospital_reservations_status'), 'hospital_reservations', ['status'], unique=False)
    op.create_index(op.f('ix_hospital_reservations_doctor_id'), 'hospital_reservations', ['doctor_id'], unique=False)
    op.create_index(op.f('ix_hospital_reservations_appointment_at'), 'hospital_reservations', ['appointment_at'], unique=False)
    # At most one active reservation per doctor and slot
    op.create_index(
        'uq_hospital_reservation_active_slot',
        'hospital_reservations',
        ['doctor_id', 'appointment_at'],
        unique=True,
        postgresql_where=ACTIVE_RESERVATION,
        sqlite_where=ACTIVE_RESERVATION,
    )

    # Create hotel_reservations table
    op.create_table('hotel_reservations',
        *_reserver_columns(),
        sa.Column('check_in', sa.Date(), nullable=False),
        sa.Column('check_out', sa.Date(), nullable=False),
        sa.CheckConstraint('check_out > check_in', name='ck_hotel_check_out_after_check_in'),
        sa.CheckConstraint('length(reserver_name) > 0', name='ck_hotel_reserver_name_not_empty'),
        sa.ForeignKeyConstraint(['venue_id'], ['venues.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['member_id'], ['members.member_id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_hotel_reservations_venue_id'), 'hotel_reservations', ['venue_id'], unique=False)
    op.create_index(op.f('ix_hotel_reservations_member_id'), 'hotel_reservations', ['member_id'], unique=False)
    op.create_index(op.f('ix_hotel_reservations_status'), 'hotel_reservations', ['status'], unique=False)
    op.create_index(op.f('ix_hotel_reservations_check_in'), 'hotel_reservations', ['check_in'], unique=False)
    op.create_index(op.f('ix_hotel_reservations_check_out'), 'hotel_reservations', ['check_out'], unique=False)
    op.create_index('ix_hotel_reservation_venue_range', 'hotel_reservations', ['venue_id', 'check_in', 'check_out'], unique=False)

    # Create reservation_reminders table
    op.create_table('reservation_reminders',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('reservation_id', sa.String(length=64), nullable=False),
        sa.Column('member_id', sa.String(length=64), nullable=False),
        sa.Column('service_kind', sa.String(length=20), nullable=False),
        sa.Column('kind', sa.String(length=20), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('fire_at', sa.DateTime(), nullable=False),
        sa.Column('dedupe_key', sa.String(length=64), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('link_url', sa.String(length=300), nullable=True),
        sa.Column('lease_owner', sa.String(length=100), nullable=True),
        sa.Column('leased_until', sa.DateTime(), nullable=True),
        sa.Column('dispatched_at', sa.DateTime(), nullable=True),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('dedupe_key')
    )
    op.create_index(op.f('ix_reservation_reminders_reservation_id'), 'reservation_reminders', ['reservation_id'], unique=False)
    op.create_index(op.f('ix_reservation_reminders_member_id'), 'reservation_reminders', ['member_id'], unique=False)
    op.create_index('ix_reservation_reminders_status_fire_at', 'reservation_reminders', ['status', 'fire_at'], unique=False)

    # Create notifications table
    op.create_table('notifications',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('receiver_id', sa.String(length=64), nullable=False),
        sa.Column('actor_id', sa.String(length=64), nullable=True),
        sa.Column('type', sa.String(length=50), nullable=False),
        sa.Column('target_type', sa.String(length=30), nullable=True),
        sa.Column('target_id', sa.String(length=64), nullable=True),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('message', sa.String(length=1000), nullable=True),
        sa.Column('link_url', sa.String(length=300), nullable=True),
        sa.Column('event_id', sa.String(length=36), nullable=False),
        sa.Column('is_read', sa.Boolean(), nullable=False),
        sa.Column('read_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('event_id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_notifications_receiver_created', 'notifications', ['receiver_id', 'created_at'], unique=False)
    op.create_index('ix_notifications_receiver_read', 'notifications', ['receiver_id', 'is_read'], unique=False)

    # Create notification_tombstones table
    op.create_table('notification_tombstones',
        sa.Column('event_id', sa.String(length=36), nullable=False),
        sa.Column('notification_id', sa.Integer(), nullable=False),
        sa.Column('receiver_id', sa.String(length=64), nullable=False),
        sa.Column('deleted_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('event_id')
    )
    op.create_index(op.f('ix_notification_tombstones_receiver_id'), 'notification_tombstones', ['receiver_id'], unique=False)

    # Create keyword_subscriptions table
    op.create_table('keyword_subscriptions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('subscriber_id', sa.String(length=64), nullable=False),
        sa.Column('keyword', sa.String(length=100), nullable=False),
        sa.Column('scope', sa.String(length=30), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint('length(keyword) > 0', name='ck_keyword_not_empty'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('subscriber_id', 'keyword', 'scope', name='uq_keyword_subscription')
    )
    op.create_index(op.f('ix_keyword_subscriptions_subscriber_id'), 'keyword_subscriptions', ['subscriber_id'], unique=False)
    op.create_index(op.f('ix_keyword_subscriptions_scope'), 'keyword_subscriptions', ['scope'], unique=False)
    # The unique constraint above ignores NULL scopes
    op.create_index(
        'uq_keyword_subscription_global',
        'keyword_subscriptions',
        ['subscriber_id', 'keyword'],
        unique=True,
        postgresql_where=GLOBAL_SCOPE,
        sqlite_where=GLOBAL_SCOPE,
    )


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_table('keyword_subscriptions')
    op.drop_table('notification_tombstones')
    op.drop_table('notifications')
    op.drop_table('reservation_reminders')
    op.drop_table('hotel_reservations')
    op.drop_table('hospital_reservations')
    op.drop_table('hospital_closed_times')
    op.drop_table('doctors')
    op.drop_table('venues')
    op.drop_table('members')
