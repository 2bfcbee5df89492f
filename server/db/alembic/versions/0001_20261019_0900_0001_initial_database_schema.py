"""Initial database schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 09:00:00.000000

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


def _id() -> sa.Column:
    return sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False)


def _organization_id() -> sa.Column:
    return sa.Column('organization_id', postgresql.UUID(as_uuid=True), nullable=False)


def _created_at() -> sa.Column:
    return sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False)


def _updated_at() -> sa.Column:
    return sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False)


def upgrade() -> None:
    """Upgrade database schema."""
    # Create organizations table
    op.create_table('organizations',
        _id(),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('slug', sa.String(length=100), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('slug')
    )
    op.create_index(op.f('ix_organizations_slug'), 'organizations', ['slug'], unique=False)

    # Create tours table
    op.create_table('tours',
        _id(),
        _organization_id(),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('slug', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('meeting_point', sa.Text(), nullable=True),
        sa.Column('duration_minutes', sa.Integer(), nullable=False),
        sa.Column('max_participants', sa.Integer(), nullable=False),
        sa.Column('guests_per_guide', sa.Integer(), nullable=False),
        sa.Column('base_price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('allow_same_day_booking', sa.Boolean(), nullable=False),
        sa.Column('same_day_cutoff_time', sa.String(length=5), nullable=True),
        _created_at(),
        _updated_at(),
        sa.CheckConstraint('max_participants > 0', name='ck_tour_max_participants_positive'),
        sa.CheckConstraint('guests_per_guide > 0', name='ck_tour_guests_per_guide_positive'),
        sa.CheckConstraint('base_price >= 0', name='ck_tour_base_price_non_negative'),
        sa.CheckConstraint('length(currency) = 3', name='ck_tour_currency_length'),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('organization_id', 'slug', name='uq_tour_org_slug')
    )
    op.create_index(op.f('ix_tours_organization_id'), 'tours', ['organization_id'], unique=False)
    op.create_index(op.f('ix_tours_name'), 'tours', ['name'], unique=False)
    op.create_index(op.f('ix_tours_status'), 'tours', ['status'], unique=False)

    # Create customers table
    op.create_table('customers',
        _id(),
        _organization_id(),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        _created_at(),
        _updated_at(),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_customers_organization_id'), 'customers', ['organization_id'], unique=False)
    op.create_index(op.f('ix_customers_email'), 'customers', ['email'], unique=False)

    # Create tour_availability_windows table
    op.create_table('tour_availability_windows',
        _id(),
        _organization_id(),
        sa.Column('tour_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('days_of_week', sa.JSON(), nullable=False),
        sa.Column('max_participants_override', sa.Integer(), nullable=True),
        sa.Column('price_override', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('meeting_point_override', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        _created_at(),
        _updated_at(),
        sa.CheckConstraint('end_date IS NULL OR end_date >= start_date', name='ck_window_end_after_start'),
        sa.CheckConstraint(
            'max_participants_override IS NULL OR max_participants_override > 0',
            name='ck_window_capacity_override_positive'
        ),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['tour_id'], ['tours.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(
        op.f('ix_tour_availability_windows_organization_id'), 'tour_availability_windows', ['organization_id'],
        unique=False
    )
    op.create_index(op.f('ix_tour_availability_windows_tour_id'), 'tour_availability_windows', ['tour_id'], unique=False)

    # Create tour_departure_times table
    op.create_table('tour_departure_times',
        _id(),
        _organization_id(),
        sa.Column('tour_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('time', sa.String(length=5), nullable=False),
        sa.Column('label', sa.String(length=100), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('sort_order', sa.Integer(), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['tour_id'], ['tours.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tour_id', 'time', name='uq_departure_time_tour_time')
    )
    op.create_index(
        op.f('ix_tour_departure_times_organization_id'), 'tour_departure_times', ['organization_id'], unique=False
    )
    op.create_index(op.f('ix_tour_departure_times_tour_id'), 'tour_departure_times', ['tour_id'], unique=False)

    # Create tour_blackout_dates table
    op.create_table('tour_blackout_dates',
        _id(),
        _organization_id(),
        sa.Column('tour_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['tour_id'], ['tours.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tour_id', 'date', name='uq_blackout_tour_date')
    )
    op.create_index(
        op.f('ix_tour_blackout_dates_organization_id'), 'tour_blackout_dates', ['organization_id'], unique=False
    )
    op.create_index(op.f('ix_tour_blackout_dates_tour_id'), 'tour_blackout_dates', ['tour_id'], unique=False)

    # Create schedules table
    op.create_table('schedules',
        _id(),
        _organization_id(),
        sa.Column('tour_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('starts_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('ends_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('max_participants', sa.Integer(), nullable=False),
        sa.Column('booked_count', sa.Integer(), nullable=False),
        sa.Column('guides_required', sa.Integer(), nullable=False),
        sa.Column('price', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('meeting_point', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        _created_at(),
        _updated_at(),
        sa.CheckConstraint('max_participants > 0', name='ck_schedule_max_participants_positive'),
        sa.CheckConstraint('booked_count >= 0', name='ck_schedule_booked_count_non_negative'),
        sa.CheckConstraint('booked_count <= max_participants', name='ck_schedule_booked_count_lte_max'),
        sa.CheckConstraint('ends_at > starts_at', name='ck_schedule_ends_after_start'),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['tour_id'], ['tours.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_schedules_organization_id'), 'schedules', ['organization_id'], unique=False)
    op.create_index(op.f('ix_schedules_tour_id'), 'schedules', ['tour_id'], unique=False)
    op.create_index(op.f('ix_schedules_starts_at'), 'schedules', ['starts_at'], unique=False)
    op.create_index(op.f('ix_schedules_status'), 'schedules', ['status'], unique=False)

    # Create bookings table
    op.create_table('bookings',
        _id(),
        _organization_id(),
        sa.Column('reference_number', sa.String(length=32), nullable=False),
        sa.Column('customer_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('tour_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('booking_date', sa.Date(), nullable=True),
        sa.Column('booking_time', sa.String(length=5), nullable=True),
        sa.Column('schedule_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('adult_count', sa.Integer(), nullable=False),
        sa.Column('child_count', sa.Integer(), nullable=False),
        sa.Column('infant_count', sa.Integer(), nullable=False),
        sa.Column('guest_adults', sa.Integer(), nullable=True),
        sa.Column('guest_children', sa.Integer(), nullable=True),
        sa.Column('guest_infants', sa.Integer(), nullable=True),
        sa.Column('total_participants', sa.Integer(), nullable=False),
        sa.Column('subtotal', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('discount', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('tax', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('total', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('payment_status', sa.String(length=20), nullable=False),
        sa.Column('paid_amount', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('source', sa.String(length=20), nullable=False),
        sa.Column('source_details', sa.Text(), nullable=True),
        sa.Column('special_requests', sa.Text(), nullable=True),
        sa.Column('dietary_requirements', sa.Text(), nullable=True),
        sa.Column('accessibility_needs', sa.Text(), nullable=True),
        sa.Column('internal_notes', sa.Text(), nullable=True),
        _created_at(),
        _updated_at(),
        sa.CheckConstraint('adult_count >= 0', name='ck_booking_adult_count_non_negative'),
        sa.CheckConstraint('child_count >= 0', name='ck_booking_child_count_non_negative'),
        sa.CheckConstraint('infant_count >= 0', name='ck_booking_infant_count_non_negative'),
        sa.CheckConstraint('total_participants > 0', name='ck_booking_total_participants_positive'),
        sa.CheckConstraint('length(reference_number) > 0', name='ck_booking_reference_not_empty'),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['tour_id'], ['tours.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['schedule_id'], ['schedules.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('organization_id', 'reference_number', name='uq_booking_org_reference')
    )
    op.create_index(op.f('ix_bookings_organization_id'), 'bookings', ['organization_id'], unique=False)
    op.create_index(op.f('ix_bookings_customer_id'), 'bookings', ['customer_id'], unique=False)
    op.create_index(op.f('ix_bookings_tour_id'), 'bookings', ['tour_id'], unique=False)
    op.create_index(op.f('ix_bookings_schedule_id'), 'bookings', ['schedule_id'], unique=False)
    op.create_index(op.f('ix_bookings_status'), 'bookings', ['status'], unique=False)
    op.create_index(op.f('ix_bookings_payment_status'), 'bookings', ['payment_status'], unique=False)
    op.create_index(
        'ix_booking_slot', 'bookings', ['organization_id', 'tour_id', 'booking_date', 'booking_time'], unique=False
    )

    # Create booking_participants table
    op.create_table('booking_participants',
        _id(),
        _organization_id(),
        sa.Column('booking_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('type', sa.String(length=20), nullable=False),
        sa.Column('dietary_requirements', sa.Text(), nullable=True),
        sa.Column('accessibility_needs', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(
        op.f('ix_booking_participants_organization_id'), 'booking_participants', ['organization_id'], unique=False
    )
    op.create_index(op.f('ix_booking_participants_booking_id'), 'booking_participants', ['booking_id'], unique=False)


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_table('booking_participants')
    op.drop_table('bookings')
    op.drop_table('schedules')
    op.drop_table('tour_blackout_dates')
    op.drop_table('tour_departure_times')
    op.drop_table('tour_availability_windows')
    op.drop_table('customers')
    op.drop_table('tours')
    op.drop_table('organizations')
