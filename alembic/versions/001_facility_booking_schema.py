"""Facility booking schema

Revision ID: 001_facility_booking_schema
Revises:
Create Date: 2026-10-19

Tables:
- facilities
- blackout_dates
- facility_requests (with the PostgreSQL no-overlap exclusion constraint)
- status_history
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_facility_booking_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ACTIVE_STATUSES = ('APPROVED', 'AWAITING_PAYMENT', 'AWAITING_REQUIREMENTS', 'PENDING_REVIEW')


def upgrade() -> None:
    """Create all database tables."""
    bind = op.get_bind()
    is_postgres = bind.dialect.name == 'postgresql'

    # ===========================================
    # 1. FACILITIES
    # ===========================================
    op.create_table(
        'facilities',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('facility_type', sa.String(50), nullable=False),
        sa.Column('capacity', sa.Integer, nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('location', sa.String(255), nullable=True),
        sa.Column('amenities', sa.JSON, nullable=True),
        sa.Column('hourly_rate', sa.Numeric(10, 2), server_default='0'),
        sa.Column('is_active', sa.Boolean, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, server_default=sa.func.now()),
        sa.CheckConstraint('capacity > 0', name='ck_facility_capacity_positive'),
    )
    op.create_index('ix_facilities_is_active', 'facilities', ['is_active'])

    # ===========================================
    # 2. BLACKOUT DATES
    # ===========================================
    op.create_table(
        'blackout_dates',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('facility_id', sa.String(36), sa.ForeignKey('facilities.id', ondelete='CASCADE'), nullable=False),
        sa.Column('start_date', sa.Date, nullable=False),
        sa.Column('end_date', sa.Date, nullable=False),
        sa.Column('reason', sa.Text, nullable=True),
        sa.Column('category', sa.String(20), server_default='MAINTENANCE'),
        sa.Column('created_by', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
        sa.CheckConstraint('start_date <= end_date', name='ck_blackout_date_order'),
    )
    op.create_index('ix_blackout_facility_dates', 'blackout_dates', ['facility_id', 'start_date', 'end_date'])

    # ===========================================
    # 3. FACILITY REQUESTS
    # ===========================================
    op.create_table(
        'facility_requests',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('request_number', sa.String(30), unique=True, nullable=False),
        sa.Column('facility_id', sa.String(36), sa.ForeignKey('facilities.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('applicant_name', sa.String(200), nullable=False),
        sa.Column('organization_name', sa.String(200), nullable=True),
        sa.Column('contact_person', sa.String(200), nullable=False),
        sa.Column('contact_number', sa.String(30), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('activity_type', sa.String(100), nullable=False),
        sa.Column('activity_purpose', sa.Text, nullable=True),
        sa.Column('estimated_participants', sa.Integer, nullable=False, server_default='1'),
        sa.Column('event_category', sa.String(20), server_default='PRIVATE'),
        sa.Column('schedule_start', sa.DateTime, nullable=False),
        sa.Column('schedule_end', sa.DateTime, nullable=False),
        sa.Column('status', sa.String(30), nullable=False, server_default='PENDING_REVIEW'),
        sa.Column('payment_status', sa.String(20), server_default='PENDING'),
        sa.Column('payment_type', sa.String(20), nullable=True),
        sa.Column('total_amount', sa.Numeric(12, 2), server_default='0'),
        sa.Column('handled_by', sa.String(255), nullable=True),
        sa.Column('remarks', sa.Text, nullable=True),
        sa.Column('cancellation_reason', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, server_default=sa.func.now()),
        sa.Column('approved_at', sa.DateTime, nullable=True),
        sa.Column('rejected_at', sa.DateTime, nullable=True),
        sa.Column('cancelled_at', sa.DateTime, nullable=True),
        sa.Column('paid_at', sa.DateTime, nullable=True),
        sa.Column('completed_at', sa.DateTime, nullable=True),
        sa.CheckConstraint('schedule_start < schedule_end', name='ck_facility_request_window'),
    )
    op.create_index(
        'ix_facility_request_facility_window', 'facility_requests',
        ['facility_id', 'schedule_start', 'schedule_end']
    )
    op.create_index('ix_facility_request_status', 'facility_requests', ['status'])
    op.create_index('ix_facility_request_contact', 'facility_requests', ['contact_number'])

    if is_postgres:
        # Two active requests on one facility may not share any instant
        op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")
        statuses = ", ".join(f"'{s}'" for s in ACTIVE_STATUSES)
        op.execute(
            "ALTER TABLE facility_requests ADD CONSTRAINT no_active_facility_request_overlap "
            "EXCLUDE USING gist (facility_id WITH =, tsrange(schedule_start, schedule_end, '[)') WITH &&) "
            f"WHERE (status IN ({statuses}))"
        )

    # ===========================================
    # 4. STATUS HISTORY
    # ===========================================
    op.create_table(
        'status_history',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('request_id', sa.String(36), sa.ForeignKey('facility_requests.id', ondelete='CASCADE'), nullable=False),
        sa.Column('from_status', sa.String(30), nullable=True),
        sa.Column('to_status', sa.String(30), nullable=False),
        sa.Column('changed_by', sa.String(255), nullable=False),
        sa.Column('remarks', sa.Text, nullable=True),
        sa.Column('is_override', sa.Boolean, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index('ix_status_history_request', 'status_history', ['request_id', 'created_at'])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table('status_history')
    op.drop_table('facility_requests')
    op.drop_table('blackout_dates')
    op.drop_table('facilities')
