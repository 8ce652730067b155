"""Event day tracking: gate passes, actual event times, inspections

Revision ID: 002_event_day_tracking
Revises: 001_facility_booking_schema
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '002_event_day_tracking'
down_revision: Union[str, None] = '001_facility_booking_schema'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    with op.batch_alter_table('facility_requests') as batch_op:
        batch_op.add_column(sa.Column('gate_pass', sa.String(40), nullable=True))
        batch_op.add_column(sa.Column('gate_pass_issued_at', sa.DateTime, nullable=True))
        batch_op.add_column(sa.Column('event_status', sa.String(20), nullable=True))
        batch_op.add_column(sa.Column('actual_start_time', sa.DateTime, nullable=True))
        batch_op.add_column(sa.Column('actual_end_time', sa.DateTime, nullable=True))
        batch_op.create_unique_constraint('uq_facility_request_gate_pass', ['gate_pass'])

    op.create_table(
        'inspections',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('request_id', sa.String(36), sa.ForeignKey('facility_requests.id', ondelete='CASCADE'), nullable=False),
        sa.Column('inspected_by', sa.String(255), nullable=False),
        sa.Column('has_damages', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('damage_description', sa.Text, nullable=True),
        sa.Column('violations', sa.Text, nullable=True),
        sa.Column('billing_amount', sa.Numeric(12, 2), server_default='0'),
        sa.Column('status', sa.String(20), nullable=False, server_default='NO_ISSUES'),
        sa.Column('remarks', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
        sa.CheckConstraint('billing_amount >= 0', name='ck_inspection_billing_non_negative'),
    )
    op.create_index('ix_inspection_request', 'inspections', ['request_id', 'created_at'])


def downgrade() -> None:
    op.drop_index('ix_inspection_request', table_name='inspections')
    op.drop_table('inspections')
    with op.batch_alter_table('facility_requests') as batch_op:
        batch_op.drop_constraint('uq_facility_request_gate_pass', type_='unique')
        batch_op.drop_column('actual_end_time')
        batch_op.drop_column('actual_start_time')
        batch_op.drop_column('event_status')
        batch_op.drop_column('gate_pass_issued_at')
        batch_op.drop_column('gate_pass')
