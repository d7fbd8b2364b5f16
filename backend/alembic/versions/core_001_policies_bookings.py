"""Core: users, booking policies, policy exceptions, bookings, policy usage logs

Revision ID: core_001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = 'core_001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table('users',
        sa.Column('id', sa.UUID(), nullable=False, server_default=sa.text('gen_random_uuid()')),
        sa.Column('organization_id', sa.UUID(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('role', sa.String(length=30), nullable=False, server_default='traveler'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
    )
    op.create_index('ix_users_organization_id', 'users', ['organization_id'])

    op.create_table('booking_policies',
        sa.Column('id', sa.UUID(), nullable=False, server_default=sa.text('gen_random_uuid()')),
        sa.Column('organization_id', sa.UUID(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('role', sa.String(length=30), nullable=False),
        sa.Column('priority', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('effective_from', sa.DateTime(timezone=True), nullable=True),
        sa.Column('effective_to', sa.DateTime(timezone=True), nullable=True),
        sa.Column('flight_max_amount', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('hotel_max_amount_per_night', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('hotel_max_amount_total', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('monthly_limit', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('annual_limit', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('allowed_flight_classes', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('requires_approval_above', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('auto_approve_below', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('advance_booking_days', sa.Integer(), nullable=True),
        sa.Column('max_trip_duration', sa.Integer(), nullable=True),
        sa.Column('allow_manager_override', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('created_by', sa.UUID(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['created_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_booking_policies_lookup', 'booking_policies', ['organization_id', 'role', 'is_active'])

    op.create_table('policy_exceptions',
        sa.Column('id', sa.UUID(), nullable=False, server_default=sa.text('gen_random_uuid()')),
        sa.Column('policy_id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('valid_from', sa.DateTime(timezone=True), nullable=True),
        sa.Column('valid_to', sa.DateTime(timezone=True), nullable=True),
        sa.Column('flight_max_amount', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('hotel_max_amount_per_night', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('hotel_max_amount_total', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('approved_by', sa.UUID(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['policy_id'], ['booking_policies.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['approved_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_policy_exceptions_lookup', 'policy_exceptions', ['policy_id', 'user_id', 'is_active'])

    op.create_table('bookings',
        sa.Column('id', sa.UUID(), nullable=False, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('organization_id', sa.UUID(), nullable=False),
        sa.Column('booking_type', sa.String(length=20), nullable=False, server_default='flight'),
        sa.Column('provider', sa.String(length=20), nullable=True),
        sa.Column('booking_reference', sa.String(length=50), nullable=True),
        sa.Column('status', sa.String(length=30), nullable=False, server_default='pending_approval'),
        sa.Column('total_price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD'),
        sa.Column('confirmation', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_bookings_spend', 'bookings', ['user_id', 'organization_id', 'status', 'created_at'])

    op.create_table('policy_usage_logs',
        sa.Column('id', sa.UUID(), nullable=False, server_default=sa.text('gen_random_uuid()')),
        sa.Column('policy_id', sa.UUID(), nullable=True),
        sa.Column('organization_id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('booking_id', sa.UUID(), nullable=True),
        sa.Column('event_type', sa.String(length=30), nullable=False),
        sa.Column('policy_snapshot', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('booking_type', sa.String(length=20), nullable=True),
        sa.Column('requested_amount', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('policy_limit', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('currency', sa.String(length=3), nullable=True),
        sa.Column('was_allowed', sa.Boolean(), nullable=False),
        sa.Column('requires_approval', sa.Boolean(), nullable=False),
        sa.Column('details', sa.Text(), nullable=True),
        sa.Column('metadata', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['policy_id'], ['booking_policies.id']),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_policy_usage_logs_org_created', 'policy_usage_logs', ['organization_id', 'created_at'])


def downgrade() -> None:
    op.drop_index('idx_policy_usage_logs_org_created', table_name='policy_usage_logs')
    op.drop_table('policy_usage_logs')
    op.drop_index('idx_bookings_spend', table_name='bookings')
    op.drop_table('bookings')
    op.drop_index('idx_policy_exceptions_lookup', table_name='policy_exceptions')
    op.drop_table('policy_exceptions')
    op.drop_index('idx_booking_policies_lookup', table_name='booking_policies')
    op.drop_table('booking_policies')
    op.drop_index('ix_users_organization_id', table_name='users')
    op.drop_table('users')
