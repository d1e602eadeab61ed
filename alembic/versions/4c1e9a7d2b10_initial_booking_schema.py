"""initial booking schema

Revision ID: 4c1e9a7d2b10
Revises:
Create Date: 2026-10-17 12:00:00.000000
"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '4c1e9a7d2b10'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.BigInteger(), nullable=False),
        sa.Column('username', sa.String(length=255), nullable=True),
        sa.Column('first_name', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('last_name', sa.String(length=255), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone_number', sa.String(length=50), nullable=True),
        sa.Column('state', sa.String(length=50), nullable=False, server_default='NONE'),
        sa.Column('session_type', sa.String(length=100), nullable=True),
        sa.Column('booking_slot', sa.DateTime(timezone=True), nullable=True),
        sa.Column('conversation_history', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('edit_msg_id', sa.Integer(), nullable=True),
        sa.Column('active_session_id', sa.String(length=64), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'bookings',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.BigInteger(), nullable=False),
        sa.Column('session_type', sa.String(length=100), nullable=True),
        sa.Column('appointment_start', sa.DateTime(timezone=True), nullable=False),
        sa.Column('appointment_end', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status', sa.String(length=30), nullable=False),
        sa.Column('google_event_id', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_bookings_user_id', 'bookings', ['user_id'])
    op.create_index('ix_bookings_status_created', 'bookings', ['status', 'created_at'])
    op.create_index('ix_bookings_google_event_id', 'bookings', ['google_event_id'])

    op.create_table(
        'availability_rules',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('is_default', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('weekly_availability', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('practitioner_timezone', sa.String(length=64), nullable=False),
        sa.Column('max_advance_days', sa.Integer(), nullable=False),
        sa.Column('min_notice_hours', sa.Integer(), nullable=False),
        sa.Column('buffer_time_minutes', sa.Integer(), nullable=False),
        sa.Column('max_bookings_per_day', sa.Integer(), nullable=False),
        sa.Column('slot_increment_minutes', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'agent_logs',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.BigInteger(), nullable=False),
        sa.Column('model', sa.String(length=50), nullable=False),
        sa.Column('request_messages', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('request_text', sa.Text(), nullable=True),
        sa.Column('response_text', sa.Text(), nullable=True),
        sa.Column('tool_calls', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('tokens_prompt', sa.Integer(), nullable=True),
        sa.Column('tokens_completion', sa.Integer(), nullable=True),
        sa.Column('tokens_total', sa.Integer(), nullable=True),
        sa.Column('latency_ms', sa.Integer(), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_agent_logs_user_id', 'agent_logs', ['user_id'])
    op.create_index('ix_agent_logs_created_at', 'agent_logs', ['created_at'])


def downgrade() -> None:
    op.drop_index('ix_agent_logs_created_at', table_name='agent_logs')
    op.drop_index('ix_agent_logs_user_id', table_name='agent_logs')
    op.drop_table('agent_logs')
    op.drop_table('availability_rules')
    op.drop_index('ix_bookings_google_event_id', table_name='bookings')
    op.drop_index('ix_bookings_status_created', table_name='bookings')
    op.drop_index('ix_bookings_user_id', table_name='bookings')
    op.drop_table('bookings')
    op.drop_table('users')
