"""initial schema

Revision ID: a7c3e91f4b20
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = 'a7c3e91f4b20'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    ]


def upgrade() -> None:
    """Upgrade database schema."""
    op.create_table('users',
        sa.Column('phone_number', sa.String(length=32), nullable=False),
        sa.Column('user_type', sa.String(length=20), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('age', sa.Integer(), nullable=True),
        sa.Column('location', sa.String(length=255), nullable=True),
        sa.Column('emergency_contact', sa.String(length=32), nullable=True),
        sa.Column('emergency_contact_name', sa.String(length=255), nullable=True),
        sa.Column('emergency_relationship', sa.String(length=100), nullable=True),
        sa.Column('created_by', sa.String(length=32), nullable=True),
        sa.Column('profile', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('check_ins_opt_out', sa.Boolean(), nullable=False),
        sa.Column('last_interaction_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('phone_number')
    )
    op.create_index('ix_users_user_type', 'users', ['user_type'], unique=False)

    op.create_table('caregiver_relationships',
        sa.Column('parent_phone', sa.String(length=32), nullable=False),
        sa.Column('child_phone', sa.String(length=32), nullable=False),
        sa.Column('relationship_type', sa.String(length=100), nullable=True),
        sa.Column('permissions', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_caregiver_rel_child', 'caregiver_relationships', ['child_phone'], unique=False)
    op.create_index('ix_caregiver_rel_parent', 'caregiver_relationships', ['parent_phone'], unique=False)
    # One link per caregiver/parent pair
    op.create_index('ix_caregiver_rel_pair', 'caregiver_relationships', ['child_phone', 'parent_phone'], unique=True)

    op.create_table('medications',
        sa.Column('user_phone', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('dosage', sa.String(length=100), nullable=True),
        sa.Column('time', sa.String(length=20), nullable=False),
        sa.Column('reminder_times', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('frequency', sa.String(length=100), nullable=False),
        sa.Column('duration_days', sa.Integer(), nullable=True),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('added_by', sa.String(length=32), nullable=True),
        sa.Column('taken_times', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('missed_times', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_medications_user_phone', 'medications', ['user_phone'], unique=False)

    op.create_table('medication_reminders',
        sa.Column('user_phone', sa.String(length=32), nullable=False),
        sa.Column('medicine', sa.String(length=255), nullable=False),
        sa.Column('scheduled_time', sa.String(length=20), nullable=True),
        sa.Column('responded', sa.Boolean(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('conflict_reason', sa.Text(), nullable=True),
        sa.Column('message_sent', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    # Latest unresponded reminder per user
    op.create_index('ix_reminders_user_created', 'medication_reminders', ['user_phone', 'created_at'], unique=False)
    op.create_index('ix_reminders_user_responded', 'medication_reminders', ['user_phone', 'responded'], unique=False)

    op.create_table('symptom_assessments',
        sa.Column('user_phone', sa.String(length=32), nullable=False),
        sa.Column('primary_symptom', sa.String(length=255), nullable=False),
        sa.Column('answers', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('assessment', sa.Text(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('follow_ups', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('last_follow_up_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('next_follow_up_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_assessments_user_status', 'symptom_assessments', ['user_phone', 'status'], unique=False)
    op.create_index('ix_assessments_next_follow_up', 'symptom_assessments', ['status', 'next_follow_up_at'], unique=False)

    op.create_table('check_ins',
        sa.Column('user_phone', sa.String(length=32), nullable=False),
        sa.Column('time_slot', sa.String(length=20), nullable=False),
        sa.Column('question', sa.Text(), nullable=False),
        sa.Column('conversation_state', sa.String(length=20), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('conversation_history', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('initial_analysis', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('analysis', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('sentiment', sa.String(length=20), nullable=True),
        sa.Column('reported', sa.Boolean(), nullable=False),
        sa.Column('report_id', sa.String(length=100), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_check_ins_user_active', 'check_ins', ['user_phone', 'is_active'], unique=False)
    op.create_index('ix_check_ins_user_created', 'check_ins', ['user_phone', 'created_at'], unique=False)

    op.create_table('daily_reports',
        sa.Column('report_key', sa.String(length=100), nullable=False),
        sa.Column('elderly_phone', sa.String(length=32), nullable=False),
        sa.Column('caregiver_phone', sa.String(length=32), nullable=False),
        sa.Column('report_date', sa.Date(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('check_in_ids', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('delivered', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('report_key')
    )
    op.create_index('ix_daily_reports_elderly_date', 'daily_reports', ['elderly_phone', 'report_date'], unique=False)

    op.create_table('function_traces',
        sa.Column('correlation_id', sa.UUID(), nullable=False),
        sa.Column('sequence_number', sa.Integer(), nullable=False),
        sa.Column('function_name', sa.String(length=255), nullable=False),
        sa.Column('module_path', sa.String(length=255), nullable=False),
        sa.Column('trace_type', sa.String(length=50), nullable=False),
        sa.Column('input_summary', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('output_summary', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('duration_ms', sa.Integer(), nullable=False),
        sa.Column('phone_number', sa.String(length=50), nullable=True),
        sa.Column('is_error', sa.Boolean(), nullable=False),
        sa.Column('error_type', sa.String(length=255), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_func_trace_corr_seq', 'function_traces', ['correlation_id', 'sequence_number'], unique=False)
    op.create_index('ix_func_trace_created', 'function_traces', ['created_at'], unique=False)
    op.create_index('ix_func_trace_phone', 'function_traces', ['phone_number'], unique=False)
    op.create_index('ix_func_trace_error', 'function_traces', ['is_error'], unique=False)
    op.create_index('ix_function_traces_correlation_id', 'function_traces', ['correlation_id'], unique=False)


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_table('function_traces')
    op.drop_table('daily_reports')
    op.drop_table('check_ins')
    op.drop_table('symptom_assessments')
    op.drop_table('medication_reminders')
    op.drop_table('medications')
    op.drop_table('caregiver_relationships')
    op.drop_table('users')
