"""initial schema

Revision ID: 001
Revises:
Create Date: 2025-01-06 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Detect database type
    bind = op.get_bind()
    is_sqlite = bind.dialect.name == 'sqlite'

    # Choose appropriate JSON type
    json_type = sa.JSON() if is_sqlite else postgresql.JSONB(astext_type=sa.Text())

    # Choose appropriate timestamp default
    timestamp_default = sa.text("(datetime('now'))") if is_sqlite else sa.text('now()')
    true_default = '1' if is_sqlite else 'true'
    false_default = '0' if is_sqlite else 'false'

    # Approver directory (multi-role membership)
    op.create_table(
        'approvers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('roles', json_type, nullable=False, server_default='[]'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=true_default),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=timestamp_default),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_approvers_email', 'approvers', ['email'])
    op.create_index('ix_approvers_is_active', 'approvers', ['is_active'])

    # Store -> Area Manager
    op.create_table(
        'store_responsibles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store', sa.String(length=255), nullable=False),
        sa.Column('area_manager_id', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=true_default),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=timestamp_default),
        sa.ForeignKeyConstraint(['area_manager_id'], ['approvers.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_store_responsibles_store', 'store_responsibles', ['store'])

    # Approval rules
    op.create_table(
        'approval_rules',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('trigger_field', sa.String(length=50), nullable=False, server_default='category'),
        sa.Column('trigger_operator', sa.String(length=20), nullable=False),
        sa.Column('trigger_value', sa.String(length=255), nullable=False),
        sa.Column('action_type', sa.String(length=10), nullable=False),
        sa.Column('target_approver', sa.String(length=50), nullable=False),
        sa.Column('priority', sa.Integer(), nullable=False, server_default='100'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=true_default),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=timestamp_default),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_approval_rules_priority', 'approval_rules', ['priority'])
    op.create_index('ix_approval_rules_is_active', 'approval_rules', ['is_active'])

    # Extra cleaning requests with their serialized approval chain
    op.create_table(
        'extra_cleaning_requests',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store', sa.String(length=255), nullable=False),
        sa.Column('category', sa.String(length=255), nullable=False),
        sa.Column('third_party', sa.String(length=255), nullable=True),
        sa.Column('number_of_agents', sa.Integer(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('start_date', sa.Date(), nullable=True),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('shift_hours', sa.Integer(), nullable=True, server_default='9'),
        sa.Column('created_by_email', sa.String(length=255), nullable=False),
        sa.Column('created_by_name', sa.String(length=255), nullable=True),
        sa.Column('approval_chain', sa.Text(), nullable=False, server_default='[]'),
        sa.Column('current_step', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('overall_status', sa.String(length=30), nullable=False, server_default='PendingApproval'),
        sa.Column('current_approver_email', sa.String(length=255), nullable=True),
        sa.Column('current_approver_role', sa.String(length=50), nullable=True),
        sa.Column('current_step_since', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=timestamp_default),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=timestamp_default),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_extra_cleaning_requests_store', 'extra_cleaning_requests', ['store'])
    op.create_index('ix_extra_cleaning_requests_created_by_email', 'extra_cleaning_requests', ['created_by_email'])
    op.create_index('ix_extra_cleaning_requests_overall_status', 'extra_cleaning_requests', ['overall_status'])
    op.create_index('ix_extra_cleaning_requests_current_approver_email', 'extra_cleaning_requests', ['current_approver_email'])
    op.create_index('ix_extra_cleaning_requests_created_at', 'extra_cleaning_requests', ['created_at'])

    # One history row per decided step
    op.create_table(
        'approval_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('request_id', sa.Integer(), nullable=False),
        sa.Column('step_index', sa.Integer(), nullable=False),
        sa.Column('role', sa.String(length=50), nullable=False),
        sa.Column('approver_email', sa.String(length=255), nullable=False),
        sa.Column('approver_name', sa.String(length=255), nullable=True),
        sa.Column('action', sa.String(length=20), nullable=False),
        sa.Column('comments', sa.Text(), nullable=True),
        sa.Column('action_date', sa.DateTime(), nullable=False, server_default=timestamp_default),
        sa.ForeignKeyConstraint(['request_id'], ['extra_cleaning_requests.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('request_id', 'step_index', name='uq_approval_history_request_step')
    )
    op.create_index('ix_approval_history_request_id', 'approval_history', ['request_id'])

    # Downstream items with deadlines (action plans)
    op.create_table(
        'action_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('source', sa.String(length=50), nullable=False, server_default='action-plan'),
        sa.Column('reference', sa.String(length=100), nullable=False),
        sa.Column('store', sa.String(length=255), nullable=False),
        sa.Column('owner_email', sa.String(length=255), nullable=True),
        sa.Column('deadline', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=timestamp_default),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_action_items_store', 'action_items', ['store'])
    op.create_index('ix_action_items_deadline', 'action_items', ['deadline'])

    # Escalations: at most one Pending row per source item
    op.create_table(
        'escalations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('source', sa.String(length=30), nullable=False),
        sa.Column('source_id', sa.Integer(), nullable=False),
        sa.Column('store', sa.String(length=255), nullable=True),
        sa.Column('escalated_to_email', sa.String(length=255), nullable=False),
        sa.Column('escalated_to_name', sa.String(length=255), nullable=True),
        sa.Column('level', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='Pending'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=timestamp_default),
        sa.Column('resolved_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_escalations_source_id', 'escalations', ['source_id'])
    op.create_index('ix_escalations_status', 'escalations', ['status'])
    op.create_index('ix_escalations_created_at', 'escalations', ['created_at'])
    op.create_index(
        'uq_escalations_open_source',
        'escalations',
        ['source', 'source_id'],
        unique=True,
        sqlite_where=sa.text("status = 'Pending'"),
        postgresql_where=sa.text("status = 'Pending'"),
    )

    # In-app notifications
    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_email', sa.String(length=255), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('link', sa.String(length=500), nullable=True),
        sa.Column('type', sa.String(length=50), nullable=False),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=false_default),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=timestamp_default),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_notifications_user_email', 'notifications', ['user_email'])
    op.create_index('ix_notifications_type', 'notifications', ['type'])
    op.create_index('ix_notifications_created_at', 'notifications', ['created_at'])

    # Sessions written by the login service
    op.create_table(
        'user_sessions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=64), nullable=False),
        sa.Column('user_email', sa.String(length=255), nullable=False),
        sa.Column('display_name', sa.String(length=255), nullable=True),
        sa.Column('roles', json_type, nullable=False, server_default='[]'),
        sa.Column('permissions', json_type, nullable=False, server_default='{}'),
        sa.Column('access_token', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=timestamp_default),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('token_hash')
    )
    op.create_index('ix_user_sessions_user_email', 'user_sessions', ['user_email'])


def downgrade() -> None:
    op.drop_table('user_sessions')
    op.drop_table('notifications')
    op.drop_index('uq_escalations_open_source', table_name='escalations')
    op.drop_table('escalations')
    op.drop_table('action_items')
    op.drop_table('approval_history')
    op.drop_table('extra_cleaning_requests')
    op.drop_table('approval_rules')
    op.drop_table('store_responsibles')
    op.drop_table('approvers')
