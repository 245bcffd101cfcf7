"""Initial schema

Revision ID: 3f2a9c1d7b04
Revises:
Create Date: 2026-02-09 10:12:31.402118

"""
import uuid
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = '3f2a9c1d7b04'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _base_columns():
    return [
        sa.Column('id', sa.Uuid(), primary_key=True, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'users',
        *_base_columns(),
        sa.Column('email', sa.String(255), nullable=False, comment="User's email address (unique)"),
        sa.Column('full_name', sa.String(255), nullable=True, comment="User's full name"),
        sa.Column('avatar_url', sa.String(500), nullable=True, comment="Public URL of the avatar image"),
        sa.Column('is_active', sa.Boolean(), nullable=False, comment="Whether the user account is active"),
        sa.Column('is_superuser', sa.Boolean(), nullable=False,
                  comment="Platform administrators review payment submissions"),
        sa.Column('last_seen_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'workspaces',
        *_base_columns(),
        sa.Column('name', sa.String(255), nullable=False, comment="Workspace name"),
        sa.Column('description', sa.Text(), nullable=True, comment="Workspace description"),
        sa.Column('logo_url', sa.String(500), nullable=True),
        sa.Column('created_by', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False,
                  comment="User who created the workspace"),
    )

    op.create_table(
        'workspace_members',
        *_base_columns(),
        sa.Column('workspace_id', sa.Uuid(), sa.ForeignKey('workspaces.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('role', sa.String(20), nullable=False),
        sa.Column('last_active_at', sa.DateTime(timezone=True), nullable=True,
                  comment="Last heartbeat from any client of this member"),
        sa.UniqueConstraint('workspace_id', 'user_id', name='uq_workspace_member'),
    )
    op.create_index('ix_workspace_members_workspace_id', 'workspace_members', ['workspace_id'])
    op.create_index('ix_workspace_members_user_id', 'workspace_members', ['user_id'])

    op.create_table(
        'workspace_invitations',
        *_base_columns(),
        sa.Column('workspace_id', sa.Uuid(), sa.ForeignKey('workspaces.id', ondelete='CASCADE'), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('role', sa.String(20), nullable=False),
        sa.Column('invited_by', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('accepted_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('workspace_id', 'email', name='uq_workspace_invitation_email'),
    )
    op.create_index('ix_workspace_invitations_workspace_id', 'workspace_invitations', ['workspace_id'])
    op.create_index('ix_workspace_invitations_email', 'workspace_invitations', ['email'])

    # Projects and tasks
    op.create_table(
        'projects',
        *_base_columns(),
        sa.Column('workspace_id', sa.Uuid(), sa.ForeignKey('workspaces.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('color', sa.String(20), nullable=True),
        sa.Column('is_archived', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_by', sa.Uuid(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
    )
    op.create_index('ix_projects_workspace_id', 'projects', ['workspace_id'])

    op.create_table(
        'project_statuses',
        *_base_columns(),
        sa.Column('project_id', sa.Uuid(), sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('color', sa.String(20), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('is_default', sa.Boolean(), nullable=False),
        sa.Column('is_completed', sa.Boolean(), nullable=False),
        sa.Column('category', sa.String(20), nullable=False),
    )
    op.create_index('ix_project_statuses_project_id', 'project_statuses', ['project_id'])

    op.create_table(
        'tasks',
        *_base_columns(),
        sa.Column('project_id', sa.Uuid(), sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', sa.String(100), nullable=False),
        sa.Column('custom_status_id', sa.Uuid(), sa.ForeignKey('project_statuses.id', ondelete='SET NULL'),
                  nullable=True),
        sa.Column('priority', sa.String(20), nullable=False),
        sa.Column('assigned_to', sa.Uuid(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_by', sa.Uuid(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('first_started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('position', sa.Integer(), nullable=False),
    )
    op.create_index('ix_tasks_project_id', 'tasks', ['project_id'])
    op.create_index('ix_tasks_assigned_to', 'tasks', ['assigned_to'])

    op.create_table(
        'task_work_sessions',
        *_base_columns(),
        sa.Column('task_id', sa.Uuid(), sa.ForeignKey('tasks.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('ended_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('duration_seconds', sa.Integer(), nullable=True),
    )
    op.create_index('ix_task_work_sessions_task_id', 'task_work_sessions', ['task_id'])
    op.create_index('ix_task_work_sessions_user_id', 'task_work_sessions', ['user_id'])

    op.create_table(
        'activity_logs',
        *_base_columns(),
        sa.Column('workspace_id', sa.Uuid(), sa.ForeignKey('workspaces.id', ondelete='CASCADE'), nullable=False),
        sa.Column('actor_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('project_id', sa.Uuid(), sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=True),
        sa.Column('task_id', sa.Uuid(), sa.ForeignKey('tasks.id', ondelete='SET NULL'), nullable=True),
        sa.Column('action_type', sa.String(50), nullable=False),
        sa.Column('entity_type', sa.String(50), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
    )
    op.create_index('ix_activity_logs_workspace_id', 'activity_logs', ['workspace_id'])
    op.create_index('ix_activity_logs_project_id', 'activity_logs', ['project_id'])

    # Chat
    op.create_table(
        'channels',
        *_base_columns(),
        sa.Column('workspace_id', sa.Uuid(), sa.ForeignKey('workspaces.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_private', sa.Boolean(), nullable=False),
        sa.Column('created_by', sa.Uuid(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.UniqueConstraint('workspace_id', 'name', name='uq_channel_workspace_name'),
    )
    op.create_index('ix_channels_workspace_id', 'channels', ['workspace_id'])

    op.create_table(
        'channel_read_status',
        *_base_columns(),
        sa.Column('channel_id', sa.Uuid(), sa.ForeignKey('channels.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('last_read_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('channel_id', 'user_id', name='uq_channel_read_status'),
    )

    op.create_table(
        'messages',
        *_base_columns(),
        sa.Column('channel_id', sa.Uuid(), sa.ForeignKey('channels.id', ondelete='CASCADE'), nullable=False),
        sa.Column('sender_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('reply_to_id', sa.Uuid(), sa.ForeignKey('messages.id', ondelete='SET NULL'), nullable=True),
        sa.Column('is_edited', sa.Boolean(), nullable=False),
        sa.Column('edited_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_messages_channel_id', 'messages', ['channel_id'])

    op.create_table(
        'dm_conversations',
        *_base_columns(),
        sa.Column('workspace_id', sa.Uuid(), sa.ForeignKey('workspaces.id', ondelete='CASCADE'), nullable=False),
        sa.Column('participant_1', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('participant_2', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.UniqueConstraint('workspace_id', 'participant_1', 'participant_2', name='uq_dm_participants'),
    )
    op.create_index('ix_dm_conversations_workspace_id', 'dm_conversations', ['workspace_id'])

    op.create_table(
        'dm_messages',
        *_base_columns(),
        sa.Column('conversation_id', sa.Uuid(), sa.ForeignKey('dm_conversations.id', ondelete='CASCADE'),
                  nullable=False),
        sa.Column('sender_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('reply_to_id', sa.Uuid(), sa.ForeignKey('dm_messages.id', ondelete='SET NULL'), nullable=True),
        sa.Column('is_edited', sa.Boolean(), nullable=False),
        sa.Column('edited_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False),
    )
    op.create_index('ix_dm_messages_conversation_id', 'dm_messages', ['conversation_id'])

    # Notifications
    op.create_table(
        'notifications',
        *_base_columns(),
        sa.Column('workspace_id', sa.Uuid(), sa.ForeignKey('workspaces.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('actor_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('type', sa.String(50), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('body', sa.Text(), nullable=True),
        sa.Column('entity_type', sa.String(20), nullable=True),
        sa.Column('entity_id', sa.Uuid(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('pushed', sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index('ix_notifications_workspace_id', 'notifications', ['workspace_id'])
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])

    op.create_table(
        'notification_preferences',
        *_base_columns(),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('workspace_id', sa.Uuid(), sa.ForeignKey('workspaces.id', ondelete='CASCADE'), nullable=False),
        *[
            sa.Column(name, sa.Boolean(), nullable=False, server_default=sa.true())
            for name in (
                'task_assigned', 'task_status_changed', 'task_completed', 'comment_added',
                'comment_reply', 'project_updates', 'member_updates', 'chat_mentions',
                'due_date_reminders',
            )
        ],
        sa.Column('push_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('quiet_hours_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('quiet_hours_start', sa.Integer(), nullable=False, server_default='22'),
        sa.Column('quiet_hours_end', sa.Integer(), nullable=False, server_default='7'),
        sa.Column('timezone', sa.String(64), nullable=False, server_default='Asia/Kathmandu'),
        sa.UniqueConstraint('user_id', 'workspace_id', name='uq_notification_preferences'),
    )

    op.create_table(
        'push_subscriptions',
        *_base_columns(),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('endpoint', sa.String(1000), nullable=False),
        sa.Column('platform', sa.String(20), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.UniqueConstraint('user_id', 'endpoint', name='uq_push_subscription_endpoint'),
    )
    op.create_index('ix_push_subscriptions_user_id', 'push_subscriptions', ['user_id'])

    # Billing
    plans = op.create_table(
        'subscription_plans',
        *_base_columns(),
        sa.Column('name', sa.String(100), nullable=False, unique=True),
        sa.Column('price_npr', sa.Integer(), nullable=False),
        sa.Column('max_members', sa.Integer(), nullable=True),
        sa.Column('max_projects', sa.Integer(), nullable=True),
        sa.Column('features', sa.JSON(), nullable=True),
        sa.Column('position', sa.Integer(), nullable=False),
    )

    op.create_table(
        'workspace_subscriptions',
        *_base_columns(),
        sa.Column('workspace_id', sa.Uuid(), sa.ForeignKey('workspaces.id', ondelete='CASCADE'), nullable=False,
                  unique=True),
        sa.Column('plan_id', sa.Uuid(), sa.ForeignKey('subscription_plans.id'), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('starts_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('trial_ends_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('member_count', sa.Integer(), nullable=False),
    )

    op.create_table(
        'payment_submissions',
        *_base_columns(),
        sa.Column('workspace_id', sa.Uuid(), sa.ForeignKey('workspaces.id', ondelete='CASCADE'), nullable=False),
        sa.Column('plan_id', sa.Uuid(), sa.ForeignKey('subscription_plans.id'), nullable=False),
        sa.Column('amount_npr', sa.Integer(), nullable=False),
        sa.Column('months_paid', sa.Integer(), nullable=False),
        sa.Column('payment_method', sa.String(50), nullable=False),
        sa.Column('transaction_reference', sa.String(255), nullable=True),
        sa.Column('screenshot_path', sa.String(1000), nullable=False,
                  comment="Object key in the payment screenshot bucket"),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('submitted_by', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('verified_by', sa.Uuid(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('verified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('admin_notes', sa.Text(), nullable=True),
    )
    op.create_index('ix_payment_submissions_workspace_id', 'payment_submissions', ['workspace_id'])
    op.create_index('ix_payment_submissions_status', 'payment_submissions', ['status'])

    # Seed plans
    op.bulk_insert(plans, [
        {
            'id': uuid.uuid4(), 'name': 'Free', 'price_npr': 0, 'max_members': 3, 'max_projects': 2,
            'position': 0,
            'features': {'chat': True, 'kanban': True, 'list_view': True, 'time_tracking': False,
                         'file_uploads': False, 'reports': False},
        },
        {
            'id': uuid.uuid4(), 'name': 'Basic', 'price_npr': 199, 'max_members': 10, 'max_projects': None,
            'position': 1,
            'features': {'chat': True, 'kanban': True, 'list_view': True, 'time_tracking': True,
                         'file_uploads': True, 'reports': False},
        },
        {
            'id': uuid.uuid4(), 'name': 'Standard', 'price_npr': 349, 'max_members': 50, 'max_projects': None,
            'position': 2,
            'features': {'chat': True, 'kanban': True, 'list_view': True, 'time_tracking': True,
                         'file_uploads': True, 'reports': True},
        },
        {
            'id': uuid.uuid4(), 'name': 'Premium', 'price_npr': 599, 'max_members': None, 'max_projects': None,
            'position': 3,
            'features': {'chat': True, 'kanban': True, 'list_view': True, 'time_tracking': True,
                         'file_uploads': True, 'reports': True, 'exports': True},
        },
    ])


def downgrade() -> None:
    """Downgrade schema."""
    for table in (
        'payment_submissions',
        'workspace_subscriptions',
        'subscription_plans',
        'push_subscriptions',
        'notification_preferences',
        'notifications',
        'dm_messages',
        'dm_conversations',
        'messages',
        'channel_read_status',
        'channels',
        'activity_logs',
        'task_work_sessions',
        'tasks',
        'project_statuses',
        'projects',
        'workspace_invitations',
        'workspace_members',
        'workspaces',
        'users',
    ):
        op.drop_table(table)
