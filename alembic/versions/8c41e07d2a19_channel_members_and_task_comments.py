"""Channel members and task comments

Revision ID: 8c41e07d2a19
Revises: 3f2a9c1d7b04
Create Date: 2026-03-02 14:40:07.511923

"""
import uuid
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = '8c41e07d2a19'
down_revision: Union[str, Sequence[str], None] = '3f2a9c1d7b04'
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
    members = op.create_table(
        'channel_members',
        *_base_columns(),
        sa.Column('channel_id', sa.Uuid(), sa.ForeignKey('channels.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('role', sa.String(20), nullable=False, server_default='member'),
        sa.Column('added_by', sa.Uuid(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.UniqueConstraint('channel_id', 'user_id', name='uq_channel_member'),
    )
    op.create_index('ix_channel_members_channel_id', 'channel_members', ['channel_id'])
    op.create_index('ix_channel_members_user_id', 'channel_members', ['user_id'])

    op.create_table(
        'task_comments',
        *_base_columns(),
        sa.Column('task_id', sa.Uuid(), sa.ForeignKey('tasks.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('parent_id', sa.Uuid(), sa.ForeignKey('task_comments.id', ondelete='CASCADE'), nullable=True),
    )
    op.create_index('ix_task_comments_task_id', 'task_comments', ['task_id'])
    op.create_index('ix_task_comments_parent_id', 'task_comments', ['parent_id'])

    # Existing channels are administered by their creators
    channels = op.get_bind().execute(
        sa.text("SELECT id, created_by FROM channels WHERE created_by IS NOT NULL")
    ).all()
    if channels:
        op.bulk_insert(members, [
            {
                'id': uuid.uuid4(),
                'channel_id': channel_id,
                'user_id': created_by,
                'role': 'admin',
                'added_by': created_by,
            }
            for channel_id, created_by in channels
        ])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('task_comments')
    op.drop_table('channel_members')
