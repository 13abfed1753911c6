"""initial schema

Revision ID: 2026_10_16_0000
Revises:
Create Date: 2026-10-16 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID


# revision identifiers, used by Alembic.
revision: str = '2026_10_16_0000'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create users, conversations, messages and notifications."""

    # ========================================================================
    # Create users table
    # ========================================================================
    op.create_table(
        'users',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('username', sa.String(30), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('credits', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('plan', sa.String(50), nullable=False, server_default='free'),
        sa.Column(
            'preferences',
            JSONB(),
            nullable=False,
            server_default=sa.text('\'{"theme": "light", "notifications": {"email": true, "push": true}}\'::jsonb'),
        ),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('last_login', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        # Constraints
        sa.CheckConstraint('credits >= 0', name='ck_users_credits_non_negative'),
        sa.UniqueConstraint('username', name='uq_users_username'),
    )
    op.create_index('idx_users_is_active', 'users', ['is_active'])

    # ========================================================================
    # Create conversations table
    # ========================================================================
    op.create_table(
        'conversations',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('title', sa.String(100), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('model', sa.String(50), nullable=False, server_default='gpt-3.5-turbo'),
        sa.Column('temperature', sa.Float(), nullable=False, server_default='0.7'),
        sa.Column('max_tokens', sa.Integer(), nullable=False, server_default='1000'),
        sa.Column('message_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_tokens', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('last_message_at', sa.DateTime(timezone=True), nullable=True, server_default=sa.text('NOW()')),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        # Constraints
        sa.CheckConstraint('message_count >= 0', name='ck_conversations_message_count'),
        sa.CheckConstraint('total_tokens >= 0', name='ck_conversations_total_tokens'),
        sa.CheckConstraint('temperature >= 0 AND temperature <= 2', name='ck_conversations_temperature'),
        sa.CheckConstraint('max_tokens >= 1 AND max_tokens <= 4000', name='ck_conversations_max_tokens'),
    )
    op.create_index('idx_conversations_user_created', 'conversations', ['user_id', 'created_at'])
    op.create_index('idx_conversations_user_active', 'conversations', ['user_id', 'is_active'])

    # ========================================================================
    # Create messages table
    # ========================================================================
    op.create_table(
        'messages',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('conversation_id', UUID(as_uuid=True), sa.ForeignKey('conversations.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('role', sa.String(20), nullable=False),
        sa.Column('tokens', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('model', sa.String(50), nullable=True),
        sa.Column('temperature', sa.Float(), nullable=True),
        sa.Column('processing_time_ms', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_edited', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('edited_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('parent_message_id', UUID(as_uuid=True), sa.ForeignKey('messages.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        # Constraints
        sa.CheckConstraint("role IN ('user', 'assistant', 'system')", name='ck_messages_role'),
        sa.CheckConstraint('char_length(content) <= 10000', name='ck_messages_content_length'),
    )
    op.create_index('idx_messages_conversation_created', 'messages', ['conversation_id', 'created_at'])
    op.create_index('idx_messages_user_created', 'messages', ['user_id', 'created_at'])

    # ========================================================================
    # Create notifications table
    # ========================================================================
    op.create_table(
        'notifications',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('title', sa.String(100), nullable=False),
        sa.Column('message', sa.String(500), nullable=False),
        sa.Column('type', sa.String(20), nullable=False, server_default='info'),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('action_url', sa.String(2048), nullable=True),
        sa.Column('source', sa.String(20), nullable=False, server_default='system'),
        sa.Column('priority', sa.String(10), nullable=False, server_default='medium'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        # Constraints
        sa.CheckConstraint(
            "type IN ('info', 'success', 'warning', 'error', 'credit', 'system')",
            name='ck_notifications_type',
        ),
        sa.CheckConstraint(
            "source IN ('system', 'chat', 'billing', 'security')",
            name='ck_notifications_source',
        ),
        sa.CheckConstraint("priority IN ('low', 'medium', 'high')", name='ck_notifications_priority'),
    )
    op.create_index('idx_notifications_user_created', 'notifications', ['user_id', 'created_at'])
    op.create_index('idx_notifications_user_read', 'notifications', ['user_id', 'is_read'])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table('notifications')
    op.drop_table('messages')
    op.drop_table('conversations')
    op.drop_table('users')
