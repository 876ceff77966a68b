"""initial_chat_schema

Revision ID: 3f1c2a9d7b10
Revises:
Create Date: 2026-03-01 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3f1c2a9d7b10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """
    Create users, conversations, conversation_members, messages and
    message_reactions.

    Typing marks and presence heartbeats are ephemeral and live in Redis (or
    process memory), so they have no tables.
    """
    op.create_table('users',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('token_identifier', sa.String(length=512), nullable=False),
        sa.Column('image', sa.String(length=1000), nullable=True),
        sa.Column('is_online', sa.Boolean(), nullable=False),
        sa.Column('last_seen', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=False)
    op.create_index('ix_users_token_identifier', 'users', ['token_identifier'], unique=True)

    op.create_table('conversations',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('is_group', sa.Boolean(), nullable=False),
        sa.Column('last_message_id', sa.String(length=32), nullable=True),
        sa.Column('created_by', sa.String(length=32), nullable=True),
        sa.Column('direct_key', sa.String(length=80), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['created_by'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('direct_key', name='uq_conversations_direct_key')
    )
    op.create_index('idx_conversations_created_by', 'conversations', ['created_by'], unique=False)

    op.create_table('conversation_members',
        sa.Column('conversation_id', sa.String(length=32), nullable=False),
        sa.Column('user_id', sa.String(length=32), nullable=False),
        sa.Column('joined_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_read_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['conversation_id'], ['conversations.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('conversation_id', 'user_id')
    )
    op.create_index('idx_conversation_members_user', 'conversation_members', ['user_id'], unique=False)

    op.create_table('messages',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('conversation_id', sa.String(length=32), nullable=False),
        sa.Column('author_id', sa.String(length=32), nullable=True),
        sa.Column('author_name', sa.String(length=255), nullable=False),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('reply_to_id', sa.String(length=32), nullable=True),
        sa.Column('deleted', sa.Boolean(), nullable=False),
        sa.Column('edited', sa.Boolean(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['author_id'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['conversation_id'], ['conversations.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_messages_author_id', 'messages', ['author_id'], unique=False)
    op.create_index('idx_messages_conversation_id_cursor', 'messages', ['conversation_id', 'id'], unique=False)

    op.create_table('message_reactions',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('message_id', sa.String(length=32), nullable=False),
        sa.Column('user_id', sa.String(length=32), nullable=False),
        sa.Column('emoji', sa.String(length=32), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['message_id'], ['messages.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('message_id', 'user_id', 'emoji', name='uq_message_user_emoji')
    )
    op.create_index('ix_message_reactions_message_id', 'message_reactions', ['message_id'], unique=False)


def downgrade() -> None:
    """Drop the chat schema."""
    op.drop_index('ix_message_reactions_message_id', table_name='message_reactions')
    op.drop_table('message_reactions')
    op.drop_index('idx_messages_conversation_id_cursor', table_name='messages')
    op.drop_index('ix_messages_author_id', table_name='messages')
    op.drop_table('messages')
    op.drop_index('idx_conversation_members_user', table_name='conversation_members')
    op.drop_table('conversation_members')
    op.drop_index('idx_conversations_created_by', table_name='conversations')
    op.drop_table('conversations')
    op.drop_index('ix_users_token_identifier', table_name='users')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
