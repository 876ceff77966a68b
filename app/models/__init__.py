"""
SQLAlchemy models for the chat sync server.

All models must be imported here for Alembic auto-generation to work.
"""

# Import Base first
from app.models.base import Base, IDMixin, TimestampMixin, generate_id

# Import all models (order matters for relationships)
from app.models.user import User
from app.models.conversation import Conversation, ConversationMember
from app.models.message import Message, MessageReaction, DELETED_PLACEHOLDER

__all__ = [
    # Base classes
    "Base",
    "IDMixin",
    "TimestampMixin",
    "generate_id",
    # User
    "User",
    # Conversations
    "Conversation",
    "ConversationMember",
    # Messages
    "Message",
    "MessageReaction",
    "DELETED_PLACEHOLDER",
]
