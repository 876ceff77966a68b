"""
Repository layer exports.
Provides database access layer for the application.
"""
from app.repositories.base import BaseRepository
from app.repositories.message_repo import (
    MessageRepository,
    MessageReactionRepository
)
from app.repositories.conversation_repo import (
    ConversationRepository,
    ConversationMemberRepository
)
from app.repositories.user_repo import UserRepository

__all__ = [
    "BaseRepository",
    "MessageRepository",
    "MessageReactionRepository",
    "ConversationRepository",
    "ConversationMemberRepository",
    "UserRepository",
]
