"""
Service layer exports.
Provides business logic for the application.
"""
from app.services.message_service import MessageService
from app.services.conversation_service import ConversationService
from app.services.presence_service import PresenceService
from app.services.reaction_service import ReactionService
from app.services.typing_service import TypingService
from app.services.user_service import UserService

__all__ = [
    "MessageService",
    "ConversationService",
    "PresenceService",
    "ReactionService",
    "TypingService",
    "UserService",
]
