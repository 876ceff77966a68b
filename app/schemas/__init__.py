"""
Pydantic schema exports.
Provides request/response models for API endpoints.
"""
from app.schemas.message import (
    MessageCreate,
    MessageUpdate,
    MessageResponse,
    MessageListResponse,
    MessageDeleteResponse,
    ReactionToggle,
    ReactionToggleResponse,
    ReactionSummary,
    ReplyPreview,
    ReadMarker,
)
from app.schemas.conversation import (
    ConversationCreate,
    ConversationUpdate,
    ConversationResponse,
    ConversationCreateResponse,
    LastMessageResponse,
    MarkReadResponse,
)
from app.schemas.user import UserResponse
from app.schemas.presence import PresenceResponse, HeartbeatResponse
from app.schemas.typing_indicator import TypingUser

__all__ = [
    "MessageCreate",
    "MessageUpdate",
    "MessageResponse",
    "MessageListResponse",
    "MessageDeleteResponse",
    "ReactionToggle",
    "ReactionToggleResponse",
    "ReactionSummary",
    "ReplyPreview",
    "ReadMarker",
    "ConversationCreate",
    "ConversationUpdate",
    "ConversationResponse",
    "ConversationCreateResponse",
    "LastMessageResponse",
    "MarkReadResponse",
    "UserResponse",
    "PresenceResponse",
    "HeartbeatResponse",
    "TypingUser",
]
