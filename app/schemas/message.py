"""
Pydantic schemas for message requests and responses.
Handles validation for message-related API endpoints.
"""
from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ============================================================================
# Request Schemas
# ============================================================================

class MessageCreate(BaseModel):
    """Schema for sending a message."""

    conversation_id: str = Field(..., description="Conversation ID")
    body: str = Field(..., min_length=1, max_length=10000, description="Message text")
    reply_to_id: Optional[str] = Field(None, description="ID of message being replied to")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "conversation_id": "0192f3c1a2b40001a1b2c3d4e5",
                "body": "Hello, how are you?",
                "reply_to_id": None
            }
        }
    )


class MessageUpdate(BaseModel):
    """Schema for editing a message."""

    body: str = Field(..., min_length=1, max_length=10000, description="Updated message text")


class ReactionToggle(BaseModel):
    """Schema for toggling a reaction."""

    emoji: str = Field(..., min_length=1, max_length=32, description="Emoji reaction")

    @field_validator("emoji")
    @classmethod
    def validate_emoji(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Emoji cannot be empty")
        return v.strip()

    model_config = ConfigDict(json_schema_extra={"example": {"emoji": "👍"}})


# ============================================================================
# Response Schemas
# ============================================================================

class ReactionSummary(BaseModel):
    """Reactions with one emoji on one message."""

    emoji: str
    count: int
    user_ids: List[str]


class ReplyPreview(BaseModel):
    message_id: str
    author_name: str
    body: str
    deleted: bool = False


class MessageResponse(BaseModel):
    """Schema for a message; deleted messages carry a placeholder body."""

    id: str
    conversation_id: str
    author_id: Optional[str] = None
    author_name: str
    body: str
    created_at: datetime
    updated_at: Optional[datetime] = None
    edited: bool = False
    deleted: bool = False
    reply_to_id: Optional[str] = None
    replied_to: Optional[ReplyPreview] = None
    reactions: List[ReactionSummary] = Field(default_factory=list)


class ReadMarker(BaseModel):
    """A peer's read marker; messages created at or before it are read by them."""

    user_id: str
    name: Optional[str] = None
    last_read_at: Optional[datetime] = None


class MessageListResponse(BaseModel):
    """Schema for one page of message history."""

    messages: List[MessageResponse]
    read_by: List[ReadMarker] = Field(default_factory=list)
    next_cursor: Optional[str] = Field(None, description="Pass as 'before' to load older messages")
    has_more: bool = False


class MessageDeleteResponse(BaseModel):
    id: str
    deleted: bool
    body: str


class ReactionToggleResponse(BaseModel):
    message_id: str
    emoji: str
    added: bool
