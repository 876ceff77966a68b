"""
Pydantic schemas for conversation requests and responses.
Handles validation for conversation-related API endpoints.
"""
from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.schemas.user import UserResponse

DEFAULT_GROUP_NAME = "New Group"


# ============================================================================
# Request Schemas
# ============================================================================

class ConversationCreate(BaseModel):
    """Schema for creating a new conversation."""

    participant_ids: List[str] = Field(
        ...,
        min_length=1,
        max_length=100,
        description="User IDs to add (you are added automatically)"
    )
    is_group: bool = Field(default=False, description="Group conversation flag")
    name: Optional[str] = Field(None, max_length=255, description="Group name")

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return v.strip() or None

    @model_validator(mode="after")
    def default_group_name(self) -> "ConversationCreate":
        """Groups created without a name are called "New Group"."""
        if self.is_group and not self.name:
            self.name = DEFAULT_GROUP_NAME
        return self

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "participant_ids": ["0192f3c1a2b40001a1b2c3d4e5"],
                "is_group": True,
                "name": "Team Discussion"
            }
        }
    )


class ConversationUpdate(BaseModel):
    """Schema for renaming a conversation."""

    name: str = Field(..., min_length=1, max_length=255, description="New conversation name")


# ============================================================================
# Response Schemas
# ============================================================================

class LastMessageResponse(BaseModel):
    """Preview of a conversation's latest message."""

    id: str
    body: str
    author_id: Optional[str] = None
    author_name: str
    created_at: datetime
    deleted: bool = False
    edited: bool = False


class ConversationResponse(BaseModel):
    """A conversation as seen by one member."""

    id: str
    name: Optional[str] = None
    is_group: bool
    created_by: Optional[str] = None
    created_at: datetime
    last_message_id: Optional[str] = None
    other_member: Optional[UserResponse] = Field(None, description="The other participant (1:1 only)")
    member_profiles: List[UserResponse] = Field(default_factory=list, description="Members excluding you")
    member_count: int
    last_message: Optional[LastMessageResponse] = None
    last_read_at: Optional[datetime] = None
    unread_count: int = 0


class ConversationCreateResponse(BaseModel):
    """ID of the created (or reused 1:1) conversation."""

    id: str


class MarkReadResponse(BaseModel):
    conversation_id: str
    updated: bool
