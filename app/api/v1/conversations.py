"""
Conversation API routes.
Provides endpoints for creating, listing, renaming and reading conversations.
"""
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.dependencies import get_current_user
from app.models.user import User
from app.schemas.conversation import (
    ConversationCreate,
    ConversationCreateResponse,
    ConversationResponse,
    ConversationUpdate,
    MarkReadResponse,
)
from app.services.conversation_service import ConversationService

router = APIRouter()


@router.post(
    "/",
    response_model=ConversationCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new conversation",
    description="Create a 1:1 or group conversation. A 1:1 request for an existing pair returns the existing conversation."
)
async def create_conversation(
    conversation_data: ConversationCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Create a new conversation.

    - **participant_ids**: Users to add; you are added automatically
    - **is_group**: Group flag; a 1:1 needs exactly one other participant
    - **name**: Group name (defaults to "New Group")
    """
    conversation_id = await ConversationService(db).create_conversation(
        creator_id=current_user.id,
        participant_ids=conversation_data.participant_ids,
        is_group=conversation_data.is_group,
        name=conversation_data.name
    )
    return {"id": conversation_id}


@router.get(
    "/",
    response_model=List[ConversationResponse],
    summary="List my conversations",
    description="Every conversation you belong to, most recently active first."
)
async def list_conversations(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await ConversationService(db).list_conversations(current_user.id)


@router.get("/{conversation_id}", response_model=ConversationResponse)
async def get_conversation(
    conversation_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get one conversation. Members only."""
    return await ConversationService(db).get_conversation(current_user.id, conversation_id)


@router.put(
    "/{conversation_id}",
    response_model=ConversationResponse,
    summary="Rename a conversation"
)
async def update_conversation(
    conversation_id: str,
    update_data: ConversationUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Rename a conversation.

    Any member may rename it, 1:1 conversations included.
    """
    return await ConversationService(db).update_name(
        current_user.id, conversation_id, update_data.name
    )


@router.post(
    "/{conversation_id}/mark-read",
    response_model=MarkReadResponse,
    summary="Mark conversation as read"
)
async def mark_conversation_read(
    conversation_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Move your read marker to now.

    Does nothing (updated=false) if you are not a member.
    """
    updated = await ConversationService(db).mark_read(current_user.id, conversation_id)
    return {"conversation_id": conversation_id, "updated": updated}
