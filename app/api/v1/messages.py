"""
Message API routes.
Provides endpoints for sending, retrieving, editing, deleting and reacting to messages.
"""
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.config import settings
from app.core.database import get_db
from app.dependencies import get_current_user, get_pagination_params
from app.models.user import User
from app.schemas.message import (
    MessageCreate,
    MessageDeleteResponse,
    MessageListResponse,
    MessageResponse,
    MessageUpdate,
    ReactionToggle,
    ReactionToggleResponse,
)
from app.services.message_service import MessageService
from app.services.reaction_service import ReactionService

router = APIRouter()
limiter = Limiter(key_func=get_remote_address)


@router.post(
    "/",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Send a new message",
    description="Send a message to a conversation. User must be a member of the conversation."
)
@limiter.limit(settings.rate_limit_send_message)
async def send_message(
    request: Request,
    message_data: MessageCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Send a new message to a conversation.

    - **conversation_id**: Target conversation
    - **body**: Message text (blank bodies are rejected)
    - **reply_to_id**: Optional message in the same conversation being replied to
    """
    return await MessageService(db).send_message(
        author_id=current_user.id,
        conversation_id=message_data.conversation_id,
        body=message_data.body,
        reply_to_id=message_data.reply_to_id
    )


@router.get(
    "/conversation/{conversation_id}",
    response_model=MessageListResponse,
    summary="Get conversation messages",
    description="Page through a conversation's history, newest page first. Members only."
)
async def get_conversation_messages(
    conversation_id: str,
    pagination: dict = Depends(get_pagination_params),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Get one page of messages, oldest first within the page.

    - **limit**: Page size
    - **before**: Pass the previous response's next_cursor to load older messages
    """
    return await MessageService(db).list_messages(
        viewer_id=current_user.id,
        conversation_id=conversation_id,
        limit=pagination["limit"],
        before=pagination["before"]
    )


@router.get("/{message_id}", response_model=MessageResponse)
async def get_message(
    message_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get a single message."""
    return await MessageService(db).get_message(current_user.id, message_id)


@router.put(
    "/{message_id}",
    response_model=MessageResponse,
    summary="Edit a message"
)
async def edit_message(
    message_id: str,
    message_data: MessageUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Edit your own message."""
    return await MessageService(db).edit_message(current_user.id, message_id, message_data.body)


@router.delete(
    "/{message_id}",
    response_model=MessageDeleteResponse,
    summary="Delete a message"
)
async def delete_message(
    message_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Soft-delete your own message; members see a placeholder instead."""
    return await MessageService(db).delete_message(current_user.id, message_id)


@router.post(
    "/{message_id}/reactions",
    response_model=ReactionToggleResponse,
    summary="Toggle a reaction"
)
async def toggle_reaction(
    message_id: str,
    reaction_data: ReactionToggle,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Add the emoji if you have not used it on this message, remove it if you have.

    Calling twice restores the original state.
    """
    return await ReactionService(db).toggle_reaction(current_user.id, message_id, reaction_data.emoji)
