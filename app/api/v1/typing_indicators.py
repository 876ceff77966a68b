"""
Typing indicator API routes.
"""
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.dependencies import get_current_user
from app.models.user import User
from app.schemas.typing_indicator import TypingUser
from app.services.typing_service import TypingService

router = APIRouter()


@router.put("/{conversation_id}", status_code=204)
async def set_typing(
    conversation_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Mark yourself as typing. Throttle to about once every 3 seconds."""
    await TypingService(db).set_typing(current_user.id, conversation_id)


@router.delete("/{conversation_id}", status_code=204)
async def clear_typing(
    conversation_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Stop typing (input cleared or message sent)."""
    await TypingService(db).clear_typing(current_user.id, conversation_id)


@router.get("/{conversation_id}", response_model=List[TypingUser])
async def list_typing(
    conversation_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Who else is typing right now."""
    return await TypingService(db).list_typing(
        current_user.id, conversation_id, exclude_user_id=current_user.id
    )
