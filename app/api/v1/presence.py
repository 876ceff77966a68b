"""
Presence API routes.
"""
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.dependencies import get_current_user
from app.models.user import User
from app.schemas.presence import HeartbeatResponse, PresenceResponse
from app.services.presence_service import PresenceService

router = APIRouter()


@router.post("/heartbeat", response_model=HeartbeatResponse)
async def heartbeat(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Liveness signal. Clients send one every 10-30 seconds while open.
    """
    is_online = await PresenceService(db).heartbeat(current_user.id)
    return {"user_id": current_user.id, "is_online": is_online}


@router.post("/disconnect", status_code=204)
async def disconnect(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Graceful teardown (page close / unload)."""
    await PresenceService(db).disconnect(current_user.id)


@router.get("", response_model=List[PresenceResponse])
async def list_presence(
    user_ids: str = Query(..., description="Comma-separated user IDs"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Online status for several users."""
    ids = [user_id.strip() for user_id in user_ids.split(",") if user_id.strip()]
    return await PresenceService(db).list_presence(ids)
