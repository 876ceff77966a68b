"""
User API endpoints.
Provides identity upsert, profile and directory endpoints.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.security import ExternalIdentity
from app.dependencies import get_current_user, get_identity
from app.models.user import User
from app.schemas.user import UserResponse
from app.services.user_service import UserService

router = APIRouter()


@router.post(
    "/me",
    response_model=UserResponse,
    summary="Create or refresh the current user",
    description="Upsert the local user from the identity token. Safe to call on every page load."
)
async def upsert_current_user(
    identity: ExternalIdentity = Depends(get_identity),
    db: AsyncSession = Depends(get_db)
):
    """
    Create or refresh the local user for the caller's identity.

    **Authentication**: Required (identity provider token in Authorization header)
    """
    return await UserService(db).upsert_identity(identity)


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: User = Depends(get_current_user)):
    """Get current authenticated user profile."""
    return current_user


@router.get(
    "",
    response_model=List[UserResponse],
    summary="Search the user directory",
)
async def search_users(
    search: Optional[str] = Query(None, max_length=100, description="Match on name or email"),
    limit: int = Query(50, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    List users to start a conversation with.

    - **search**: Case-insensitive match on name or email
    - **limit**: Maximum results (1-100)

    The caller is never included.
    """
    return await UserService(db).search_users(current_user.id, search=search, limit=limit)


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get a user's public profile."""
    return await UserService(db).get_user(user_id)
