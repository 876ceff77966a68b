"""
Dependency injection for FastAPI routes.
Provides reusable dependencies for authentication and pagination.
"""
from typing import Optional

from fastapi import Depends, Header, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.database import get_db
from app.core.security import ExternalIdentity, verify_identity
from app.models.user import User
from app.services.user_service import UserService


async def get_identity(
    authorization: Optional[str] = Header(None)
) -> ExternalIdentity:
    """
    Dependency to verify the identity provider's token.

    Args:
        authorization: Authorization header containing Bearer token

    Returns:
        Verified external identity

    Raises:
        Unauthenticated: 401 if the header is missing or the token is invalid
    """
    return verify_identity(authorization)


async def get_current_user(
    identity: ExternalIdentity = Depends(get_identity),
    db: AsyncSession = Depends(get_db)
) -> User:
    """
    Dependency to get the current authenticated user.

    The local user is upserted from the token on every request: the first
    request creates it, later ones only write when the profile drifted.

    Example:
        ```python
        @router.get("/protected")
        async def protected_route(current_user: User = Depends(get_current_user)):
            return {"user": current_user.name}
        ```
    """
    return await UserService(db).upsert_identity(identity)


def get_pagination_params(
    before: Optional[str] = Query(None, description="Cursor: load messages older than this ID"),
    limit: Optional[int] = Query(None, ge=1, description="Page size")
) -> dict:
    """
    Dependency for cursor-based pagination parameters.

    Returns:
        Dictionary with 'before' and 'limit' (capped at MAX_MESSAGE_PAGE_SIZE)
    """
    if limit is not None:
        limit = min(limit, settings.max_message_page_size)

    return {
        "before": before,
        "limit": limit,
    }
