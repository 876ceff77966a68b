"""
User repository for database operations.
Handles identity lookup, profile sync and directory search.
"""
from typing import Optional, List

from sqlalchemy import select, or_, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import User
from app.repositories.base import BaseRepository


def escape_like(term: str) -> str:
    """Make LIKE wildcards in a search term match literally (escape char: backslash)."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class UserRepository(BaseRepository[User]):
    """Repository for user database operations."""

    def __init__(self, db: AsyncSession):
        """Initialize user repository."""
        super().__init__(User, db)

    async def get_by_token_identifier(self, token_identifier: str) -> Optional[User]:
        """
        Get user by external identity.

        Args:
            token_identifier: '<issuer>|<subject>' from the identity token

        Returns:
            User instance or None
        """
        result = await self.db.execute(
            select(User).where(User.token_identifier == token_identifier)
        )
        return result.scalar_one_or_none()

    async def search(
        self,
        exclude_user_id: Optional[str] = None,
        query: Optional[str] = None,
        limit: int = 50
    ) -> List[User]:
        """
        Search the user directory.

        Matches query case-insensitively against name or email. An empty
        query returns everyone (up to limit), ordered by name.

        Args:
            exclude_user_id: User to leave out (normally the viewer)
            query: Search term
            limit: Maximum results

        Returns:
            Matching users
        """
        stmt = select(User)

        if exclude_user_id:
            stmt = stmt.where(User.id != exclude_user_id)

        if query:
            pattern = f"%{escape_like(query.strip().lower())}%"
            stmt = stmt.where(
                or_(
                    func.lower(User.name).like(pattern, escape="\\"),
                    func.lower(User.email).like(pattern, escape="\\"),
                )
            )

        stmt = stmt.order_by(func.lower(User.name), User.id).limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())
