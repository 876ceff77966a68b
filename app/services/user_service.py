"""
User service: the Identity Store.

Maps an external identity to a local user record, keeps the record in sync
with the identity provider's profile and serves the user directory.
"""
from typing import Optional, List, Dict, Any
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFound, Unauthenticated
from app.core.security import ExternalIdentity
from app.core.subscriptions import Change, ENTITY_USER, Notifier, publish_safely
from app.core.websocket import connection_manager
from app.models.user import User
from app.repositories.conversation_repo import ConversationMemberRepository
from app.repositories.user_repo import UserRepository
from app.utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)

ANONYMOUS_NAME = "Anonymous"


def user_summary(user: Optional[User]) -> Optional[Dict[str, Any]]:
    """Public profile fields of a user, as embedded in other views."""
    if user is None:
        return None
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "image": user.image,
        "is_online": user.is_online,
        "last_seen": user.last_seen,
    }


class UserService:
    """Service for identity and user directory operations."""

    def __init__(self, db: AsyncSession, notifier: Optional[Notifier] = None):
        """Initialize user service."""
        self.db = db
        self.user_repo = UserRepository(db)
        self.member_repo = ConversationMemberRepository(db)
        self.notifier = notifier or connection_manager

    async def upsert_identity(self, identity: Optional[ExternalIdentity]) -> User:
        """
        Create or refresh the local user for an external identity.

        Safe to call on every authenticated page load: a known identity whose
        name and image still match is returned untouched.

        Args:
            identity: Verified identity from the identity provider

        Returns:
            Local User

        Raises:
            Unauthenticated: If no identity is presented
        """
        if identity is None or not identity.token_identifier:
            raise Unauthenticated("Called without an authenticated identity")

        user = await self.user_repo.get_by_token_identifier(identity.token_identifier)

        if user is None:
            try:
                user = await self.user_repo.create(
                    name=identity.name or identity.nickname or ANONYMOUS_NAME,
                    email=identity.email or "",
                    image=identity.picture,
                    token_identifier=identity.token_identifier,
                )
                await self.db.commit()
            except IntegrityError:
                # A concurrent first request created it; use that row
                await self.db.rollback()
                user = await self.user_repo.get_by_token_identifier(identity.token_identifier)
                if user is None:
                    raise
                logger.info(f"[USER_SERVICE] Identity {identity.token_identifier} created concurrently")
                return user
            logger.info(f"[USER_SERVICE] Created user {user.id} for {identity.token_identifier}")
            return user

        new_name = identity.name or user.name
        if user.name != new_name or user.image != identity.picture:
            user.name = new_name
            user.image = identity.picture
            user.updated_at = utc_now()
            await self.db.commit()
            logger.info(f"[USER_SERVICE] Profile drift patched for user {user.id}")

            co_members = await self.member_repo.get_co_member_ids(user.id)
            await publish_safely(
                self.notifier,
                [Change(ENTITY_USER, user.id, user_ids=tuple(co_members))]
            )

        return user

    async def get_user(self, user_id: str) -> User:
        """
        Get a user by ID.

        Raises:
            NotFound: If the user does not exist
        """
        user = await self.user_repo.get(user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    async def search_users(
        self,
        viewer_id: str,
        search: Optional[str] = None,
        limit: int = 50
    ) -> List[Dict[str, Any]]:
        """
        Directory listing used to pick conversation participants.

        Args:
            viewer_id: Current user (excluded from results)
            search: Case-insensitive match on name or email
            limit: Maximum results

        Returns:
            User summaries
        """
        users = await self.user_repo.search(
            exclude_user_id=viewer_id,
            query=search,
            limit=limit
        )
        return [user_summary(u) for u in users]
