"""
Typing service: the Typing Tracker.

Typing marks are ephemeral: one hash per conversation in the ephemeral
store, field = user ID, value = unix time of the last keystroke signal.
Staleness is decided at read time; nothing sweeps old marks except the
store's key TTL.
"""
import logging
import time
from typing import Optional, List, Dict, Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.cache import cache, get_timestamps, set_timestamp, typing_key
from app.core.subscriptions import Change, ENTITY_TYPING, Notifier, publish_safely
from app.core.websocket import connection_manager
from app.repositories.user_repo import UserRepository
from app.services.conversation_service import ensure_member

logger = logging.getLogger(__name__)

UNKNOWN_TYPIST = "Someone"


class TypingService:
    """Service for typing indicators."""

    def __init__(
        self,
        db: AsyncSession,
        notifier: Optional[Notifier] = None,
        window: Optional[int] = None,
        clock=time.time
    ):
        self.db = db
        self.user_repo = UserRepository(db)
        self.notifier = notifier or connection_manager
        self.window = window if window is not None else settings.typing_window_seconds
        self.clock = clock

    async def _publish(self, user_id: str, conversation_id: str) -> None:
        await publish_safely(
            self.notifier,
            [Change(ENTITY_TYPING, user_id, conversation_id=conversation_id)]
        )

    async def set_typing(self, user_id: str, conversation_id: str) -> None:
        """
        Mark user as typing in a conversation.

        Clients should throttle this to roughly once every 3 seconds while
        the user keeps typing.

        Raises:
            NotFound: If the conversation does not exist
            Forbidden: If the user is not a member
        """
        await ensure_member(self.db, conversation_id, user_id)

        # Key TTL only bounds memory; freshness is checked against the window
        await set_timestamp(
            typing_key(conversation_id),
            user_id,
            self.clock(),
            ttl=max(self.window * 2, 1)
        )
        await self._publish(user_id, conversation_id)

    async def clear_typing(self, user_id: str, conversation_id: str) -> None:
        """
        Remove the user's typing mark. Idempotent.

        Raises:
            NotFound: If the conversation does not exist
            Forbidden: If the user is not a member
        """
        await ensure_member(self.db, conversation_id, user_id)

        if await cache.hdel(typing_key(conversation_id), user_id):
            await self._publish(user_id, conversation_id)

    async def list_typing(
        self,
        viewer_id: str,
        conversation_id: str,
        exclude_user_id: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """
        Users currently typing in a conversation.

        Args:
            viewer_id: Viewing user (must be a member)
            conversation_id: Conversation ID
            exclude_user_id: Leave this user out (normally the viewer)

        Returns:
            [{user_id, name}], longest-typing first

        Raises:
            NotFound: If the conversation does not exist
            Forbidden: If the viewer is not a member
        """
        await ensure_member(self.db, conversation_id, viewer_id)

        now = self.clock()
        marks = await get_timestamps(typing_key(conversation_id))
        fresh = sorted(
            (
                (updated_at, user_id)
                for user_id, updated_at in marks.items()
                if now - updated_at < self.window and user_id != exclude_user_id
            )
        )

        users = await self.user_repo.get_many([user_id for _, user_id in fresh])
        return [
            {
                "user_id": user_id,
                "name": users[user_id].name if user_id in users else UNKNOWN_TYPIST,
            }
            for _, user_id in fresh
        ]
