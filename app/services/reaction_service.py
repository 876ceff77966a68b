"""
Reaction service: the Reaction Store.

A reaction row's existence is the state, so the only mutation is a toggle.
"""
import logging
from typing import Optional, Dict, Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFound, ValidationFailed
from app.core.subscriptions import Change, ENTITY_REACTION, Notifier, publish_safely
from app.core.websocket import connection_manager
from app.repositories.message_repo import MessageRepository, MessageReactionRepository
from app.services.conversation_service import ensure_member

logger = logging.getLogger(__name__)


class ReactionService:
    """Service for message reactions."""

    def __init__(self, db: AsyncSession, notifier: Optional[Notifier] = None):
        self.db = db
        self.message_repo = MessageRepository(db)
        self.reaction_repo = MessageReactionRepository(db)
        self.notifier = notifier or connection_manager

    async def toggle_reaction(self, user_id: str, message_id: str, emoji: str) -> Dict[str, Any]:
        """
        Add the reaction if absent, remove it if present.

        A user may hold several different emoji on one message but only one
        row per exact emoji. Calling twice restores the original state, which
        also means a blind client retry can undo the first call.

        Args:
            user_id: Reacting user
            message_id: Target message
            emoji: Emoji

        Returns:
            {message_id, emoji, added}

        Raises:
            NotFound: If the message does not exist
            Forbidden: If the user is not a member of the message's conversation
            ValidationFailed: If emoji is blank
        """
        emoji = (emoji or "").strip()
        if not emoji:
            raise ValidationFailed("Emoji cannot be empty")

        message = await self.message_repo.get(message_id)
        if not message:
            raise NotFound("Message not found")
        conversation_id = message.conversation_id

        await ensure_member(self.db, conversation_id, user_id)

        existing = await self.reaction_repo.get_reaction(message_id, user_id, emoji)
        if existing:
            await self.reaction_repo.remove_reaction(message_id, user_id, emoji)
            added = False
        else:
            inserted = await self.reaction_repo.add_reaction(message_id, user_id, emoji)
            if not inserted:
                # Lost a race with an identical insert; the reaction exists either way
                logger.info(f"[REACTION_SERVICE] Duplicate reaction {emoji} on {message_id} by {user_id}")
            added = True

        await self.db.commit()
        logger.info(
            f"[REACTION_SERVICE] {'Added' if added else 'Removed'} {emoji} on {message_id} by {user_id}"
        )

        await publish_safely(
            self.notifier,
            [Change(ENTITY_REACTION, message_id, conversation_id=conversation_id)]
        )
        return {"message_id": message_id, "emoji": emoji, "added": added}
