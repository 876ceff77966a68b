"""
Message repository for database operations.
Handles messages and reactions.
"""
from typing import Optional, List, Tuple

from sqlalchemy import select, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.message import Message, MessageReaction
from app.repositories.base import BaseRepository


class MessageRepository(BaseRepository[Message]):
    """Repository for message database operations."""

    def __init__(self, db: AsyncSession):
        super().__init__(Message, db)

    async def get_conversation_messages(
        self,
        conversation_id: str,
        limit: int = 100,
        before: Optional[str] = None
    ) -> Tuple[List[Message], Optional[str], bool]:
        """
        Get one page of a conversation's history.

        IDs are creation-ordered, so the cursor is simply the oldest message
        ID of the previous page.

        Args:
            conversation_id: Conversation ID
            limit: Page size
            before: Only return messages older than this message ID

        Returns:
            Tuple of (messages oldest first, next_cursor, has_more)
        """
        query = select(Message).where(Message.conversation_id == conversation_id)

        if before:
            query = query.where(Message.id < before)

        # Fetch one extra row to know whether another page exists
        query = query.order_by(Message.id.desc()).limit(limit + 1)

        result = await self.db.execute(query)
        messages = list(result.scalars().all())

        has_more = len(messages) > limit
        if has_more:
            messages = messages[:limit]

        messages.reverse()
        next_cursor = messages[0].id if has_more and messages else None

        return messages, next_cursor, has_more

    async def soft_delete(self, message: Message) -> Message:
        message.deleted = True
        await self.db.flush()
        return message


class MessageReactionRepository:
    """Repository for message reactions."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_reaction(
        self, message_id: str, user_id: str, emoji: str
    ) -> Optional[MessageReaction]:
        result = await self.db.execute(
            select(MessageReaction).where(
                MessageReaction.message_id == message_id,
                MessageReaction.user_id == user_id,
                MessageReaction.emoji == emoji
            )
        )
        return result.scalar_one_or_none()

    async def add_reaction(
        self, message_id: str, user_id: str, emoji: str
    ) -> bool:
        """
        Insert a reaction row.

        Must be the only pending write in the session: a concurrent duplicate
        rolls the session back.

        Returns:
            False if the (message, user, emoji) row already existed
        """
        self.db.add(MessageReaction(message_id=message_id, user_id=user_id, emoji=emoji))
        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            return False
        return True

    async def remove_reaction(
        self, message_id: str, user_id: str, emoji: str
    ) -> bool:
        """
        Delete a reaction row.

        Returns:
            True if a row was deleted
        """
        result = await self.db.execute(
            delete(MessageReaction).where(
                MessageReaction.message_id == message_id,
                MessageReaction.user_id == user_id,
                MessageReaction.emoji == emoji
            )
        )
        await self.db.flush()
        return result.rowcount > 0

    async def get_reactions_for_messages(self, message_ids: List[str]) -> List[MessageReaction]:
        """All reactions on the given messages, in insertion order."""
        if not message_ids:
            return []
        result = await self.db.execute(
            select(MessageReaction)
            .where(MessageReaction.message_id.in_(message_ids))
            .order_by(MessageReaction.id)
        )
        return list(result.scalars().all())
