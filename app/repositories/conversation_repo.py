"""
Conversation repository for database operations.
Handles conversations, members, and related queries.
"""
from datetime import datetime
from typing import Optional, List, Iterable

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.conversation import Conversation, ConversationMember
from app.models.message import Message
from app.repositories.base import BaseRepository


def direct_key(user1_id: str, user2_id: str) -> str:
    """Order-independent key of a 1:1 pair."""
    return ":".join(sorted((user1_id, user2_id)))


class ConversationRepository(BaseRepository[Conversation]):
    """Repository for conversation database operations."""

    def __init__(self, db: AsyncSession):
        super().__init__(Conversation, db)

    async def get_with_members(self, conversation_id: str) -> Optional[Conversation]:
        """
        Get conversation with members (and their users) loaded.

        Args:
            conversation_id: Conversation ID

        Returns:
            Conversation with relations or None
        """
        result = await self.db.execute(
            select(Conversation)
            .where(Conversation.id == conversation_id)
            .options(selectinload(Conversation.members).selectinload(ConversationMember.user))
        )
        return result.scalar_one_or_none()

    async def get_user_conversations(self, user_id: str) -> List[Conversation]:
        """
        Get every conversation the user is a member of.

        Ordering is left to the caller, which sorts by last activity.

        Args:
            user_id: User ID

        Returns:
            Conversations with members loaded
        """
        member_of = (
            select(ConversationMember.conversation_id)
            .where(ConversationMember.user_id == user_id)
        )
        result = await self.db.execute(
            select(Conversation)
            .where(Conversation.id.in_(member_of))
            .options(selectinload(Conversation.members).selectinload(ConversationMember.user))
        )
        return list(result.scalars().all())

    async def find_direct_conversation(
        self, user1_id: str, user2_id: str
    ) -> Optional[Conversation]:
        """
        Find the existing 1:1 conversation between two users.

        Looked up by the sorted pair key, so the lookup is symmetric.

        Args:
            user1_id: First user ID
            user2_id: Second user ID

        Returns:
            Conversation or None
        """
        result = await self.db.execute(
            select(Conversation).where(Conversation.direct_key == direct_key(user1_id, user2_id))
        )
        return result.scalar_one_or_none()

    async def create_with_members(
        self,
        creator_id: str,
        member_ids: Iterable[str],
        is_group: bool,
        name: Optional[str] = None
    ) -> Conversation:
        """
        Create a conversation and one member row per participant.

        The creator is always added. A 1:1 conversation gets its pair key,
        so a concurrent duplicate fails on the unique constraint. Flushes but
        does not commit.

        Args:
            creator_id: Creator user ID
            member_ids: Other participants
            is_group: Group flag
            name: Optional group name

        Returns:
            Created conversation
        """
        member_ids = list(member_ids)
        conversation = Conversation(
            is_group=is_group,
            name=name,
            created_by=creator_id,
            direct_key=None if is_group else direct_key(creator_id, member_ids[0]),
        )
        self.db.add(conversation)
        await self.db.flush()

        seen = set()
        for user_id in [creator_id, *member_ids]:
            if user_id in seen:
                continue
            seen.add(user_id)
            self.db.add(ConversationMember(conversation_id=conversation.id, user_id=user_id))

        await self.db.flush()
        return conversation

    async def get_last_message(self, conversation: Conversation) -> Optional[Message]:
        if not conversation.last_message_id:
            return None
        result = await self.db.execute(
            select(Message).where(Message.id == conversation.last_message_id)
        )
        return result.scalar_one_or_none()

    async def get_last_messages(self, conversations: List[Conversation]) -> dict:
        """Batch variant of get_last_message: last_message_id -> Message."""
        ids = [c.last_message_id for c in conversations if c.last_message_id]
        if not ids:
            return {}
        result = await self.db.execute(select(Message).where(Message.id.in_(ids)))
        return {m.id: m for m in result.scalars().all()}


class ConversationMemberRepository:
    """Repository for conversation member operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_member(
        self, conversation_id: str, user_id: str
    ) -> Optional[ConversationMember]:
        """
        Get a membership row.

        Returns:
            ConversationMember or None
        """
        result = await self.db.execute(
            select(ConversationMember).where(
                ConversationMember.conversation_id == conversation_id,
                ConversationMember.user_id == user_id
            )
        )
        return result.scalar_one_or_none()

    async def get_members(self, conversation_id: str) -> List[ConversationMember]:
        """All members of a conversation, users loaded, in join order."""
        result = await self.db.execute(
            select(ConversationMember)
            .where(ConversationMember.conversation_id == conversation_id)
            .options(selectinload(ConversationMember.user))
            .order_by(ConversationMember.joined_at, ConversationMember.user_id)
        )
        return list(result.scalars().all())

    async def get_member_ids(self, conversation_id: str) -> List[str]:
        result = await self.db.execute(
            select(ConversationMember.user_id)
            .where(ConversationMember.conversation_id == conversation_id)
        )
        return list(result.scalars().all())

    async def get_co_member_ids(self, user_id: str) -> List[str]:
        """Distinct users sharing at least one conversation with user_id (excluding them)."""
        member_of = (
            select(ConversationMember.conversation_id)
            .where(ConversationMember.user_id == user_id)
        )
        result = await self.db.execute(
            select(ConversationMember.user_id)
            .where(
                ConversationMember.conversation_id.in_(member_of),
                ConversationMember.user_id != user_id
            )
            .distinct()
        )
        return list(result.scalars().all())

    async def update_last_read(
        self, conversation_id: str, user_id: str, read_at: datetime
    ) -> bool:
        """
        Set a member's last_read_at.

        Returns:
            False if the user is not a member
        """
        member = await self.get_member(conversation_id, user_id)
        if not member:
            return False
        member.last_read_at = read_at
        await self.db.flush()
        return True

    async def get_unread_count(
        self, conversation_id: str, last_read_at: Optional[datetime]
    ) -> int:
        """
        Count messages newer than last_read_at.

        Every message counts, the viewer's own and deleted ones included;
        a member who never read the conversation has all of it unread.

        Args:
            conversation_id: Conversation ID
            last_read_at: Member's read marker (None = never read)

        Returns:
            Number of unread messages
        """
        query = select(func.count()).select_from(Message).where(
            Message.conversation_id == conversation_id
        )
        if last_read_at is not None:
            query = query.where(Message.created_at > last_read_at)

        result = await self.db.execute(query)
        return result.scalar() or 0
