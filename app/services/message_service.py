"""
Message service: the Message Store.

Handles message history, sending, editing and soft deletion. Every read and
write is scoped to conversation members.
"""
import logging
from collections import OrderedDict
from typing import Optional, List, Dict, Any, Iterable

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.cache import cache, typing_key
from app.core.exceptions import Forbidden, NotFound, ValidationFailed
from app.core.subscriptions import (
    Change,
    ENTITY_MESSAGE,
    ENTITY_TYPING,
    Notifier,
    publish_safely,
)
from app.core.websocket import connection_manager
from app.models.conversation import ConversationMember
from app.models.message import Message, MessageReaction, DELETED_PLACEHOLDER
from app.repositories.conversation_repo import (
    ConversationRepository,
    ConversationMemberRepository
)
from app.repositories.message_repo import MessageRepository, MessageReactionRepository
from app.repositories.user_repo import UserRepository
from app.services.conversation_service import ensure_member
from app.utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)


def group_reactions(reactions: Iterable[MessageReaction]) -> List[Dict[str, Any]]:
    """
    Tally reactions by emoji.

    Emoji appear in the order they were first used on the message.

    Returns:
        [{emoji, count, user_ids}]
    """
    tally: "OrderedDict[str, List[str]]" = OrderedDict()
    for reaction in reactions:
        tally.setdefault(reaction.emoji, []).append(reaction.user_id)
    return [
        {"emoji": emoji, "count": len(user_ids), "user_ids": user_ids}
        for emoji, user_ids in tally.items()
    ]


def reply_preview(message: Optional[Message]) -> Optional[Dict[str, Any]]:
    if message is None:
        return None
    return {
        "message_id": message.id,
        "author_name": message.author_name,
        "body": message.display_body,
        "deleted": message.deleted,
    }


def message_view(
    message: Message,
    reactions: Iterable[MessageReaction] = (),
    replied_to: Optional[Message] = None,
) -> Dict[str, Any]:
    """Viewer-facing representation of a message; deleted bodies are masked."""
    return {
        "id": message.id,
        "conversation_id": message.conversation_id,
        "author_id": message.author_id,
        "author_name": message.author_name,
        "body": message.display_body,
        "created_at": message.created_at,
        "updated_at": message.updated_at,
        "edited": message.edited,
        "deleted": message.deleted,
        "reply_to_id": message.reply_to_id,
        "replied_to": reply_preview(replied_to),
        "reactions": group_reactions(reactions),
    }


class MessageService:
    """Service for message operations with business logic."""

    def __init__(self, db: AsyncSession, notifier: Optional[Notifier] = None):
        """
        Initialize message service.

        Args:
            db: Database session
            notifier: Live query notifier (defaults to the Socket.IO manager)
        """
        self.db = db
        self.message_repo = MessageRepository(db)
        self.reaction_repo = MessageReactionRepository(db)
        self.conversation_repo = ConversationRepository(db)
        self.member_repo = ConversationMemberRepository(db)
        self.user_repo = UserRepository(db)
        self.notifier = notifier or connection_manager

    async def _build_views(self, messages: List[Message]) -> List[Dict[str, Any]]:
        """
        Attach reactions and reply previews to a batch of messages.

        Both lookups run in the caller's session so the page is one
        consistent snapshot.
        """
        message_ids = [m.id for m in messages]
        reactions_by_message: Dict[str, List[MessageReaction]] = {}
        for reaction in await self.reaction_repo.get_reactions_for_messages(message_ids):
            reactions_by_message.setdefault(reaction.message_id, []).append(reaction)

        reply_ids = {m.reply_to_id for m in messages if m.reply_to_id}
        replies = await self.message_repo.get_many(list(reply_ids)) if reply_ids else {}

        return [
            message_view(
                m,
                reactions_by_message.get(m.id, ()),
                replies.get(m.reply_to_id) if m.reply_to_id else None,
            )
            for m in messages
        ]

    @staticmethod
    def _read_by(members: List[ConversationMember], viewer_id: str) -> List[Dict[str, Any]]:
        """
        Read markers of every member other than the viewer.

        A message is read by a peer when peer.last_read_at >= message.created_at;
        the client derives the receipt from these markers.
        """
        return [
            {
                "user_id": m.user_id,
                "name": m.user.name if m.user else None,
                "last_read_at": m.last_read_at,
            }
            for m in members
            if m.user_id != viewer_id
        ]

    async def _get_own_message(self, caller_id: str, message_id: str) -> Message:
        message = await self.message_repo.get(message_id)
        if not message:
            raise NotFound("Message not found")
        if message.author_id != caller_id:
            raise Forbidden("You can only modify your own messages")
        return message

    async def list_messages(
        self,
        viewer_id: str,
        conversation_id: str,
        limit: Optional[int] = None,
        before: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        One page of a conversation's history.

        Args:
            viewer_id: Viewing user (must be a member)
            conversation_id: Conversation ID
            limit: Page size (defaults to MESSAGE_PAGE_SIZE, capped at MAX_MESSAGE_PAGE_SIZE)
            before: Cursor from a previous page (message ID)

        Returns:
            {messages, read_by, next_cursor, has_more}; messages oldest first

        Raises:
            NotFound: If the conversation does not exist
            Forbidden: If the viewer is not a member
        """
        await ensure_member(self.db, conversation_id, viewer_id)

        if limit is None:
            limit = settings.message_page_size
        limit = max(1, min(limit, settings.max_message_page_size))

        messages, next_cursor, has_more = await self.message_repo.get_conversation_messages(
            conversation_id=conversation_id,
            limit=limit,
            before=before
        )
        members = await self.member_repo.get_members(conversation_id)

        return {
            "messages": await self._build_views(messages),
            "read_by": self._read_by(members, viewer_id),
            "next_cursor": next_cursor,
            "has_more": has_more,
        }

    async def get_message(self, viewer_id: str, message_id: str) -> Dict[str, Any]:
        """
        Single message view.

        Raises:
            NotFound: If the message does not exist
            Forbidden: If the viewer is not a member of its conversation
        """
        message = await self.message_repo.get(message_id)
        if not message:
            raise NotFound("Message not found")
        await ensure_member(self.db, message.conversation_id, viewer_id)
        return (await self._build_views([message]))[0]

    async def send_message(
        self,
        author_id: str,
        conversation_id: str,
        body: str,
        reply_to_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Append a message to a conversation.

        The author's current name is copied onto the message, so renaming a
        user later leaves their old messages as they were.

        Args:
            author_id: Sending user
            conversation_id: Target conversation
            body: Message text
            reply_to_id: Optional message being replied to

        Returns:
            Created message view

        Raises:
            NotFound: If the author, conversation or reply target does not exist
            Forbidden: If the author is not a member
            ValidationFailed: If the body is blank or the reply target is in another conversation
        """
        author = await self.user_repo.get(author_id)
        if not author:
            raise NotFound("User not found")

        await ensure_member(self.db, conversation_id, author_id)

        body = (body or "").strip()
        if not body:
            raise ValidationFailed("Message body cannot be empty")

        replied_to = None
        if reply_to_id:
            replied_to = await self.message_repo.get(reply_to_id)
            if not replied_to:
                raise NotFound("Replied-to message not found")
            if replied_to.conversation_id != conversation_id:
                raise ValidationFailed("Cannot reply to a message from another conversation")

        message = await self.message_repo.create(
            conversation_id=conversation_id,
            author_id=author_id,
            author_name=author.name,
            body=body,
            reply_to_id=reply_to_id,
        )

        conversation = await self.conversation_repo.get(conversation_id)
        conversation.last_message_id = message.id
        await self.db.commit()

        logger.info(f"[MESSAGE_SERVICE] Message {message.id} sent to {conversation_id} by {author_id}")

        # Sending ends the author's typing indicator
        await cache.hdel(typing_key(conversation_id), author_id)

        member_ids = await self.member_repo.get_member_ids(conversation_id)
        await publish_safely(
            self.notifier,
            [
                Change(ENTITY_MESSAGE, message.id, conversation_id=conversation_id),
                Change(ENTITY_TYPING, author_id, conversation_id=conversation_id),
            ],
            member_ids
        )

        return message_view(message, (), replied_to)

    async def edit_message(self, caller_id: str, message_id: str, body: str) -> Dict[str, Any]:
        """
        Replace a message's body.

        Raises:
            NotFound: If the message does not exist
            Forbidden: If the caller is not the author
            ValidationFailed: If the body is blank or the message was deleted
        """
        message = await self._get_own_message(caller_id, message_id)

        if message.deleted:
            raise ValidationFailed("Cannot edit a deleted message")

        body = (body or "").strip()
        if not body:
            raise ValidationFailed("Message body cannot be empty")

        message.body = body
        message.edited = True
        message.updated_at = utc_now()
        await self.db.commit()

        logger.info(f"[MESSAGE_SERVICE] Message {message_id} edited by {caller_id}")

        member_ids = await self.member_repo.get_member_ids(message.conversation_id)
        await publish_safely(
            self.notifier,
            [Change(ENTITY_MESSAGE, message.id, conversation_id=message.conversation_id)],
            member_ids
        )
        return (await self._build_views([message]))[0]

    async def delete_message(self, caller_id: str, message_id: str) -> Dict[str, Any]:
        """
        Soft-delete a message.

        The body is kept in storage but masked to every viewer. Deleting an
        already-deleted message changes nothing.

        Raises:
            NotFound: If the message does not exist
            Forbidden: If the caller is not the author
        """
        message = await self._get_own_message(caller_id, message_id)

        if not message.deleted:
            await self.message_repo.soft_delete(message)
            await self.db.commit()
            logger.info(f"[MESSAGE_SERVICE] Message {message_id} deleted by {caller_id}")

            member_ids = await self.member_repo.get_member_ids(message.conversation_id)
            await publish_safely(
                self.notifier,
                [Change(ENTITY_MESSAGE, message.id, conversation_id=message.conversation_id)],
                member_ids
            )

        return {"id": message.id, "deleted": True, "body": DELETED_PLACEHOLDER}
