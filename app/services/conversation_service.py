"""
Conversation service: the Conversation Store.

Owns conversations and memberships: 1:1 dedup, group metadata, per-viewer
conversation lists with unread counts, and read markers.
"""
import logging
from datetime import datetime
from typing import List, Optional, Dict, Any, Iterable

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import Forbidden, NotFound, Partial, ValidationFailed
from app.core.subscriptions import (
    Change,
    ENTITY_CONVERSATION,
    ENTITY_MEMBERSHIP,
    Notifier,
    publish_safely,
)
from app.core.websocket import connection_manager
from app.models.conversation import Conversation, ConversationMember
from app.models.message import Message
from app.repositories.conversation_repo import (
    ConversationRepository,
    ConversationMemberRepository
)
from app.repositories.user_repo import UserRepository
from app.services.presence_service import PresenceService
from app.services.user_service import user_summary
from app.utils.datetime_utils import ensure_utc, utc_now

logger = logging.getLogger(__name__)


async def ensure_member(
    db: AsyncSession,
    conversation_id: str,
    user_id: str
) -> ConversationMember:
    """
    Verify user is a member of the conversation.

    Args:
        db: Database session
        conversation_id: Conversation ID
        user_id: User ID

    Returns:
        The membership row

    Raises:
        NotFound: If the conversation does not exist
        Forbidden: If the user is not a member
    """
    member = await ConversationMemberRepository(db).get_member(conversation_id, user_id)
    if member is not None:
        return member

    if not await ConversationRepository(db).exists(conversation_id):
        raise NotFound("Conversation not found")
    raise Forbidden("You are not a member of this conversation")


def last_message_summary(message: Optional[Message]) -> Optional[Dict[str, Any]]:
    if message is None:
        return None
    return {
        "id": message.id,
        "body": message.display_body,
        "author_id": message.author_id,
        "author_name": message.author_name,
        "created_at": message.created_at,
        "deleted": message.deleted,
        "edited": message.edited,
    }


class ConversationService:
    """Service for conversation operations with business logic."""

    def __init__(self, db: AsyncSession, notifier: Optional[Notifier] = None):
        """
        Initialize conversation service.

        Args:
            db: Database session
            notifier: Live query notifier (defaults to the Socket.IO manager)
        """
        self.db = db
        self.conversation_repo = ConversationRepository(db)
        self.member_repo = ConversationMemberRepository(db)
        self.user_repo = UserRepository(db)
        self.notifier = notifier or connection_manager

    async def _build_view(
        self,
        conversation: Conversation,
        viewer_id: str,
        last_message: Optional[Message],
        online: Dict[str, bool]
    ) -> Dict[str, Any]:
        """
        Build the per-viewer view of a conversation.

        Args:
            conversation: Conversation with members loaded
            viewer_id: Viewing user
            last_message: Conversation's last message, if any
            online: user_id -> online status under the presence policy

        Returns:
            Conversation view dict
        """
        viewer_member = None
        others = []
        for member in conversation.members:
            if member.user_id == viewer_id:
                viewer_member = member
            else:
                others.append(member)

        others.sort(key=lambda m: (ensure_utc(m.joined_at), m.user_id))
        member_profiles = []
        for member in others:
            profile = user_summary(member.user)
            if profile is not None:
                profile["is_online"] = online.get(member.user_id, False)
                member_profiles.append(profile)
        last_read_at = viewer_member.last_read_at if viewer_member else None

        return {
            "id": conversation.id,
            "name": conversation.name,
            "is_group": conversation.is_group,
            "created_by": conversation.created_by,
            "created_at": conversation.created_at,
            "last_message_id": conversation.last_message_id,
            "other_member": None if conversation.is_group or not member_profiles else member_profiles[0],
            "member_profiles": member_profiles,
            "member_count": len(conversation.members),
            "last_message": last_message_summary(last_message),
            "last_read_at": last_read_at,
            "unread_count": await self.member_repo.get_unread_count(conversation.id, last_read_at),
        }

    async def _online_states(self, conversations: List[Conversation]) -> Dict[str, bool]:
        users = {m.user.id: m.user for c in conversations for m in c.members if m.user}
        return await PresenceService(self.db, notifier=self.notifier).online_states(users.values())

    @staticmethod
    def _activity_time(view: Dict[str, Any]) -> datetime:
        last_message = view["last_message"]
        return ensure_utc(last_message["created_at"] if last_message else view["created_at"])

    async def create_conversation(
        self,
        creator_id: str,
        participant_ids: Iterable[str],
        is_group: bool,
        name: Optional[str] = None
    ) -> str:
        """
        Create a conversation, or return the existing 1:1 thread.

        The creator is always a member, whether or not they appear in
        participant_ids. A non-group request for a pair that already shares a
        non-group conversation returns that conversation's id instead of
        creating a second one.

        Args:
            creator_id: Creator user ID
            participant_ids: Other participants
            is_group: Group flag
            name: Optional group name

        Returns:
            Conversation ID

        Raises:
            NotFound: If the creator or a participant does not exist
            ValidationFailed: If a non-group request does not name exactly one other user
            Partial: If inserting the conversation and its members failed
        """
        others = sorted({pid for pid in participant_ids if pid and pid != creator_id})

        if not is_group and len(others) != 1:
            raise ValidationFailed("A 1:1 conversation needs exactly one other participant")

        users = await self.user_repo.get_many([creator_id, *others])
        if creator_id not in users:
            raise NotFound("User not found")
        missing = [pid for pid in others if pid not in users]
        if missing:
            raise NotFound(f"Unknown participant(s): {', '.join(missing)}")

        if not is_group:
            existing = await self.conversation_repo.find_direct_conversation(creator_id, others[0])
            if existing:
                logger.info(f"[CONVERSATION_SERVICE] Reusing 1:1 conversation {existing.id}")
                return existing.id

        try:
            conversation = await self.conversation_repo.create_with_members(
                creator_id=creator_id,
                member_ids=others,
                is_group=is_group,
                name=name
            )
            conversation_id = conversation.id
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            if is_group:
                logger.error("[CONVERSATION_SERVICE] Group create failed, rolled back", exc_info=True)
                raise Partial("Could not create conversation")
            # Lost the race against a concurrent create for the same pair
            existing = await self.conversation_repo.find_direct_conversation(creator_id, others[0])
            if existing is None:
                raise Partial("Could not create conversation")
            logger.info(f"[CONVERSATION_SERVICE] Reusing concurrently created 1:1 conversation {existing.id}")
            return existing.id
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"[CONVERSATION_SERVICE] Create failed, rolled back: {e}", exc_info=True)
            raise Partial("Could not create conversation")

        logger.info(
            f"[CONVERSATION_SERVICE] Created {'group' if is_group else '1:1'} conversation "
            f"{conversation_id} with {len(others) + 1} member(s)"
        )
        await publish_safely(
            self.notifier,
            [Change(ENTITY_CONVERSATION, conversation_id, conversation_id=conversation_id)],
            [creator_id, *others]
        )
        return conversation_id

    async def list_conversations(self, viewer_id: str) -> List[Dict[str, Any]]:
        """
        Every conversation the viewer belongs to, most recently active first.

        Activity is the last message's time, or the conversation's creation
        time when it has no messages yet.

        Args:
            viewer_id: Viewing user

        Returns:
            Conversation views
        """
        conversations = await self.conversation_repo.get_user_conversations(viewer_id)
        last_messages = await self.conversation_repo.get_last_messages(conversations)
        online = await self._online_states(conversations)

        views = [
            await self._build_view(c, viewer_id, last_messages.get(c.last_message_id), online)
            for c in conversations
        ]
        views.sort(key=lambda v: (self._activity_time(v), v["id"]), reverse=True)
        return views

    async def get_conversation(self, viewer_id: str, conversation_id: str) -> Dict[str, Any]:
        """
        Single conversation view.

        Raises:
            NotFound: If the conversation does not exist
            Forbidden: If the viewer is not a member
        """
        await ensure_member(self.db, conversation_id, viewer_id)
        conversation = await self.conversation_repo.get_with_members(conversation_id)
        last_message = await self.conversation_repo.get_last_message(conversation)
        online = await self._online_states([conversation])
        return await self._build_view(conversation, viewer_id, last_message, online)

    async def mark_read(self, viewer_id: str, conversation_id: str) -> bool:
        """
        Set the viewer's read marker to now.

        Silently does nothing for non-members; repeating is harmless.

        Returns:
            True if a marker was updated
        """
        updated = await self.member_repo.update_last_read(conversation_id, viewer_id, utc_now())
        if not updated:
            return False

        await self.db.commit()
        await publish_safely(
            self.notifier,
            [Change(ENTITY_MEMBERSHIP, viewer_id, conversation_id=conversation_id, user_ids=(viewer_id,))]
        )
        return True

    async def update_name(self, caller_id: str, conversation_id: str, name: str) -> Dict[str, Any]:
        """
        Rename a conversation.

        Any member may rename; there is no group/non-group restriction.

        Raises:
            NotFound: If the conversation does not exist
            Forbidden: If the caller is not a member
            ValidationFailed: If the name is blank
        """
        await ensure_member(self.db, conversation_id, caller_id)

        name = (name or "").strip()
        if not name:
            raise ValidationFailed("Conversation name cannot be empty")

        conversation = await self.conversation_repo.get_with_members(conversation_id)
        conversation.name = name
        await self.db.commit()

        member_ids = [m.user_id for m in conversation.members]
        await publish_safely(
            self.notifier,
            [Change(ENTITY_CONVERSATION, conversation_id, conversation_id=conversation_id)],
            member_ids
        )
        return await self.get_conversation(caller_id, conversation_id)
