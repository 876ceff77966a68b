"""
Presence service: the Presence Tracker.

Three policies, picked with PRESENCE_POLICY:

- window: a user is online while their last heartbeat is younger than
  ONLINE_WINDOW_SECONDS. Crashed clients simply age out.
- flag: heartbeat sets users.is_online, disconnect clears it. Accurate on
  graceful exits but stays "online" forever when the disconnect never comes.
- hybrid (default): the flag must be set AND a heartbeat must be recent, so
  a missing disconnect decays to offline after the window.

Heartbeat timestamps live in the ephemeral store (app.core.cache), the flag
and last_seen on the user row.
"""
import logging
import time
from typing import Optional, List, Dict, Any, Iterable

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.cache import PRESENCE_KEY, get_timestamp, get_timestamps, set_timestamp
from app.core.exceptions import NotFound
from app.core.subscriptions import (
    Change,
    ENTITY_PRESENCE,
    ENTITY_USER,
    Notifier,
    publish_safely,
)
from app.core.websocket import connection_manager
from app.models.user import User
from app.repositories.conversation_repo import ConversationMemberRepository
from app.repositories.user_repo import UserRepository
from app.utils.datetime_utils import from_timestamp

logger = logging.getLogger(__name__)

WINDOW = "window"
FLAG = "flag"
HYBRID = "hybrid"


class PresenceService:
    """Service for user online status."""

    def __init__(
        self,
        db: AsyncSession,
        notifier: Optional[Notifier] = None,
        policy: Optional[str] = None,
        window: Optional[int] = None,
        clock=time.time
    ):
        """
        Initialize presence service.

        Args:
            db: Database session
            notifier: Live query notifier (defaults to the Socket.IO manager)
            policy: window | flag | hybrid (defaults to PRESENCE_POLICY)
            window: Online window in seconds (defaults to ONLINE_WINDOW_SECONDS)
            clock: Unix time source
        """
        self.db = db
        self.user_repo = UserRepository(db)
        self.member_repo = ConversationMemberRepository(db)
        self.notifier = notifier or connection_manager
        self.policy = policy or settings.presence_policy
        self.window = window if window is not None else settings.online_window_seconds
        self.clock = clock

    @property
    def uses_heartbeats(self) -> bool:
        return self.policy in (WINDOW, HYBRID)

    @property
    def uses_flag(self) -> bool:
        return self.policy in (FLAG, HYBRID)

    def _evaluate(self, user: User, heartbeat: Optional[float], now: float) -> bool:
        recent = heartbeat is not None and now - heartbeat < self.window
        if self.policy == WINDOW:
            return recent
        if self.policy == FLAG:
            return bool(user.is_online)
        return bool(user.is_online) and recent

    async def _get_user(self, user_id: str) -> User:
        user = await self.user_repo.get(user_id)
        if not user:
            raise NotFound("User not found")
        return user

    async def _publish_flip(self, user_id: str) -> None:
        co_members = await self.member_repo.get_co_member_ids(user_id)
        await publish_safely(
            self.notifier,
            [
                Change(ENTITY_PRESENCE, user_id),
                Change(ENTITY_USER, user_id, user_ids=tuple(co_members)),
            ]
        )

    async def is_online(self, user_id: str) -> bool:
        """
        Current online status under the configured policy.

        Raises:
            NotFound: If the user does not exist
        """
        user = await self._get_user(user_id)
        heartbeat = await get_timestamp(PRESENCE_KEY, user_id) if self.uses_heartbeats else None
        return self._evaluate(user, heartbeat, self.clock())

    async def heartbeat(self, user_id: str) -> bool:
        """
        Record a liveness signal.

        Subscribers are only notified when the user's online status flips,
        not on every beat.

        Returns:
            Online status after the heartbeat

        Raises:
            NotFound: If the user does not exist
        """
        was_online = await self.is_online(user_id)
        now = self.clock()

        if self.uses_heartbeats:
            await set_timestamp(PRESENCE_KEY, user_id, now)

        user = await self._get_user(user_id)
        user.last_seen = from_timestamp(now)
        if self.uses_flag:
            user.is_online = True
        await self.db.commit()

        online = self._evaluate(user, now if self.uses_heartbeats else None, now)
        if online != was_online:
            logger.info(f"[PRESENCE_SERVICE] User {user_id} is now online")
            await self._publish_flip(user_id)
        return online

    async def disconnect(self, user_id: str) -> None:
        """
        Graceful client teardown.

        Clears the online flag and stamps last_seen. Under the window policy
        only last_seen changes; the heartbeat ages out on its own.

        Raises:
            NotFound: If the user does not exist
        """
        was_online = await self.is_online(user_id)

        user = await self._get_user(user_id)
        user.last_seen = from_timestamp(self.clock())
        if self.uses_flag:
            user.is_online = False
        await self.db.commit()

        if was_online and self.uses_flag:
            logger.info(f"[PRESENCE_SERVICE] User {user_id} went offline")
            await self._publish_flip(user_id)

    async def online_states(self, users: Iterable[User]) -> Dict[str, bool]:
        """Evaluate many users against one heartbeat snapshot."""
        heartbeats = await get_timestamps(PRESENCE_KEY) if self.uses_heartbeats else {}
        now = self.clock()
        return {u.id: self._evaluate(u, heartbeats.get(u.id), now) for u in users}

    async def get_presence(self, user_id: str) -> Dict[str, Any]:
        """
        Presence of one user.

        Returns:
            {user_id, is_online, last_seen}

        Raises:
            NotFound: If the user does not exist
        """
        user = await self._get_user(user_id)
        states = await self.online_states([user])
        return {"user_id": user.id, "is_online": states[user.id], "last_seen": user.last_seen}

    async def list_presence(self, user_ids: List[str]) -> List[Dict[str, Any]]:
        """
        Presence of several users; unknown ids are skipped.

        Returns:
            [{user_id, is_online, last_seen}] in the order requested
        """
        users = await self.user_repo.get_many(user_ids)
        states = await self.online_states(users.values())
        seen = set()
        result = []
        for user_id in user_ids:
            if user_id in users and user_id not in seen:
                seen.add(user_id)
                user = users[user_id]
                result.append({
                    "user_id": user_id,
                    "is_online": states[user_id],
                    "last_seen": user.last_seen,
                })
        return result
