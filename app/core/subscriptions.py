"""
Live query subscriptions.

Every read that a client keeps open (conversation list, message list, typing
list, a user's presence) is identified by a QueryKey. Mutations describe what
they touched as a Change; the registry maps a change to the QueryKeys whose
results could differ, and a Notifier recomputes and pushes those results to
the subscribers. Delivery is fire-and-forget: it happens after the mutation
commits and never fails it.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Protocol, Set, Tuple

logger = logging.getLogger(__name__)


# Live query names
CONVERSATIONS = "conversations"  # param: viewer user id
MESSAGES = "messages"            # param: conversation id
TYPING = "typing"                # param: conversation id
PRESENCE = "presence"            # param: user id

QUERY_NAMES = (CONVERSATIONS, MESSAGES, TYPING, PRESENCE)

# Entity kinds carried by a Change
ENTITY_USER = "user"
ENTITY_CONVERSATION = "conversation"
ENTITY_MEMBERSHIP = "membership"
ENTITY_MESSAGE = "message"
ENTITY_REACTION = "reaction"
ENTITY_TYPING = "typing"
ENTITY_PRESENCE = "presence"


@dataclass(frozen=True)
class QueryKey:
    """Query shape + parameter, e.g. QueryKey("messages", "<conversation id>")."""

    name: str
    param: str

    def __str__(self) -> str:
        return f"{self.name}:{self.param}"

    @classmethod
    def parse(cls, value: str) -> "QueryKey":
        """
        Parse "name:param".

        Raises:
            ValueError: On an unknown query name or missing parameter
        """
        name, sep, param = (value or "").partition(":")
        if not sep or not param or name not in QUERY_NAMES:
            raise ValueError(f"Invalid live query key: {value!r}")
        return cls(name, param)


@dataclass(frozen=True)
class Change:
    """
    Description of a committed mutation.

    Args:
        entity: Entity kind (ENTITY_* constant)
        entity_id: ID of the touched row
        conversation_id: Conversation the row belongs to, when any
        user_ids: Users whose own views changed (e.g. a renamed user)
    """

    entity: str
    entity_id: str
    conversation_id: Optional[str] = None
    user_ids: Tuple[str, ...] = field(default_factory=tuple)


def affected_keys(change: Change, member_ids: Iterable[str] = ()) -> Set[QueryKey]:
    """
    Live queries whose result may differ after change.

    Args:
        change: The committed change
        member_ids: Members of change.conversation_id (needed for
            conversation-list invalidation)

    Returns:
        Set of QueryKeys to recompute
    """
    keys: Set[QueryKey] = set()
    members = set(member_ids)

    if change.entity in (ENTITY_MESSAGE, ENTITY_REACTION):
        keys.add(QueryKey(MESSAGES, change.conversation_id))
        if change.entity == ENTITY_MESSAGE:
            # Last message / unread count
            keys.update(QueryKey(CONVERSATIONS, m) for m in members)

    elif change.entity == ENTITY_MEMBERSHIP:
        # Read markers feed both unread counts and read receipts
        keys.add(QueryKey(MESSAGES, change.conversation_id))
        keys.update(QueryKey(CONVERSATIONS, u) for u in change.user_ids)

    elif change.entity == ENTITY_CONVERSATION:
        keys.update(QueryKey(CONVERSATIONS, m) for m in members)

    elif change.entity == ENTITY_TYPING:
        keys.add(QueryKey(TYPING, change.conversation_id))

    elif change.entity == ENTITY_PRESENCE:
        keys.add(QueryKey(PRESENCE, change.entity_id))

    elif change.entity == ENTITY_USER:
        # Profile changes show up in other users' conversation lists
        keys.update(QueryKey(CONVERSATIONS, u) for u in change.user_ids)
        keys.add(QueryKey(PRESENCE, change.entity_id))

    keys.discard(QueryKey(MESSAGES, None))
    keys.discard(QueryKey(TYPING, None))
    return keys


class SubscriptionRegistry:
    """
    In-process map of QueryKey -> subscriber ids (socket session ids).

    One registry per worker; subscribers are connections on that worker.
    """

    def __init__(self):
        self._subscribers: Dict[QueryKey, Set[str]] = {}
        self._keys_by_subscriber: Dict[str, Set[QueryKey]] = {}

    def subscribe(self, subscriber_id: str, key: QueryKey) -> None:
        self._subscribers.setdefault(key, set()).add(subscriber_id)
        self._keys_by_subscriber.setdefault(subscriber_id, set()).add(key)

    def unsubscribe(self, subscriber_id: str, key: QueryKey) -> None:
        sids = self._subscribers.get(key)
        if sids is not None:
            sids.discard(subscriber_id)
            if not sids:
                del self._subscribers[key]

        keys = self._keys_by_subscriber.get(subscriber_id)
        if keys is not None:
            keys.discard(key)
            if not keys:
                del self._keys_by_subscriber[subscriber_id]

    def unsubscribe_all(self, subscriber_id: str) -> List[QueryKey]:
        """Drop every subscription of a subscriber (on disconnect)."""
        keys = list(self._keys_by_subscriber.get(subscriber_id, ()))
        for key in keys:
            self.unsubscribe(subscriber_id, key)
        return keys

    def subscribers(self, key: QueryKey) -> Set[str]:
        return set(self._subscribers.get(key, ()))

    def keys_for(self, subscriber_id: str) -> Set[QueryKey]:
        return set(self._keys_by_subscriber.get(subscriber_id, ()))

    def active_keys(self) -> Set[QueryKey]:
        return set(self._subscribers)

    def __len__(self) -> int:
        return len(self._subscribers)


class Notifier(Protocol):
    """Push interface the services publish committed changes to."""

    async def publish(self, changes: List[Change], member_ids: Iterable[str] = ()) -> None:
        ...


class NullNotifier:
    """Notifier that drops everything (scripts, tests)."""

    async def publish(self, changes: List[Change], member_ids: Iterable[str] = ()) -> None:
        logger.debug(f"Dropping {len(changes)} change(s) - no notifier configured")


async def publish_safely(notifier: Notifier, changes: List[Change], member_ids: Iterable[str] = ()) -> None:
    """
    Publish without letting a delivery failure reach the caller.

    The mutation has already committed; a failed push only means subscribers
    see the change on their next read.
    """
    try:
        await notifier.publish(changes, member_ids)
    except Exception:
        logger.error(
            f"Failed to publish {[c.entity for c in changes]} change(s)",
            exc_info=True
        )
