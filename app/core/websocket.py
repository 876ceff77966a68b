"""
WebSocket manager for live queries.

Clients connect over Socket.IO, authenticate with their identity token and
subscribe to live query keys ("conversations:<user id>",
"messages:<conversation id>", ...). When a service publishes a committed
change, the manager recomputes every affected query for each subscriber and
emits the fresh result as a 'query_result' event.
"""
import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional, Set

import socketio
from fastapi.encoders import jsonable_encoder

from app.config import settings
from app.core.subscriptions import (
    CONVERSATIONS,
    MESSAGES,
    PRESENCE,
    TYPING,
    Change,
    QueryKey,
    SubscriptionRegistry,
    affected_keys,
)

logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    Socket.IO connection manager and Notifier implementation.

    Tracks which user owns each socket session, which live queries each
    session subscribed to, and pushes recomputed results after changes.
    """

    def __init__(self):
        """Initialize the connection manager."""
        cors_origins = settings.get_allowed_origins_list() or "*"

        self.sio = socketio.AsyncServer(
            async_mode='asgi',
            cors_allowed_origins=cors_origins,
            logger=False,
            engineio_logger=False,
            ping_timeout=settings.ws_heartbeat_interval,
            ping_interval=max(settings.ws_heartbeat_interval // 2, 1),
        )

        # Track connections: {sid: user_id}
        self.connections: Dict[str, str] = {}

        # Track user sessions: {user_id: set of sids}
        self.user_sessions: Dict[str, Set[str]] = {}

        self.registry = SubscriptionRegistry()

        # Strong refs to in-flight fan-out tasks
        self._fan_out_tasks: Set[asyncio.Task] = set()

        # Replaced in tests
        self.session_factory = None

        self._setup_handlers()

    def _get_session_factory(self):
        if self.session_factory is None:
            from app.core.database import AsyncSessionLocal
            self.session_factory = AsyncSessionLocal
        return self.session_factory

    def _setup_handlers(self):
        """Setup Socket.IO event handlers."""

        @self.sio.event
        async def connect(sid, environ, auth):
            """
            Handle client connection.

            Client provides its identity token in the handshake:
            io(url, {auth: {token}}).
            """
            token = auth.get('token') if auth else None
            if not token:
                logger.warning(f"Connection rejected - no token: {sid}")
                return False

            try:
                user_id = await self.authenticate(token)
            except Exception as e:
                logger.warning(f"Connection rejected for {sid}: {type(e).__name__}: {e}")
                return False

            await self.register_session(sid, user_id)
            logger.info(f"Client connected: {sid} (user: {user_id})")
            return True

        @self.sio.event
        async def disconnect(sid, *args):
            """Handle client disconnection."""
            await self.unregister_session(sid)

        @self.sio.event
        async def subscribe(sid, data):
            """
            Subscribe to a live query.

            Expected data: {'key': 'messages:<conversation id>'}
            Replies with the current result (ack) and pushes updates later.
            """
            return await self.handle_subscribe(sid, (data or {}).get('key'))

        @self.sio.event
        async def unsubscribe(sid, data):
            """Expected data: {'key': '<query key>'}"""
            try:
                key = QueryKey.parse((data or {}).get('key'))
            except ValueError as e:
                return {'ok': False, 'error': str(e)}
            self.registry.unsubscribe(sid, key)
            return {'ok': True}

        @self.sio.event
        async def heartbeat(sid, data=None):
            """Presence heartbeat over the socket."""
            user_id = self.connections.get(sid)
            if user_id:
                await self._presence_call('heartbeat', user_id)

        @self.sio.event
        async def typing_start(sid, data):
            """Expected data: {'conversation_id': '<id>'}"""
            await self._typing_call(sid, data, 'set_typing')

        @self.sio.event
        async def typing_stop(sid, data):
            """Expected data: {'conversation_id': '<id>'}"""
            await self._typing_call(sid, data, 'clear_typing')

    async def authenticate(self, token: str) -> str:
        """
        Verify an identity token and upsert the user.

        Returns:
            Local user ID
        """
        from app.core.security import decode_identity_token, identity_from_claims
        from app.services.user_service import UserService

        identity = identity_from_claims(decode_identity_token(token))
        async with self._get_session_factory()() as db:
            user = await UserService(db, notifier=self).upsert_identity(identity)
            return user.id

    async def register_session(self, sid: str, user_id: str) -> None:
        self.connections[sid] = user_id
        first_session = user_id not in self.user_sessions
        self.user_sessions.setdefault(user_id, set()).add(sid)
        if first_session:
            await self._presence_call('heartbeat', user_id)

    async def unregister_session(self, sid: str) -> None:
        """Forget a socket session; the user's last session going away marks them offline."""
        user_id = self.connections.pop(sid, None)
        self.registry.unsubscribe_all(sid)

        if not user_id:
            return

        sessions = self.user_sessions.get(user_id)
        if sessions is not None:
            sessions.discard(sid)
            if not sessions:
                del self.user_sessions[user_id]
                await self._presence_call('disconnect', user_id)

        logger.info(f"Client disconnected: {sid} (user: {user_id})")

    async def handle_subscribe(self, sid: str, raw_key: Optional[str]) -> Dict[str, Any]:
        """
        Validate access, register the subscription and return the current result.

        Conversation lists are private to their owner; message and typing
        lists require membership; presence is visible to any signed-in user.
        """
        user_id = self.connections.get(sid)
        if not user_id:
            return {'ok': False, 'error': 'Not authenticated'}

        try:
            key = QueryKey.parse(raw_key)
        except ValueError as e:
            return {'ok': False, 'error': str(e)}

        if key.name == CONVERSATIONS and key.param != user_id:
            return {'ok': False, 'error': 'Forbidden'}

        try:
            data = await self.compute(key, user_id)
        except Exception as e:
            # Forbidden / NotFound from the services surface to the client
            detail = getattr(e, 'detail', None) or str(e)
            return {'ok': False, 'error': detail}

        self.registry.subscribe(sid, key)
        return {'ok': True, 'key': str(key), 'data': data}

    async def compute(self, key: QueryKey, viewer_id: str) -> Any:
        """Run a live query for one viewer in a fresh session."""
        from app.services.conversation_service import ConversationService
        from app.services.message_service import MessageService
        from app.services.presence_service import PresenceService
        from app.services.typing_service import TypingService

        async with self._get_session_factory()() as db:
            if key.name == CONVERSATIONS:
                result = await ConversationService(db, notifier=self).list_conversations(viewer_id)
            elif key.name == MESSAGES:
                result = await MessageService(db, notifier=self).list_messages(viewer_id, key.param)
            elif key.name == TYPING:
                result = await TypingService(db, notifier=self).list_typing(
                    viewer_id, key.param, exclude_user_id=viewer_id
                )
            elif key.name == PRESENCE:
                result = await PresenceService(db, notifier=self).get_presence(key.param)
            else:
                raise ValueError(f"Unknown live query: {key.name}")

        return jsonable_encoder(result)

    async def publish(self, changes: List[Change], member_ids: Iterable[str] = ()) -> asyncio.Task:
        """
        Schedule the fan-out for changes and return without waiting for it.

        The caller's mutation has already committed; recomputing live
        queries happens in a background task so request latency does not
        grow with the number of subscribers.

        Returns:
            The fan-out task
        """
        task = self.sio.start_background_task(self._fan_out, list(changes), list(member_ids))
        self._fan_out_tasks.add(task)
        task.add_done_callback(self._fan_out_tasks.discard)
        return task

    async def _fan_out(self, changes: List[Change], members: List[str]) -> None:
        try:
            await self._push_affected(changes, members)
        except Exception:
            logger.error(
                f"Live query fan-out failed for {[c.entity for c in changes]} change(s)",
                exc_info=True
            )

    async def _push_affected(self, changes: List[Change], members: List[str]) -> None:
        """
        Recompute and push every live query affected by changes.

        Each subscriber gets its own result because several views (read
        receipts, unread counts, typing) depend on who is looking.
        """
        keys: Set[QueryKey] = set()
        for change in changes:
            keys |= affected_keys(change, members)

        for key in keys:
            for sid in self.registry.subscribers(key):
                viewer_id = self.connections.get(sid)
                if not viewer_id:
                    self.registry.unsubscribe_all(sid)
                    continue
                try:
                    data = await self.compute(key, viewer_id)
                except Exception as e:
                    # Typically membership lost or the row vanished; stop pushing
                    logger.warning(f"Dropping subscription {key} for {sid}: {type(e).__name__}: {e}")
                    self.registry.unsubscribe(sid, key)
                    continue
                await self.sio.emit('query_result', {'key': str(key), 'data': data}, to=sid)

    async def _presence_call(self, method: str, user_id: str) -> None:
        from app.services.presence_service import PresenceService

        try:
            async with self._get_session_factory()() as db:
                await getattr(PresenceService(db, notifier=self), method)(user_id)
        except Exception:
            logger.error(f"Presence {method} failed for {user_id}", exc_info=True)

    async def _typing_call(self, sid: str, data: Optional[dict], method: str) -> None:
        from app.services.typing_service import TypingService

        user_id = self.connections.get(sid)
        conversation_id = (data or {}).get('conversation_id')
        if not user_id or not conversation_id:
            return

        try:
            async with self._get_session_factory()() as db:
                await getattr(TypingService(db, notifier=self), method)(user_id, conversation_id)
        except Exception as e:
            logger.warning(f"Error in {method} for {sid}: {type(e).__name__}: {e}")

    def get_asgi_app(self, fastapi_app):
        """
        Wrap the FastAPI app so Socket.IO serves /socket.io/* and FastAPI
        everything else.
        """
        return socketio.ASGIApp(self.sio, fastapi_app)


# Global connection manager instance
connection_manager = ConnectionManager()
