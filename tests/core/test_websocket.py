"""
Tests for the Socket.IO live query manager.

A fresh ConnectionManager per test, reading through the test database.
"""
import pytest

from app.core.cache import get_timestamps, typing_key
from app.core.security import create_identity_token
from app.core.subscriptions import ENTITY_MESSAGE, ENTITY_REACTION, MESSAGES, Change, QueryKey
from app.core.websocket import ConnectionManager
from app.models.user import User
from app.services.message_service import MessageService


@pytest.fixture
def manager(session_factory, mocker):
    manager = ConnectionManager()
    manager.session_factory = session_factory
    mocker.patch.object(manager.sio, "emit", new_callable=mocker.AsyncMock)
    return manager


def connect(manager, sid, user):
    manager.connections[sid] = user.id
    manager.user_sessions.setdefault(user.id, set()).add(sid)


@pytest.mark.asyncio
class TestAuthenticate:
    """Tests for authenticate()."""

    async def test_token_upserts_user(self, manager, db_session):
        token = create_identity_token("dave", {"name": "Dave"})

        user_id = await manager.authenticate(token)

        user = await db_session.get(User, user_id)
        assert user.name == "Dave"
        assert user.token_identifier == "|dave"

    async def test_invalid_token(self, manager):
        with pytest.raises(Exception):
            await manager.authenticate("not-a-token")


@pytest.mark.asyncio
class TestHandleSubscribe:
    """Tests for handle_subscribe()."""

    async def test_requires_connection(self, manager):
        result = await manager.handle_subscribe("unknown-sid", "presence:abc")

        assert result == {"ok": False, "error": "Not authenticated"}

    async def test_rejects_invalid_key(self, manager, alice):
        connect(manager, "sid-a", alice)

        result = await manager.handle_subscribe("sid-a", "calls:abc")

        assert result["ok"] is False
        assert len(manager.registry) == 0

    async def test_conversation_list_is_private(self, manager, alice, bob):
        connect(manager, "sid-a", alice)

        result = await manager.handle_subscribe("sid-a", f"conversations:{bob.id}")

        assert result == {"ok": False, "error": "Forbidden"}

    async def test_non_member_cannot_watch_messages(self, manager, carol, direct_conversation):
        connect(manager, "sid-c", carol)

        result = await manager.handle_subscribe("sid-c", f"messages:{direct_conversation}")

        assert result["ok"] is False
        assert manager.registry.keys_for("sid-c") == set()

    async def test_member_gets_current_result(self, manager, db_session, alice, direct_conversation):
        await MessageService(db_session).send_message(alice.id, direct_conversation, "hello")
        connect(manager, "sid-a", alice)

        result = await manager.handle_subscribe("sid-a", f"messages:{direct_conversation}")

        assert result["ok"] is True
        assert result["key"] == f"messages:{direct_conversation}"
        assert [m["body"] for m in result["data"]["messages"]] == ["hello"]
        assert manager.registry.keys_for("sid-a") == {QueryKey(MESSAGES, direct_conversation)}

    async def test_own_conversation_list(self, manager, alice, direct_conversation):
        connect(manager, "sid-a", alice)

        result = await manager.handle_subscribe("sid-a", f"conversations:{alice.id}")

        assert result["ok"] is True
        assert [c["id"] for c in result["data"]] == [direct_conversation]


@pytest.mark.asyncio
class TestPublish:
    """Tests for publish() fan-out."""

    async def test_pushes_recomputed_result_to_subscribers(self, manager, db_session, alice, bob, direct_conversation):
        connect(manager, "sid-a", alice)
        connect(manager, "sid-b", bob)
        await manager.handle_subscribe("sid-a", f"messages:{direct_conversation}")
        await manager.handle_subscribe("sid-b", f"conversations:{bob.id}")
        sent = await MessageService(db_session).send_message(alice.id, direct_conversation, "new")

        fan_out = await manager.publish(
            [Change(ENTITY_MESSAGE, sent["id"], direct_conversation)],
            [alice.id, bob.id]
        )
        manager.sio.emit.assert_not_awaited()
        await fan_out

        pushed = {call.kwargs["to"]: call.args[1] for call in manager.sio.emit.await_args_list}
        assert set(pushed) == {"sid-a", "sid-b"}
        assert pushed["sid-a"]["key"] == f"messages:{direct_conversation}"
        assert pushed["sid-a"]["data"]["messages"][-1]["body"] == "new"
        assert pushed["sid-b"]["data"][0]["unread_count"] == 1
        assert all(call.args[0] == "query_result" for call in manager.sio.emit.await_args_list)

    async def test_unaffected_subscribers_hear_nothing(self, manager, alice, direct_conversation, group_conversation):
        connect(manager, "sid-a", alice)
        await manager.handle_subscribe("sid-a", f"messages:{group_conversation}")

        await (await manager.publish([Change(ENTITY_REACTION, "m1", direct_conversation)]))

        manager.sio.emit.assert_not_awaited()

    async def test_subscription_dropped_when_access_is_lost(self, manager, carol, direct_conversation):
        connect(manager, "sid-c", carol)
        key = QueryKey(MESSAGES, direct_conversation)
        manager.registry.subscribe("sid-c", key)

        await (await manager.publish([Change(ENTITY_REACTION, "m1", direct_conversation)]))

        manager.sio.emit.assert_not_awaited()
        assert manager.registry.subscribers(key) == set()

    async def test_stale_sessions_are_forgotten(self, manager, direct_conversation):
        manager.registry.subscribe("gone", QueryKey(MESSAGES, direct_conversation))

        await (await manager.publish([Change(ENTITY_REACTION, "m1", direct_conversation)]))

        assert manager.registry.keys_for("gone") == set()

    async def test_fan_out_failure_is_logged_not_raised(self, manager, mocker):
        mocker.patch.object(manager, "_push_affected", side_effect=RuntimeError("db down"))
        log_error = mocker.patch("app.core.websocket.logger.error")

        await (await manager.publish([Change(ENTITY_REACTION, "m1", "c1")]))

        log_error.assert_called_once()


@pytest.mark.asyncio
class TestSessions:
    """Presence follows the first and last socket of a user."""

    async def test_first_and_last_session_drive_presence(self, manager, alice, mocker):
        presence_call = mocker.patch.object(manager, "_presence_call", new_callable=mocker.AsyncMock)

        await manager.register_session("tab-1", alice.id)
        await manager.register_session("tab-2", alice.id)
        presence_call.assert_awaited_once_with("heartbeat", alice.id)

        await manager.unregister_session("tab-1")
        assert presence_call.await_count == 1

        await manager.unregister_session("tab-2")
        presence_call.assert_awaited_with("disconnect", alice.id)
        assert alice.id not in manager.user_sessions

    async def test_unregister_drops_subscriptions(self, manager, alice, mocker):
        mocker.patch.object(manager, "_presence_call", new_callable=mocker.AsyncMock)
        await manager.register_session("tab-1", alice.id)
        manager.registry.subscribe("tab-1", QueryKey(MESSAGES, "c1"))

        await manager.unregister_session("tab-1")

        assert manager.registry.keys_for("tab-1") == set()

    async def test_typing_event_sets_mark(self, manager, alice, direct_conversation):
        connect(manager, "sid-a", alice)

        await manager._typing_call("sid-a", {"conversation_id": direct_conversation}, "set_typing")

        assert alice.id in await get_timestamps(typing_key(direct_conversation))

    async def test_typing_event_from_non_member_is_ignored(self, manager, carol, direct_conversation):
        connect(manager, "sid-c", carol)

        await manager._typing_call("sid-c", {"conversation_id": direct_conversation}, "set_typing")

        assert await get_timestamps(typing_key(direct_conversation)) == {}
