"""
Unit tests for TypingService.
"""
import pytest
from fastapi import HTTPException

from app.core.cache import set_timestamp, typing_key
from app.core.subscriptions import ENTITY_TYPING
from app.services.typing_service import TypingService


def typing_service(db_session, clock):
    return TypingService(db_session, window=5, clock=clock)


@pytest.mark.asyncio
class TestTypingService:
    """Test cases for set_typing, clear_typing and list_typing."""

    async def test_set_and_list_excluding_viewer(self, db_session, alice, bob, direct_conversation, clock):
        service = typing_service(db_session, clock)
        await service.set_typing(alice.id, direct_conversation)
        await service.set_typing(bob.id, direct_conversation)

        seen_by_alice = await service.list_typing(alice.id, direct_conversation, exclude_user_id=alice.id)
        everyone = await service.list_typing(alice.id, direct_conversation)

        assert seen_by_alice == [{"user_id": bob.id, "name": "Bob"}]
        assert {t["user_id"] for t in everyone} == {alice.id, bob.id}

    async def test_stale_marks_are_never_listed(self, db_session, alice, bob, direct_conversation, clock):
        service = typing_service(db_session, clock)
        await service.set_typing(bob.id, direct_conversation)

        clock.advance(4)
        assert len(await service.list_typing(alice.id, direct_conversation)) == 1

        clock.advance(1)
        assert await service.list_typing(alice.id, direct_conversation) == []

    async def test_refresh_keeps_mark_alive(self, db_session, alice, bob, direct_conversation, clock):
        service = typing_service(db_session, clock)
        await service.set_typing(bob.id, direct_conversation)
        clock.advance(3)
        await service.set_typing(bob.id, direct_conversation)
        clock.advance(3)

        assert [t["user_id"] for t in await service.list_typing(alice.id, direct_conversation)] == [bob.id]

    async def test_ordered_by_typing_start(self, db_session, alice, bob, carol, group_conversation, clock):
        service = typing_service(db_session, clock)
        await service.set_typing(carol.id, group_conversation)
        clock.advance(1)
        await service.set_typing(bob.id, group_conversation)

        listed = await service.list_typing(alice.id, group_conversation)

        assert [t["user_id"] for t in listed] == [carol.id, bob.id]

    async def test_clear_is_idempotent(self, db_session, alice, bob, direct_conversation, clock, notifier):
        service = typing_service(db_session, clock)
        await service.set_typing(bob.id, direct_conversation)
        notifier.reset_mock()

        await service.clear_typing(bob.id, direct_conversation)
        await service.clear_typing(bob.id, direct_conversation)

        assert await service.list_typing(alice.id, direct_conversation) == []
        assert notifier.await_count == 1
        assert notifier.await_args.args[0][0].entity == ENTITY_TYPING

    async def test_unknown_typist_rendered_as_someone(self, db_session, alice, direct_conversation, clock):
        await set_timestamp(typing_key(direct_conversation), "departed-user", clock())

        listed = await typing_service(db_session, clock).list_typing(alice.id, direct_conversation)

        assert listed == [{"user_id": "departed-user", "name": "Someone"}]

    async def test_membership_required(self, db_session, carol, direct_conversation, clock):
        service = typing_service(db_session, clock)

        for call in (service.set_typing, service.clear_typing, service.list_typing):
            with pytest.raises(HTTPException) as exc_info:
                await call(carol.id, direct_conversation)
            assert exc_info.value.status_code == 403
