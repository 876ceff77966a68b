"""
Unit tests for UserService.
Tests identity upsert, profile drift sync and the user directory.
"""
import asyncio

import pytest
from fastapi import HTTPException

from app.core.security import ExternalIdentity
from app.core.subscriptions import ENTITY_USER
from app.services.user_service import UserService


@pytest.mark.asyncio
class TestUpsertIdentity:
    """Test cases for UserService.upsert_identity."""

    async def test_creates_user_on_first_contact(self, db_session):
        identity = ExternalIdentity(
            token_identifier="https://id.example.com|new",
            name="Grace Hopper",
            email="grace@example.com",
            picture="https://example.com/grace.png",
        )

        user = await UserService(db_session).upsert_identity(identity)

        assert user.id
        assert user.name == "Grace Hopper"
        assert user.email == "grace@example.com"
        assert user.image == "https://example.com/grace.png"
        assert user.token_identifier == "https://id.example.com|new"

    async def test_is_idempotent(self, db_session, notifier):
        identity = ExternalIdentity(token_identifier="iss|same", name="Same")
        service = UserService(db_session)

        first = await service.upsert_identity(identity)
        second = await service.upsert_identity(identity)

        assert first.id == second.id
        notifier.assert_not_called()

    async def test_lost_first_contact_race_returns_existing_user(self, db_session, alice, mocker):
        """The lookup misses, the insert hits the unique identifier, the stored row is returned."""
        alice_id, token_identifier = alice.id, alice.token_identifier
        service = UserService(db_session)
        real_lookup = service.user_repo.get_by_token_identifier
        lookups = []

        async def miss_first(identifier):
            lookups.append(identifier)
            if len(lookups) == 1:
                return None
            return await real_lookup(identifier)

        mocker.patch.object(service.user_repo, "get_by_token_identifier", side_effect=miss_first)

        user = await service.upsert_identity(ExternalIdentity(token_identifier=token_identifier, name="Alice"))

        assert user.id == alice_id
        assert len(lookups) == 2

    async def test_concurrent_first_contact_yields_one_user(self, file_session_factory):
        identity = ExternalIdentity(token_identifier="iss|parallel", name="Parallel")

        async def upsert():
            async with file_session_factory() as session:
                user = await UserService(session).upsert_identity(identity)
                return user.id

        first, second = await asyncio.gather(upsert(), upsert())

        assert first == second

    async def test_falls_back_to_anonymous_and_empty_email(self, db_session):
        user = await UserService(db_session).upsert_identity(
            ExternalIdentity(token_identifier="iss|nameless")
        )

        assert user.name == "Anonymous"
        assert user.email == ""

    async def test_uses_nickname_when_name_missing(self, db_session):
        user = await UserService(db_session).upsert_identity(
            ExternalIdentity(token_identifier="iss|nick", nickname="gh")
        )

        assert user.name == "gh"

    async def test_patches_drifted_name_and_image(self, db_session, alice, bob, direct_conversation, notifier):
        notifier.reset_mock()
        identity = ExternalIdentity(
            token_identifier=alice.token_identifier,
            name="Alice Liddell",
            picture="https://example.com/new.png",
        )

        user = await UserService(db_session).upsert_identity(identity)

        assert user.id == alice.id
        assert user.name == "Alice Liddell"
        assert user.image == "https://example.com/new.png"
        assert user.updated_at is not None

        notifier.assert_awaited_once()
        changes = notifier.await_args.args[0]
        assert changes[0].entity == ENTITY_USER
        assert changes[0].user_ids == (bob.id,)

    async def test_rejects_missing_identity(self, db_session):
        with pytest.raises(HTTPException) as exc_info:
            await UserService(db_session).upsert_identity(None)

        assert exc_info.value.status_code == 401


@pytest.mark.asyncio
class TestUserDirectory:
    """Test cases for get_user and search_users."""

    async def test_get_user_not_found(self, db_session):
        with pytest.raises(HTTPException) as exc_info:
            await UserService(db_session).get_user("missing")

        assert exc_info.value.status_code == 404

    async def test_search_excludes_viewer(self, db_session, alice, bob, carol):
        results = await UserService(db_session).search_users(alice.id)

        assert [u["name"] for u in results] == ["Bob", "Carol"]

    async def test_search_matches_name_or_email_case_insensitively(self, db_session, alice, bob, carol):
        service = UserService(db_session)

        by_name = await service.search_users(alice.id, search="CAR")
        by_email = await service.search_users(alice.id, search="bob@")

        assert [u["id"] for u in by_name] == [carol.id]
        assert [u["id"] for u in by_email] == [bob.id]

    async def test_search_wildcards_match_nobody_without_literal_hit(self, db_session, alice, bob, carol):
        service = UserService(db_session)

        assert await service.search_users(alice.id, search="_") == []
        assert await service.search_users(alice.id, search="%") == []
        assert await service.search_users(alice.id, search="\\") == []

    async def test_search_wildcards_match_literally(self, db_session, alice, bob, carol):
        service = UserService(db_session)
        dan = await service.upsert_identity(ExternalIdentity(token_identifier="iss|dan", name="dan_100%"))

        for term in ("_", "%", "n_1", "0%"):
            assert [u["id"] for u in await service.search_users(alice.id, search=term)] == [dan.id]
