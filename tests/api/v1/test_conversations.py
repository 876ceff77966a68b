"""
API tests for conversation endpoints.
"""
import pytest


@pytest.mark.asyncio
class TestConversationsAPI:

    async def test_create_direct(self, client, bob, alice_headers):
        response = await client.post(
            "/api/v1/conversations/",
            json={"participant_ids": [bob.id]},
            headers=alice_headers
        )

        assert response.status_code == 201
        assert set(response.json()) == {"id"}

    async def test_group_name_defaults(self, client, bob, carol, alice_headers):
        created = await client.post(
            "/api/v1/conversations/",
            json={"participant_ids": [bob.id, carol.id], "is_group": True},
            headers=alice_headers
        )

        response = await client.get(f"/api/v1/conversations/{created.json()['id']}", headers=alice_headers)

        assert response.json()["name"] == "New Group"
        assert response.json()["member_count"] == 3

    async def test_direct_with_two_participants_rejected(self, client, bob, carol, alice_headers):
        response = await client.post(
            "/api/v1/conversations/",
            json={"participant_ids": [bob.id, carol.id], "is_group": False},
            headers=alice_headers
        )

        assert response.status_code == 422

    async def test_list_shows_unread_and_mark_read(self, client, direct_conversation, alice_headers, bob_headers):
        await client.post(
            "/api/v1/messages/",
            json={"conversation_id": direct_conversation, "body": "hi"},
            headers=alice_headers
        )

        listed = await client.get("/api/v1/conversations/", headers=bob_headers)
        assert listed.status_code == 200
        assert listed.json()[0]["unread_count"] == 1
        assert listed.json()[0]["last_message"]["body"] == "hi"

        marked = await client.post(f"/api/v1/conversations/{direct_conversation}/mark-read", headers=bob_headers)
        assert marked.json() == {"conversation_id": direct_conversation, "updated": True}

        listed = await client.get("/api/v1/conversations/", headers=bob_headers)
        assert listed.json()[0]["unread_count"] == 0

    async def test_rename(self, client, group_conversation, bob_headers):
        response = await client.put(
            f"/api/v1/conversations/{group_conversation}",
            json={"name": "Renamed"},
            headers=bob_headers
        )

        assert response.status_code == 200
        assert response.json()["name"] == "Renamed"

    async def test_non_member_cannot_rename_or_read(self, client, direct_conversation, carol_headers):
        renamed = await client.put(
            f"/api/v1/conversations/{direct_conversation}",
            json={"name": "Mine"},
            headers=carol_headers
        )
        fetched = await client.get(f"/api/v1/conversations/{direct_conversation}", headers=carol_headers)

        assert renamed.status_code == 403
        assert fetched.status_code == 403
