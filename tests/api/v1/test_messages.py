"""
API tests for message and reaction endpoints.
"""
import pytest


async def send(client, headers, conversation_id, body, **extra):
    return await client.post(
        "/api/v1/messages/",
        json={"conversation_id": conversation_id, "body": body, **extra},
        headers=headers
    )


@pytest.mark.asyncio
class TestMessagesAPI:

    async def test_send(self, client, alice, direct_conversation, alice_headers):
        response = await send(client, alice_headers, direct_conversation, "  hello  ")

        assert response.status_code == 201
        data = response.json()
        assert data["body"] == "hello"
        assert data["author_id"] == alice.id
        assert data["author_name"] == "Alice"
        assert data["reactions"] == []

    async def test_blank_body_rejected(self, client, direct_conversation, alice_headers):
        assert (await send(client, alice_headers, direct_conversation, "")).status_code == 422
        assert (await send(client, alice_headers, direct_conversation, "   ")).status_code == 422

    async def test_non_member_cannot_send(self, client, direct_conversation, carol_headers):
        response = await send(client, carol_headers, direct_conversation, "let me in")

        assert response.status_code == 403

    async def test_reply_preview(self, client, direct_conversation, alice_headers, bob_headers):
        original = await send(client, alice_headers, direct_conversation, "question?")

        reply = await send(client, bob_headers, direct_conversation, "answer", reply_to_id=original.json()["id"])

        assert reply.json()["replied_to"]["author_name"] == "Alice"
        assert reply.json()["replied_to"]["body"] == "question?"

    async def test_list_pages_backwards(self, client, direct_conversation, alice_headers):
        for i in range(5):
            await send(client, alice_headers, direct_conversation, f"m{i}")
        url = f"/api/v1/messages/conversation/{direct_conversation}"

        first = (await client.get(url, params={"limit": 2}, headers=alice_headers)).json()
        assert [m["body"] for m in first["messages"]] == ["m3", "m4"]
        assert first["has_more"] is True

        second = (await client.get(
            url, params={"limit": 2, "before": first["next_cursor"]}, headers=alice_headers
        )).json()
        assert [m["body"] for m in second["messages"]] == ["m1", "m2"]

        last = (await client.get(
            url, params={"limit": 2, "before": second["next_cursor"]}, headers=alice_headers
        )).json()
        assert [m["body"] for m in last["messages"]] == ["m0"]
        assert last["has_more"] is False
        assert last["next_cursor"] is None

    async def test_list_forbidden_for_non_member(self, client, direct_conversation, carol_headers):
        response = await client.get(
            f"/api/v1/messages/conversation/{direct_conversation}", headers=carol_headers
        )

        assert response.status_code == 403

    async def test_edit_own_message(self, client, direct_conversation, alice_headers):
        sent = await send(client, alice_headers, direct_conversation, "typo")

        response = await client.put(
            f"/api/v1/messages/{sent.json()['id']}", json={"body": "fixed"}, headers=alice_headers
        )

        assert response.status_code == 200
        assert response.json()["body"] == "fixed"
        assert response.json()["edited"] is True

    async def test_cannot_edit_someone_elses_message(self, client, direct_conversation, alice_headers, bob_headers):
        sent = await send(client, alice_headers, direct_conversation, "mine")

        response = await client.put(
            f"/api/v1/messages/{sent.json()['id']}", json={"body": "yours"}, headers=bob_headers
        )

        assert response.status_code == 403

    async def test_delete_leaves_placeholder(self, client, direct_conversation, alice_headers, bob_headers):
        sent = await send(client, alice_headers, direct_conversation, "oops")
        message_id = sent.json()["id"]

        deleted = await client.delete(f"/api/v1/messages/{message_id}", headers=alice_headers)
        fetched = await client.get(f"/api/v1/messages/{message_id}", headers=bob_headers)

        assert deleted.status_code == 200
        assert deleted.json()["deleted"] is True
        assert fetched.json()["deleted"] is True
        assert fetched.json()["body"] == "This message was deleted"

    async def test_reaction_toggle(self, client, direct_conversation, alice_headers, bob, bob_headers):
        sent = await send(client, alice_headers, direct_conversation, "nice")
        message_id = sent.json()["id"]
        url = f"/api/v1/messages/{message_id}/reactions"

        added = await client.post(url, json={"emoji": "👍"}, headers=bob_headers)
        assert added.json() == {"message_id": message_id, "emoji": "👍", "added": True}

        fetched = await client.get(f"/api/v1/messages/{message_id}", headers=alice_headers)
        assert fetched.json()["reactions"] == [{"emoji": "👍", "count": 1, "user_ids": [bob.id]}]

        removed = await client.post(url, json={"emoji": "👍"}, headers=bob_headers)
        assert removed.json()["added"] is False
