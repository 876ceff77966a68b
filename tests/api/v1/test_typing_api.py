"""
API tests for typing indicator endpoints.
"""
import pytest


@pytest.mark.asyncio
class TestTypingAPI:

    async def test_typing_visible_to_others_only(self, client, bob, direct_conversation, alice_headers, bob_headers):
        url = f"/api/v1/typing/{direct_conversation}"

        assert (await client.put(url, headers=bob_headers)).status_code == 204

        seen_by_alice = await client.get(url, headers=alice_headers)
        seen_by_bob = await client.get(url, headers=bob_headers)

        assert seen_by_alice.json() == [{"user_id": bob.id, "name": "Bob"}]
        assert seen_by_bob.json() == []

    async def test_stop_typing(self, client, direct_conversation, alice_headers, bob_headers):
        url = f"/api/v1/typing/{direct_conversation}"
        await client.put(url, headers=bob_headers)

        assert (await client.delete(url, headers=bob_headers)).status_code == 204
        assert (await client.get(url, headers=alice_headers)).json() == []

    async def test_sending_clears_typing(self, client, direct_conversation, alice_headers, bob_headers):
        url = f"/api/v1/typing/{direct_conversation}"
        await client.put(url, headers=bob_headers)

        await client.post(
            "/api/v1/messages/",
            json={"conversation_id": direct_conversation, "body": "done typing"},
            headers=bob_headers
        )

        assert (await client.get(url, headers=alice_headers)).json() == []

    async def test_non_member_forbidden(self, client, direct_conversation, carol_headers):
        response = await client.put(f"/api/v1/typing/{direct_conversation}", headers=carol_headers)

        assert response.status_code == 403
