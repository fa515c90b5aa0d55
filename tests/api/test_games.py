"""Tests for the game lobby endpoints."""

from decimal import Decimal

import pytest


async def balance(client, headers) -> Decimal:
    response = await client.get("/api/wallet/balance", headers=headers)
    return Decimal(response.json()["balance"])


class TestGameLifecycle:
    @pytest.mark.asyncio
    async def test_create_escrows_wager(self, client, funded):
        account_id, headers = await funded("1")

        response = await client.post(
            "/api/games", json={"wager": "0.25", "timeControl": "5+3"}, headers=headers
        )

        assert response.status_code == 201
        game = response.json()
        assert game["creatorId"] == account_id
        assert game["status"] == "waiting"
        assert game["ply"] == 0
        assert Decimal(game["wager"]) == Decimal("0.25")
        assert game["fen"].startswith("rnbqkbnr/pppppppp")
        assert await balance(client, headers) == Decimal("0.75")

    @pytest.mark.asyncio
    async def test_lobby_join_and_resign(self, client, funded):
        creator_id, creator = await funded("1")
        opponent_id, opponent = await funded("1")
        created = await client.post("/api/games", json={"wager": "0.4"}, headers=creator)
        game_id = created.json()["id"]

        lobby = await client.get("/api/games", headers=opponent)
        assert [g["id"] for g in lobby.json()] == [game_id]
        assert lobby.json()[0]["requiresConfirmation"] is False
        own_lobby = await client.get("/api/games", headers=creator)
        assert own_lobby.json() == []

        joined = await client.post(f"/api/games/{game_id}/join", headers=opponent)
        assert joined.status_code == 200
        assert joined.json()["status"] == "active"
        assert joined.json()["opponentId"] == opponent_id

        resigned = await client.post(f"/api/games/{game_id}/resign", headers=creator)
        assert resigned.status_code == 200
        assert resigned.json()["winnerId"] == opponent_id
        assert resigned.json()["outcome"] == "opponent_wins"

        assert await balance(client, opponent) == Decimal("1.4")
        assert await balance(client, creator) == Decimal("0.6")
        game = (await client.get(f"/api/games/{game_id}")).json()
        assert game["status"] == "completed"
        assert game["creatorRatingDelta"] == -20

        leaderboard = (await client.get("/api/leaderboard")).json()
        assert leaderboard[0]["accountId"] == opponent_id
        earnings = (await client.get("/api/leaderboard/earnings")).json()
        assert earnings[0]["accountId"] == opponent_id
        assert Decimal(earnings[0]["totalEarnings"]) == Decimal("0.8")
        assert creator_id not in [e["accountId"] for e in earnings]

    @pytest.mark.asyncio
    async def test_cancel_waiting_game(self, client, funded):
        _, creator = await funded("1")
        _, stranger = await funded("1")
        game_id = (await client.post("/api/games", json={"wager": "0.5"}, headers=creator)).json()["id"]

        forbidden = await client.post(f"/api/games/{game_id}/cancel", headers=stranger)
        assert forbidden.status_code == 403
        assert forbidden.json()["error"]["code"] == "NOT_A_PARTICIPANT"

        cancelled = await client.post(
            f"/api/games/{game_id}/cancel", json={"reason": "changed_mind"}, headers=creator
        )
        assert cancelled.status_code == 200
        assert cancelled.json()["status"] == "cancelled"
        assert await balance(client, creator) == Decimal("1")

        again = await client.post(f"/api/games/{game_id}/cancel", headers=creator)
        assert again.status_code == 409
        assert again.json()["error"]["code"] == "GAME_NOT_CANCELLABLE"


class TestGameErrors:
    @pytest.mark.asyncio
    async def test_insufficient_funds_rolls_back(self, client, funded):
        _, headers = await funded("0.1")

        response = await client.post("/api/games", json={"wager": "0.5"}, headers=headers)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INSUFFICIENT_FUNDS"
        assert await balance(client, headers) == Decimal("0.1")
        assert (await client.get("/api/games/none-such")).status_code == 404

    @pytest.mark.asyncio
    async def test_self_join(self, client, funded):
        _, headers = await funded("1")
        game_id = (await client.post("/api/games", json={"wager": "0.1"}, headers=headers)).json()["id"]

        response = await client.post(f"/api/games/{game_id}/join", headers=headers)

        assert response.json()["error"]["code"] == "SELF_JOIN"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body,status",
        [
            ({"wager": "-1"}, 422),
            ({"wager": "abc"}, 422),
            ({"wager": "0.5", "timeControl": "blitz"}, 400),
        ],
    )
    async def test_invalid_create(self, client, funded, body, status):
        _, headers = await funded("1")

        response = await client.post("/api/games", json=body, headers=headers)

        assert response.status_code == status
        assert response.json()["error"]["code"] in ("INVALID_REQUEST", "INVALID_TIME_CONTROL")

    @pytest.mark.asyncio
    async def test_chat_history_for_players_only(self, client, funded):
        _, creator = await funded("1")
        _, stranger = await funded("1")
        game_id = (await client.post("/api/games", json={"wager": "0.1"}, headers=creator)).json()["id"]

        assert (await client.get(f"/api/games/{game_id}/chat", headers=creator)).json() == []
        assert (await client.get(f"/api/games/{game_id}/chat", headers=stranger)).status_code == 403
