"""Tests for login, session tokens and the error envelope."""

from datetime import timedelta
from decimal import Decimal

import pytest

from chesswager.utils.security import create_access_token
from tests.api.conftest import create_identity_proof


class TestLogin:
    @pytest.mark.asyncio
    async def test_first_login_creates_account(self, client):
        proof = create_identity_proof("ext-alice", email="alice@example.com")

        first = await client.post("/api/auth/login", json={"proof": proof})
        second = await client.post("/api/auth/login", json={"proof": proof})

        assert first.status_code == 200
        body = first.json()
        assert body["created"] is True
        assert body["account"]["email"] == "alice@example.com"
        assert body["account"]["rating"] == 1200
        assert Decimal(body["account"]["balance"]) == 0
        assert body["tokens"]["tokenType"] == "Bearer"
        assert second.json()["created"] is False
        assert second.json()["account"]["id"] == body["account"]["id"]

    @pytest.mark.asyncio
    async def test_bad_proof(self, client):
        response = await client.post("/api/auth/login", json={"proof": "forged"})

        assert response.status_code == 401
        body = response.json()
        assert body["error"]["code"] == "AUTHENTICATION_FAILED"
        assert body["traceId"]

    @pytest.mark.asyncio
    async def test_missing_proof_is_validation_error(self, client):
        response = await client.post("/api/auth/login", json={})

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "INVALID_REQUEST"


class TestSession:
    @pytest.mark.asyncio
    async def test_me(self, client, login):
        account_id, headers = await login()

        response = await client.get("/api/auth/me", headers=headers)

        assert response.status_code == 200
        assert response.json()["id"] == account_id
        assert response.headers["X-Request-ID"]

    @pytest.mark.asyncio
    async def test_me_without_token(self, client):
        response = await client.get("/api/auth/me")

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "AUTH_REQUIRED"

    @pytest.mark.asyncio
    async def test_expired_token(self, client, login):
        account_id, _ = await login()
        token = create_access_token(account_id, expires_delta=timedelta(seconds=-5))

        response = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "TOKEN_EXPIRED"

    @pytest.mark.asyncio
    async def test_token_for_unknown_account(self, client):
        token = create_access_token("no-such-account")

        response = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "AUTH_ACCOUNT_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_trace_id_follows_request_id(self, client):
        response = await client.get("/api/auth/me", headers={"X-Request-ID": "req-123"})

        assert response.json()["traceId"] == "req-123"
        assert response.headers["X-Request-ID"] == "req-123"
