"""Test fixtures for API integration tests."""

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import uuid4

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession

from chesswager.config import get_settings
from chesswager.main import app
from chesswager.utils.db import get_db

settings = get_settings()


# =============================================================================
# Identity Proofs
# =============================================================================


def create_identity_proof(external_id: str, **claims: Any) -> str:
    """Proof as the external identity provider would sign it."""
    now = datetime.now(timezone.utc)
    payload = {"sub": external_id, "iat": now, "exp": now + timedelta(minutes=5), **claims}
    return jwt.encode(payload, settings.identity_provider_secret, algorithm="HS256")


# =============================================================================
# Client Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Client against the app with the test database wired in."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def login(client):
    """Log a fresh identity in. Returns (account_id, auth headers)."""

    async def _login(external_id: str | None = None) -> tuple[str, dict[str, str]]:
        proof = create_identity_proof(external_id or f"ext-{uuid4().hex[:8]}")
        response = await client.post("/api/auth/login", json={"proof": proof})
        assert response.status_code == 200, response.text
        data = response.json()
        return data["account"]["id"], {
            "Authorization": f"Bearer {data['tokens']['accessToken']}"
        }

    return _login


@pytest_asyncio.fixture
async def funded(client, login):
    """Logged-in account with a confirmed wallet deposit."""

    async def _funded(amount: str = "1") -> tuple[str, dict[str, str]]:
        account_id, headers = await login()
        response = await client.post(
            "/api/wallet/deposits",
            json={"amount": amount, "method": "wallet", "txReference": f"sig-{uuid4().hex}"},
            headers=headers,
        )
        assert response.status_code == 201, response.text
        confirmed = await client.post(
            f"/api/wallet/deposits/{response.json()['transfer']['id']}/confirm",
            json={"success": True, "secret": settings.payment_webhook_secret},
        )
        assert confirmed.status_code == 200, confirmed.text
        return account_id, headers

    return _funded
