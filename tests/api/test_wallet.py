"""Tests for the wallet endpoints and the payment webhooks."""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from chesswager.api.deps import get_payment_gateway
from chesswager.config import Settings, get_settings
from chesswager.services.payments import LocalPaymentGateway

DESTINATION = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"


@pytest.fixture
def webhook_secret() -> str:
    return get_settings().payment_webhook_secret


class TestDeposits:
    @pytest.mark.asyncio
    async def test_wallet_deposit_credited_on_confirmation(self, client, login, webhook_secret):
        _, headers = await login()

        response = await client.post(
            "/api/wallet/deposits",
            json={"amount": "2.5", "method": "wallet", "txReference": "sig-api-1"},
            headers=headers,
        )

        assert response.status_code == 201
        transfer = response.json()["transfer"]
        assert transfer["status"] == "pending"
        assert transfer["externalReference"] == "sig-api-1"
        assert response.json()["clientSecret"] is None
        balance = (await client.get("/api/wallet/balance", headers=headers)).json()
        assert Decimal(balance["balance"]) == Decimal("0")

        confirmed = await client.post(
            f"/api/wallet/deposits/{transfer['id']}/confirm",
            json={"success": True, "secret": webhook_secret},
        )
        assert confirmed.json()["status"] == "completed"
        balance = (await client.get("/api/wallet/balance", headers=headers)).json()
        assert Decimal(balance["balance"]) == Decimal("2.5")

    @pytest.mark.asyncio
    async def test_card_deposit_confirmed_by_webhook(self, client, login, webhook_secret):
        _, headers = await login()
        created = await client.post(
            "/api/wallet/deposits", json={"amount": "1", "method": "card"}, headers=headers
        )
        transfer_id = created.json()["transfer"]["id"]
        assert created.json()["transfer"]["status"] == "pending"
        assert created.json()["clientSecret"]

        forged = await client.post(
            f"/api/wallet/deposits/{transfer_id}/confirm",
            json={"success": True, "secret": "wrong"},
        )
        assert forged.status_code == 403
        assert forged.json()["error"]["code"] == "INVALID_WEBHOOK_SECRET"

        confirmed = await client.post(
            f"/api/wallet/deposits/{transfer_id}/confirm",
            json={"success": True, "secret": webhook_secret},
        )
        assert confirmed.status_code == 200
        assert confirmed.json()["status"] == "completed"

        replay = await client.post(
            f"/api/wallet/deposits/{transfer_id}/confirm",
            json={"success": True, "secret": webhook_secret},
        )
        assert replay.status_code == 409
        balance = (await client.get("/api/wallet/balance", headers=headers)).json()
        assert Decimal(balance["balance"]) == Decimal("1")

    @pytest.mark.asyncio
    async def test_reused_reference(self, client, login):
        _, headers = await login()
        body = {"amount": "1", "method": "wallet", "txReference": "sig-api-2"}

        await client.post("/api/wallet/deposits", json=body, headers=headers)
        response = await client.post("/api/wallet/deposits", json=body, headers=headers)

        assert response.status_code == 409


class TestWithdrawals:
    @pytest.mark.asyncio
    async def test_withdrawal_failure_refunds(self, client, funded, webhook_secret):
        _, headers = await funded("1")

        created = await client.post(
            "/api/wallet/withdrawals",
            json={"amount": "0.6", "destinationAddress": DESTINATION},
            headers=headers,
        )
        assert created.status_code == 201
        transfer_id = created.json()["id"]
        balance = (await client.get("/api/wallet/balance", headers=headers)).json()
        assert Decimal(balance["balance"]) == Decimal("0.4")

        failed = await client.post(
            f"/api/wallet/withdrawals/{transfer_id}/fail",
            json={"reason": "rpc timeout", "secret": webhook_secret},
        )
        assert failed.json()["status"] == "failed"
        balance = (await client.get("/api/wallet/balance", headers=headers)).json()
        assert Decimal(balance["balance"]) == Decimal("1")

        history = (await client.get("/api/wallet/transactions", headers=headers)).json()
        assert sorted(t["kind"] for t in history) == ["deposit", "withdrawal"]

    @pytest.mark.asyncio
    async def test_withdrawal_over_balance(self, client, funded):
        _, headers = await funded("0.5")

        response = await client.post(
            "/api/wallet/withdrawals",
            json={"amount": "1", "destinationAddress": DESTINATION},
            headers=headers,
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INSUFFICIENT_FUNDS"


class TestPaymentGatewaySelection:
    def test_local_gateway_outside_production(self):
        assert isinstance(get_payment_gateway(), LocalPaymentGateway)

    def test_production_never_gets_local_gateway(self, monkeypatch):
        production = get_settings().model_copy(
            update={"app_env": "production", "app_debug": False}
        )
        monkeypatch.setattr("chesswager.api.deps.get_settings", lambda: production)

        assert get_payment_gateway() is None

    def test_production_settings_reject_local_gateway(self):
        with pytest.raises(ValidationError):
            Settings(app_env="production", app_debug=False, payment_gateway="local")

        settings = Settings(app_env="production", app_debug=False, payment_gateway="")
        assert settings.payment_gateway == ""

    @pytest.mark.asyncio
    async def test_card_deposit_rejected_when_disabled(self, client, login, monkeypatch):
        disabled = get_settings().model_copy(update={"payment_gateway": None})
        monkeypatch.setattr("chesswager.api.deps.get_settings", lambda: disabled)
        _, headers = await login()

        response = await client.post(
            "/api/wallet/deposits", json={"amount": "1", "method": "card"}, headers=headers
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_REQUEST"
