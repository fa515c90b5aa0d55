"""API dependencies for authentication and service wiring."""

import hmac
import uuid
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from chesswager.config import get_settings
from chesswager.middleware.sentry import set_account_context
from chesswager.models.account import Account
from chesswager.services.account import AccountService
from chesswager.services.chess_rules import PythonChessRules
from chesswager.services.game import GameRegistry
from chesswager.services.identity import IdentityProvider, JWTIdentityProvider
from chesswager.services.payments import LocalPaymentGateway, PaymentGateway
from chesswager.services.rating_lookup import ChessComClient, RatingLookup
from chesswager.services.wallet import WalletService
from chesswager.tournament.engine import TournamentEngine
from chesswager.utils.db import get_db
from chesswager.utils.errors import ChessWagerError
from chesswager.utils.http_client import get_http_client
from chesswager.utils.security import TokenError, verify_access_token

# HTTP Bearer security scheme
security = HTTPBearer(auto_error=False)


def get_trace_id(x_trace_id: Annotated[str | None, Header()] = None) -> str:
    """Get or generate trace ID for request tracking."""
    return x_trace_id or str(uuid.uuid4())


def _unauthorized(code: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={
            "error": {
                "code": code,
                "message": message,
                "details": {},
            }
        },
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_account(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Account:
    """Active account named by the Bearer session token.

    Raises:
        HTTPException: 401 when the token is missing or invalid, 403 when the
            account is deactivated
    """
    if not credentials:
        raise _unauthorized("AUTH_REQUIRED", "Authentication required")

    try:
        payload = verify_access_token(credentials.credentials)
    except TokenError as e:
        raise _unauthorized(e.code, e.message)

    try:
        account = await AccountService(db).get_active_account(str(payload["sub"]))
    except ChessWagerError as e:
        if e.status_code == status.HTTP_404_NOT_FOUND:
            raise _unauthorized("AUTH_ACCOUNT_NOT_FOUND", "Account not found")
        raise

    set_account_context(account.id, account.username)
    return account


def get_game_registry(db: Annotated[AsyncSession, Depends(get_db)]) -> GameRegistry:
    return GameRegistry(db, rules=PythonChessRules())


def get_tournament_engine(
    db: Annotated[AsyncSession, Depends(get_db)],
    registry: Annotated[GameRegistry, Depends(get_game_registry)],
) -> TournamentEngine:
    return TournamentEngine(db, registry=registry)


def get_identity_provider() -> IdentityProvider:
    return JWTIdentityProvider()


async def get_rating_lookup() -> RatingLookup:
    return ChessComClient(http=await get_http_client())


def get_payment_gateway() -> PaymentGateway | None:
    """Configured card gateway, or None when card deposits are disabled.

    The development gateway is never handed out in production.
    """
    settings = get_settings()
    if settings.payment_gateway == "local" and settings.app_env != "production":
        return LocalPaymentGateway()
    return None


def get_wallet_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    gateway: Annotated[PaymentGateway | None, Depends(get_payment_gateway)],
) -> WalletService:
    return WalletService(db, gateway=gateway)


def verify_webhook_secret(secret: str) -> None:
    """Constant-time check of a webhook shared secret.

    Raises:
        HTTPException: 403 when the secret is unset or wrong
    """
    expected = get_settings().payment_webhook_secret
    if not expected or not hmac.compare_digest(secret.encode(), expected.encode()):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": {
                    "code": "INVALID_WEBHOOK_SECRET",
                    "message": "Invalid webhook secret",
                    "details": {},
                }
            },
        )


# Type aliases for cleaner annotations
CurrentAccount = Annotated[Account, Depends(get_current_account)]
DbSession = Annotated[AsyncSession, Depends(get_db)]
Registry = Annotated[GameRegistry, Depends(get_game_registry)]
Engine = Annotated[TournamentEngine, Depends(get_tournament_engine)]
Identity = Annotated[IdentityProvider, Depends(get_identity_provider)]
Lookup = Annotated[RatingLookup, Depends(get_rating_lookup)]
Wallet = Annotated[WalletService, Depends(get_wallet_service)]
TraceId = Annotated[str, Depends(get_trace_id)]
