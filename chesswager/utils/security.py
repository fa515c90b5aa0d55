"""Session token utilities.

Accounts authenticate through the external identity provider; after that the
backend issues its own short-lived session JWT. The ``sub`` claim of that token
is the only thing the HTTP API and the realtime gateway trust as identity.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

from chesswager.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)


class TokenError(Exception):
    """Token validation error with specific code."""

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(message)


def create_access_token(
    account_id: str,
    additional_claims: dict[str, Any] | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a session JWT for an account.

    Args:
        account_id: Account ID to encode in the ``sub`` claim
        additional_claims: Additional claims to include
        expires_delta: Custom expiration time

    Returns:
        Encoded JWT token string
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.jwt_access_token_expire_minutes)

    now = datetime.now(timezone.utc)
    payload = {
        "sub": account_id,
        "type": "access",
        "iat": now,
        "exp": now + expires_delta,
    }
    if additional_claims:
        payload.update(additional_claims)

    return jwt.encode(
        payload,
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )


def verify_access_token(token: str) -> dict[str, Any]:
    """Verify a session token and return its payload.

    Raises:
        TokenError: If the token is empty, expired, malformed or of the wrong type
    """
    if not token:
        raise TokenError("TOKEN_MISSING", "Token is required")

    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            options={"require_exp": True, "require_iat": True, "require_sub": True},
        )
    except jwt.ExpiredSignatureError:
        logger.debug("Access token verification failed: token expired")
        raise TokenError("TOKEN_EXPIRED", "Token has expired")
    except JWTError as e:
        logger.warning(f"Access token verification failed: {type(e).__name__}")
        raise TokenError("TOKEN_INVALID", "Token is invalid")

    if payload.get("type") != "access":
        raise TokenError("TOKEN_INVALID", "Wrong token type")
    if not payload.get("sub"):
        raise TokenError("TOKEN_INVALID", "Token has no subject")

    return payload
