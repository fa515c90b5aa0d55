"""Identity provider collaborator.

The external provider (social/email/wallet login) hands the client a signed
proof. The core only verifies the proof and reads the external account id out
of it; provisioning the identity is the provider's business.
"""

import logging
from dataclasses import dataclass
from typing import Protocol

from jose import JWTError, jwt

from chesswager.config import get_settings
from chesswager.utils.errors import AuthenticationFailed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExternalIdentity:
    external_id: str
    email: str | None = None
    wallet_address: str | None = None


class IdentityProvider(Protocol):
    def verify(self, proof: str) -> ExternalIdentity:
        ...


class JWTIdentityProvider:
    """Verifies provider-signed JWT proofs (HS256 shared secret)."""

    def __init__(
        self,
        secret: str | None = None,
        audience: str | None = None,
        algorithms: list[str] | None = None,
    ) -> None:
        settings = get_settings()
        self.secret = secret or settings.identity_provider_secret
        self.audience = audience or settings.identity_provider_audience
        self.algorithms = algorithms or ["HS256"]

    def verify(self, proof: str) -> ExternalIdentity:
        """Verify a proof and return the identity it carries.

        Raises:
            AuthenticationFailed: If the proof is missing, forged or expired
        """
        if not self.secret:
            raise AuthenticationFailed("Identity provider is not configured")
        if not proof:
            raise AuthenticationFailed("Identity proof is required")

        try:
            claims = jwt.decode(
                proof,
                self.secret,
                algorithms=self.algorithms,
                audience=self.audience,
                options={"verify_aud": self.audience is not None},
            )
        except JWTError as e:
            logger.warning(f"Identity proof rejected: {type(e).__name__}")
            raise AuthenticationFailed("Invalid identity proof")

        external_id = claims.get("sub")
        if not external_id:
            raise AuthenticationFailed("Identity proof has no subject")

        return ExternalIdentity(
            external_id=str(external_id),
            email=claims.get("email"),
            wallet_address=claims.get("wallet_address"),
        )
