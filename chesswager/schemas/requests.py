"""API request schemas."""

import re
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from chesswager.models.wallet import TransferMethod
from chesswager.schemas.common import BaseSchema

USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_]{3,32}$")

# Reserved usernames that cannot be used (case-insensitive)
RESERVED_USERNAMES = {
    "admin", "administrator", "system", "moderator", "mod",
    "support", "help", "official", "staff", "bot", "server",
}


# =============================================================================
# Auth Requests
# =============================================================================


class LoginRequest(BaseModel):
    """Identity proof issued by the external identity provider."""

    proof: str = Field(..., min_length=1, description="Provider-signed identity token")


class UpdateProfileRequest(BaseSchema):
    username: str | None = Field(None, description="Public display name")
    wallet_address: str | None = Field(None, alias="walletAddress", max_length=64)
    chess_com_username: str | None = Field(
        None,
        alias="chessComUsername",
        max_length=64,
        description="chess.com handle used to seed the rating before the first game",
    )

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str | None) -> str | None:
        if v is None:
            return v
        if v.lower() in RESERVED_USERNAMES:
            raise ValueError("This username is reserved and cannot be used")
        if not USERNAME_PATTERN.match(v):
            raise ValueError("Username must be 3-32 letters, numbers or underscores")
        return v


# =============================================================================
# Game Requests
# =============================================================================


class CreateGameRequest(BaseSchema):
    wager: Decimal = Field(..., gt=0, description="Stake each player escrows")
    time_control: str = Field("10+0", alias="timeControl", description='"minutes+increment"')


class CancelGameRequest(BaseSchema):
    reason: str = Field("cancelled", max_length=64)


# =============================================================================
# Wallet Requests
# =============================================================================


class DepositRequest(BaseSchema):
    amount: Decimal = Field(..., gt=0)
    method: TransferMethod = TransferMethod.WALLET
    tx_reference: str | None = Field(
        None,
        alias="txReference",
        max_length=128,
        description="On-chain transaction signature (wallet deposits)",
    )
    currency: str = Field("SOL", max_length=8)


class ConfirmDepositRequest(BaseSchema):
    """Payment gateway webhook body."""

    success: bool
    failure_reason: str | None = Field(None, alias="failureReason", max_length=255)
    secret: str = Field(..., description="Webhook secret for authentication")


class WithdrawalRequest(BaseSchema):
    amount: Decimal = Field(..., gt=0)
    destination_address: str = Field(
        ..., alias="destinationAddress", min_length=26, max_length=64
    )


class CompleteWithdrawalRequest(BaseSchema):
    tx_hash: str | None = Field(None, alias="txHash", max_length=128)
    secret: str


class FailWithdrawalRequest(BaseSchema):
    reason: str = Field(..., min_length=1, max_length=255)
    secret: str


# =============================================================================
# Tournament Requests
# =============================================================================


class CreateTournamentRequest(BaseSchema):
    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = Field(None, max_length=1000)
    entry_fee: Decimal = Field(Decimal("0"), ge=0, alias="entryFee")
    max_participants: int = Field(8, ge=2, le=64, alias="maxParticipants")
    time_control: str = Field("10+0", alias="timeControl")
