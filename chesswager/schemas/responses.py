"""API response schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from chesswager.schemas.common import BaseSchema


# =============================================================================
# Auth Responses
# =============================================================================


class TokenResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, serialize_by_alias=True)

    access_token: str = Field(..., alias="accessToken")
    token_type: str = Field(default="Bearer", alias="tokenType")
    expires_in: int = Field(..., alias="expiresIn", description="Access token expiry in seconds")


# =============================================================================
# Account Responses
# =============================================================================


class AccountPublicResponse(BaseSchema):
    """Public account information."""

    id: str
    username: str
    rating: int
    is_verified: bool = Field(..., alias="isVerified")
    chess_com_username: str | None = Field(None, alias="chessComUsername")
    chess_com_rating: int | None = Field(None, alias="chessComRating")
    games_played: int = Field(..., alias="gamesPlayed")
    games_won: int = Field(..., alias="gamesWon")
    win_rate: float = Field(..., alias="winRate")
    created_at: datetime = Field(..., alias="createdAt")


class AccountResponse(AccountPublicResponse):
    """The authenticated account, with private fields."""

    email: str | None = None
    wallet_address: str | None = Field(None, alias="walletAddress")
    status: str
    balance: Decimal
    total_earnings: Decimal = Field(..., alias="totalEarnings")


class LoginResponse(BaseModel):
    account: AccountResponse
    tokens: TokenResponse
    created: bool = Field(False, description="Whether the account was created by this login")


class LeaderboardEntryResponse(BaseSchema):
    rank: int
    account_id: str = Field(..., alias="accountId")
    username: str
    rating: int
    games_played: int = Field(..., alias="gamesPlayed")
    games_won: int = Field(..., alias="gamesWon")
    win_rate: float = Field(..., alias="winRate")


class EarningsEntryResponse(BaseSchema):
    rank: int
    account_id: str = Field(..., alias="accountId")
    username: str
    games_won: int = Field(..., alias="gamesWon")
    total_earnings: Decimal = Field(..., alias="totalEarnings")


class ChessComRatingResponse(BaseSchema):
    username: str
    profile_url: str | None = Field(None, alias="profileUrl")
    verified: bool
    ratings: dict[str, int | None]
    best: int | None = None


# =============================================================================
# Game Responses
# =============================================================================


class GameResponse(BaseSchema):
    id: str
    creator_id: str = Field(..., alias="creatorId")
    opponent_id: str | None = Field(None, alias="opponentId")
    wager: Decimal
    escrow: Decimal
    time_control: str = Field(..., alias="timeControl")
    status: str
    outcome: str | None = None
    winner_id: str | None = Field(None, alias="winnerId")
    cancel_reason: str | None = Field(None, alias="cancelReason")
    tournament_id: str | None = Field(None, alias="tournamentId")
    position_fen: str = Field(..., alias="fen")
    move_count: int = Field(..., alias="ply")
    moves: list[dict[str, Any]] = Field(default_factory=list)
    creator_rating_delta: int | None = Field(None, alias="creatorRatingDelta")
    opponent_rating_delta: int | None = Field(None, alias="opponentRatingDelta")
    created_at: datetime = Field(..., alias="createdAt")
    started_at: datetime | None = Field(None, alias="startedAt")
    completed_at: datetime | None = Field(None, alias="completedAt")


class AvailableGameResponse(BaseSchema):
    """A waiting game in the lobby."""

    id: str
    creator_id: str = Field(..., alias="creatorId")
    creator_username: str = Field(..., alias="creatorUsername")
    creator_rating: int = Field(..., alias="creatorRating")
    wager: Decimal
    time_control: str = Field(..., alias="timeControl")
    created_at: datetime = Field(..., alias="createdAt")
    skill_gap: int = Field(..., alias="skillGap")
    requires_confirmation: bool = Field(
        ...,
        alias="requiresConfirmation",
        description="Advisory: the rating gap exceeds the mismatch threshold",
    )


class PayoutResponse(BaseSchema):
    account_id: str = Field(..., alias="accountId")
    amount: Decimal
    success: bool
    error: str | None = None


class SettlementResponse(BaseSchema):
    game_id: str = Field(..., alias="gameId")
    status: str
    outcome: str | None = None
    winner_id: str | None = Field(None, alias="winnerId")
    tournament_id: str | None = Field(None, alias="tournamentId")
    payouts: list[PayoutResponse] = Field(default_factory=list)


class ChatMessageResponse(BaseSchema):
    id: str
    game_id: str = Field(..., alias="gameId")
    account_id: str = Field(..., alias="accountId")
    message: str
    created_at: datetime = Field(..., alias="createdAt")


# =============================================================================
# Wallet Responses
# =============================================================================


class BalanceResponse(BaseSchema):
    account_id: str = Field(..., alias="accountId")
    balance: Decimal
    currency: str = "SOL"


class TransferResponse(BaseSchema):
    """A deposit or a withdrawal, tagged by ``kind``."""

    id: str
    kind: str
    amount: Decimal
    currency: str
    method: str
    status: str
    destination_address: str | None = Field(None, alias="destinationAddress")
    external_reference: str | None = Field(None, alias="externalReference")
    failure_reason: str | None = Field(None, alias="failureReason")
    created_at: datetime = Field(..., alias="createdAt")
    completed_at: datetime | None = Field(None, alias="completedAt")


class DepositResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, serialize_by_alias=True)

    transfer: TransferResponse
    client_secret: str | None = Field(
        None,
        alias="clientSecret",
        description="Card deposits only: secret for the client-side payment flow",
    )


# =============================================================================
# Tournament Responses
# =============================================================================


class TournamentResponse(BaseSchema):
    id: str
    name: str
    description: str | None = None
    creator_id: str | None = Field(None, alias="creatorId")
    entry_fee: Decimal = Field(..., alias="entryFee")
    prize_pool: Decimal = Field(..., alias="prizePool")
    max_participants: int = Field(..., alias="maxParticipants")
    current_participants: int = Field(..., alias="currentParticipants")
    time_control: str = Field(..., alias="timeControl")
    status: str
    current_round: int = Field(..., alias="currentRound")
    winner_id: str | None = Field(None, alias="winnerId")
    start_time: datetime | None = Field(None, alias="startTime")
    end_time: datetime | None = Field(None, alias="endTime")
    created_at: datetime = Field(..., alias="createdAt")


class ParticipantResponse(BaseSchema):
    account_id: str = Field(..., alias="accountId")
    username: str
    rating: int
    seed: int
    eliminated: bool
    placement: int | None = None
    joined_at: datetime = Field(..., alias="joinedAt")


class TournamentJoinResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, serialize_by_alias=True)

    tournament: TournamentResponse
    seed: int


class PairingResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, serialize_by_alias=True)

    slot: int
    game_id: str | None = Field(None, alias="gameId")
    white_id: str = Field(..., alias="whiteId")
    black_id: str | None = Field(None, alias="blackId")
    winner_id: str | None = Field(None, alias="winnerId")
    bye: bool


class BracketRoundResponse(BaseModel):
    round: int
    pairings: list[PairingResponse]


class RefundResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, serialize_by_alias=True)

    tournament_id: str = Field(..., alias="tournamentId")
    successful_refunds: int = Field(..., alias="successfulRefunds")
    failed_refunds: int = Field(..., alias="failedRefunds")
