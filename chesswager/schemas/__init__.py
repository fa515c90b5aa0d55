"""Pydantic schemas for API request/response validation."""

from chesswager.schemas.common import BaseSchema, ErrorDetail, ErrorResponse
from chesswager.schemas.requests import (
    CancelGameRequest,
    CompleteWithdrawalRequest,
    ConfirmDepositRequest,
    CreateGameRequest,
    CreateTournamentRequest,
    DepositRequest,
    FailWithdrawalRequest,
    LoginRequest,
    UpdateProfileRequest,
    WithdrawalRequest,
)
from chesswager.schemas.responses import (
    AccountPublicResponse,
    AccountResponse,
    AvailableGameResponse,
    BalanceResponse,
    BracketRoundResponse,
    ChatMessageResponse,
    ChessComRatingResponse,
    DepositResponse,
    EarningsEntryResponse,
    GameResponse,
    LeaderboardEntryResponse,
    LoginResponse,
    PairingResponse,
    ParticipantResponse,
    PayoutResponse,
    RefundResponse,
    SettlementResponse,
    TokenResponse,
    TournamentJoinResponse,
    TournamentResponse,
    TransferResponse,
)

__all__ = [
    # Common
    "BaseSchema",
    "ErrorDetail",
    "ErrorResponse",
    # Requests
    "CancelGameRequest",
    "CompleteWithdrawalRequest",
    "ConfirmDepositRequest",
    "CreateGameRequest",
    "CreateTournamentRequest",
    "DepositRequest",
    "FailWithdrawalRequest",
    "LoginRequest",
    "UpdateProfileRequest",
    "WithdrawalRequest",
    # Responses
    "AccountPublicResponse",
    "AccountResponse",
    "AvailableGameResponse",
    "BalanceResponse",
    "BracketRoundResponse",
    "ChatMessageResponse",
    "ChessComRatingResponse",
    "DepositResponse",
    "EarningsEntryResponse",
    "GameResponse",
    "LeaderboardEntryResponse",
    "LoginResponse",
    "PairingResponse",
    "ParticipantResponse",
    "PayoutResponse",
    "RefundResponse",
    "SettlementResponse",
    "TokenResponse",
    "TournamentJoinResponse",
    "TournamentResponse",
    "TransferResponse",
]
