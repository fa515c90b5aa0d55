"""Custom exception classes for core errors.

Every error carries a stable code and a user-facing message. The HTTP layer
and the realtime gateway both serialise errors through ``to_dict`` so no
internal detail reaches clients.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Standard error codes."""

    # General errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    INVALID_REQUEST = "INVALID_REQUEST"
    NOT_FOUND = "NOT_FOUND"
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"
    ACCOUNT_INACTIVE = "ACCOUNT_INACTIVE"
    FORBIDDEN = "FORBIDDEN"

    # Ledger errors
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    LEDGER_CONTENTION = "LEDGER_CONTENTION"
    INVALID_AMOUNT = "INVALID_AMOUNT"

    # Game errors
    GAME_NOT_JOINABLE = "GAME_NOT_JOINABLE"
    SELF_JOIN = "SELF_JOIN"
    NOT_A_PARTICIPANT = "NOT_A_PARTICIPANT"
    OUT_OF_TURN = "OUT_OF_TURN"
    ILLEGAL_MOVE = "ILLEGAL_MOVE"
    GAME_NOT_ACTIVE = "GAME_NOT_ACTIVE"
    GAME_NOT_CANCELLABLE = "GAME_NOT_CANCELLABLE"
    ALREADY_SETTLED = "ALREADY_SETTLED"
    INVALID_TIME_CONTROL = "INVALID_TIME_CONTROL"

    # Tournament errors
    ALREADY_JOINED = "ALREADY_JOINED"
    TOURNAMENT_FULL = "TOURNAMENT_FULL"
    NOT_OPEN = "NOT_OPEN"
    INVALID_TRANSITION = "INVALID_TRANSITION"


class ChessWagerError(Exception):
    """Base exception for core errors.

    Attributes:
        code: Error code for programmatic handling
        message: User-friendly error message
        details: Additional error details
        status_code: HTTP status used by the API layer
    """

    status_code: int = 400

    def __init__(
        self,
        code: ErrorCode | str,
        message: str,
        details: dict[str, Any] | None = None,
        status_code: int | None = None,
    ):
        self.code = code if isinstance(code, str) else code.value
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class NotFound(ChessWagerError):
    """Raised when an entity does not exist."""

    status_code = 404

    def __init__(self, entity: str, entity_id: str):
        super().__init__(
            code=ErrorCode.NOT_FOUND,
            message=f"{entity} not found: {entity_id}",
            details={"entity": entity, "id": entity_id},
        )


class AuthenticationFailed(ChessWagerError):
    """Raised when a credential cannot be verified."""

    status_code = 401

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(code=ErrorCode.AUTHENTICATION_FAILED, message=message)


class AccountInactive(ChessWagerError):
    """Raised when a deactivated account tries to act."""

    status_code = 403

    def __init__(self, account_id: str):
        super().__init__(
            code=ErrorCode.ACCOUNT_INACTIVE,
            message="Account is deactivated",
            details={"accountId": account_id},
        )


# =============================================================================
# Ledger Errors
# =============================================================================


class InvalidAmount(ChessWagerError):
    """Raised when an amount is not positive or out of range."""

    def __init__(self, amount: Decimal | str, reason: str = "Amount must be positive"):
        super().__init__(
            code=ErrorCode.INVALID_AMOUNT,
            message=f"Invalid amount {amount}: {reason}",
            details={"amount": str(amount)},
        )


class InsufficientFunds(ChessWagerError):
    """Raised when a debit would make a balance negative."""

    def __init__(self, account_id: str, required: Decimal, available: Decimal):
        super().__init__(
            code=ErrorCode.INSUFFICIENT_FUNDS,
            message=f"Insufficient funds: required {required}, available {available}",
            details={
                "accountId": account_id,
                "required": str(required),
                "available": str(available),
            },
        )


class LedgerContention(ChessWagerError):
    """Raised when the balance compare-and-swap keeps losing races."""

    status_code = 409

    def __init__(self, account_id: str, attempts: int):
        super().__init__(
            code=ErrorCode.LEDGER_CONTENTION,
            message="Balance is busy, please retry",
            details={"accountId": account_id, "attempts": attempts},
        )


# =============================================================================
# Game Errors
# =============================================================================


class GameNotJoinable(ChessWagerError):
    """Raised when joining a game that is no longer waiting."""

    status_code = 409

    def __init__(self, game_id: str, status: str | None = None):
        super().__init__(
            code=ErrorCode.GAME_NOT_JOINABLE,
            message="Game is not open for joining",
            details={"gameId": game_id, "status": status},
        )


class SelfJoin(ChessWagerError):
    """Raised when the creator tries to join their own game."""

    def __init__(self, game_id: str):
        super().__init__(
            code=ErrorCode.SELF_JOIN,
            message="You cannot join your own game",
            details={"gameId": game_id},
        )


class NotAParticipant(ChessWagerError):
    """Raised when a non-player acts on a game."""

    status_code = 403

    def __init__(self, game_id: str, account_id: str):
        super().__init__(
            code=ErrorCode.NOT_A_PARTICIPANT,
            message="You are not a player in this game",
            details={"gameId": game_id, "accountId": account_id},
        )


class OutOfTurn(ChessWagerError):
    """Raised when a player moves out of turn."""

    status_code = 409

    def __init__(self, game_id: str):
        super().__init__(
            code=ErrorCode.OUT_OF_TURN,
            message="It's not your turn",
            details={"gameId": game_id},
        )


class IllegalMove(ChessWagerError):
    """Raised when the rules engine rejects a move."""

    def __init__(self, game_id: str, move: str):
        super().__init__(
            code=ErrorCode.ILLEGAL_MOVE,
            message=f"Illegal move: {move}",
            details={"gameId": game_id, "move": move},
        )


class GameNotActive(ChessWagerError):
    """Raised when an operation needs an active game."""

    status_code = 409

    def __init__(self, game_id: str, status: str):
        super().__init__(
            code=ErrorCode.GAME_NOT_ACTIVE,
            message=f"Game is {status}",
            details={"gameId": game_id, "status": status},
        )


class GameNotCancellable(ChessWagerError):
    """Raised when a game cannot be cancelled in its current state."""

    status_code = 409

    def __init__(self, game_id: str, status: str):
        super().__init__(
            code=ErrorCode.GAME_NOT_CANCELLABLE,
            message=f"Game cannot be cancelled while {status}",
            details={"gameId": game_id, "status": status},
        )


class AlreadySettled(ChessWagerError):
    """Raised when settling a game that already completed."""

    status_code = 409

    def __init__(self, game_id: str):
        super().__init__(
            code=ErrorCode.ALREADY_SETTLED,
            message="Game has already been settled",
            details={"gameId": game_id},
        )


class InvalidTimeControl(ChessWagerError):
    """Raised for a malformed time control descriptor."""

    def __init__(self, time_control: str):
        super().__init__(
            code=ErrorCode.INVALID_TIME_CONTROL,
            message=f"Invalid time control: {time_control}",
            details={"timeControl": time_control},
        )


# =============================================================================
# Tournament Errors
# =============================================================================


class AlreadyJoined(ChessWagerError):
    """Raised when an account joins the same tournament twice."""

    status_code = 409

    def __init__(self, tournament_id: str, account_id: str):
        super().__init__(
            code=ErrorCode.ALREADY_JOINED,
            message="Already registered for this tournament",
            details={"tournamentId": tournament_id, "accountId": account_id},
        )


class TournamentFull(ChessWagerError):
    """Raised when a tournament has no free seats."""

    status_code = 409

    def __init__(self, tournament_id: str, max_participants: int):
        super().__init__(
            code=ErrorCode.TOURNAMENT_FULL,
            message="Tournament is full",
            details={"tournamentId": tournament_id, "maxParticipants": max_participants},
        )


class NotOpen(ChessWagerError):
    """Raised when registering for a tournament that is not open."""

    status_code = 409

    def __init__(self, tournament_id: str, status: str):
        super().__init__(
            code=ErrorCode.NOT_OPEN,
            message="Tournament is not open for registration",
            details={"tournamentId": tournament_id, "status": status},
        )


class InvalidTransition(ChessWagerError):
    """Raised when a lifecycle transition is not allowed."""

    status_code = 409

    def __init__(self, entity: str, entity_id: str, status: str, action: str):
        super().__init__(
            code=ErrorCode.INVALID_TRANSITION,
            message=f"Cannot {action} {entity} while {status}",
            details={"id": entity_id, "status": status, "action": action},
        )
