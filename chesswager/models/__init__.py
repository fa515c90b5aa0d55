"""Database models."""

from chesswager.models.account import Account, AccountStatus
from chesswager.models.base import Base, TimestampMixin, UUIDMixin
from chesswager.models.game import ChatMessage, Game, GameOutcome, GameStatus
from chesswager.models.tournament import (
    Tournament,
    TournamentGame,
    TournamentParticipant,
    TournamentStatus,
)
from chesswager.models.wallet import (
    LedgerEntry,
    LedgerReason,
    ReconciliationFlag,
    TransferKind,
    TransferMethod,
    TransferStatus,
    WalletTransfer,
)

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "UUIDMixin",
    # Account
    "Account",
    "AccountStatus",
    # Game
    "Game",
    "GameStatus",
    "GameOutcome",
    "ChatMessage",
    # Tournament
    "Tournament",
    "TournamentStatus",
    "TournamentParticipant",
    "TournamentGame",
    # Wallet
    "WalletTransfer",
    "TransferKind",
    "TransferMethod",
    "TransferStatus",
    "LedgerEntry",
    "LedgerReason",
    "ReconciliationFlag",
]
