"""Business logic services."""

from chesswager.services.account import AccountService, EarningsEntry, LeaderboardEntry
from chesswager.services.chess_rules import ChessRules, MoveVerdict, PythonChessRules
from chesswager.services.game import (
    AvailableGame,
    GameRegistry,
    MoveResult,
    PayoutResult,
    SettlementSummary,
)
from chesswager.services.identity import ExternalIdentity, IdentityProvider, JWTIdentityProvider
from chesswager.services.ledger import LedgerService, TransferResult
from chesswager.services.payments import LocalPaymentGateway, PaymentGateway, PaymentIntent
from chesswager.services.rating import RatingChange, RatingService
from chesswager.services.rating_lookup import ChessComClient, ExternalRating, RatingLookup
from chesswager.services.wallet import WalletService

__all__ = [
    # Account
    "AccountService",
    "LeaderboardEntry",
    "EarningsEntry",
    # Ledger
    "LedgerService",
    "TransferResult",
    # Games
    "GameRegistry",
    "AvailableGame",
    "MoveResult",
    "PayoutResult",
    "SettlementSummary",
    # Rating
    "RatingService",
    "RatingChange",
    # Wallet
    "WalletService",
    # Collaborators
    "ChessRules",
    "MoveVerdict",
    "PythonChessRules",
    "IdentityProvider",
    "ExternalIdentity",
    "JWTIdentityProvider",
    "PaymentGateway",
    "PaymentIntent",
    "LocalPaymentGateway",
    "RatingLookup",
    "ExternalRating",
    "ChessComClient",
]
