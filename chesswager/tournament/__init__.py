"""
Tournament engine for winner-take-all chess tournaments.

This module provides:
- Registration with atomic seat counting and entry-fee escrow
- Single-elimination brackets with seeded pairing and byes
- Prize settlement and refunds through the ledger
"""

from .bracket import Pairing, pair_round, rounds_needed
from .engine import TournamentEngine
from .settlement import PrizeSettlement, RefundSummary, TournamentSettlement

__all__ = [
    "TournamentEngine",
    "TournamentSettlement",
    "PrizeSettlement",
    "RefundSummary",
    "Pairing",
    "pair_round",
    "rounds_needed",
]
