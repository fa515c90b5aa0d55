"""
Tournament prize settlement.

Features:
- Winner-take-all prize payout through the LedgerService
- Final placements from elimination rounds
- Failed payouts flagged for reconciliation, never dropped

Usage:
    settlement = TournamentSettlement(session, ledger)
    summary = await settlement.settle(tournament, winner_id)
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from chesswager.models.account import Account
from chesswager.models.tournament import Tournament, TournamentParticipant
from chesswager.models.wallet import LedgerReason
from chesswager.services.game import PayoutResult
from chesswager.services.ledger import LedgerService
from chesswager.utils.errors import ChessWagerError

logger = logging.getLogger(__name__)


@dataclass
class PrizeSettlement:
    """Summary of a concluded tournament."""

    tournament_id: str
    winner_id: str
    prize_pool: Decimal
    payout: Optional[PayoutResult] = None
    placements: Dict[str, int] = field(default_factory=dict)

    @property
    def paid(self) -> bool:
        return self.payout is None or self.payout.success


@dataclass
class RefundSummary:
    tournament_id: str
    refunds: List[PayoutResult] = field(default_factory=list)

    @property
    def successful_refunds(self) -> int:
        return sum(1 for r in self.refunds if r.success)

    @property
    def failed_refunds(self) -> int:
        return sum(1 for r in self.refunds if not r.success)


def compute_placements(
    participants: List[TournamentParticipant],
    winner_id: str,
    final_round: int,
) -> Dict[str, int]:
    """Placement for every participant.

    Winner is 1st. Everyone else ranks by how far they got: players knocked
    out in the same round share a placement. Players still alive when the
    tournament is concluded early rank right behind the winner.
    """
    reached: Dict[str, int] = {}
    for p in participants:
        if p.account_id == winner_id:
            continue
        reached[p.account_id] = p.eliminated_round if p.eliminated else final_round + 1

    placements = {winner_id: 1}
    for account_id, round_reached in reached.items():
        better = sum(1 for other in reached.values() if other > round_reached)
        placements[account_id] = 2 + better
    return placements


class TournamentSettlement:
    """Pays out and refunds tournaments."""

    def __init__(self, session: AsyncSession, ledger: LedgerService) -> None:
        self.session = session
        self.ledger = ledger

    async def settle(self, tournament: Tournament, winner_id: str) -> PrizeSettlement:
        """Credit the whole prize pool to the winner and set placements."""
        prize = tournament.prize_pool
        payout: Optional[PayoutResult] = None

        if prize > 0:
            payout = await self._credit(
                winner_id, prize, LedgerReason.TOURNAMENT_PRIZE, tournament.id,
                flag_reason="tournament_prize_failed",
            )
            if payout.success:
                await self.session.execute(
                    update(Tournament)
                    .where(Tournament.id == tournament.id)
                    .values(prize_pool=Tournament.prize_pool - prize)
                    .execution_options(synchronize_session=False)
                )
                await self.session.execute(
                    update(Account)
                    .where(Account.id == winner_id)
                    .values(total_earnings=Account.total_earnings + prize)
                    .execution_options(synchronize_session=False)
                )

        result = await self.session.execute(
            select(TournamentParticipant)
            .where(TournamentParticipant.tournament_id == tournament.id)
            .execution_options(populate_existing=True)
        )
        participants = list(result.scalars().all())
        placements = compute_placements(participants, winner_id, tournament.current_round)
        for p in participants:
            if p.placement is None:
                p.placement = placements[p.account_id]
        await self.session.flush()

        logger.info(
            f"Tournament settled: id={tournament.id} winner={winner_id} "
            f"prize={prize} paid={payout.success if payout else 'n/a'}"
        )
        return PrizeSettlement(
            tournament_id=tournament.id,
            winner_id=winner_id,
            prize_pool=prize,
            payout=payout,
            placements=placements,
        )

    async def refund_all(self, tournament: Tournament) -> RefundSummary:
        """Refund the entry fee to every participant, one credit each."""
        summary = RefundSummary(tournament_id=tournament.id)
        if tournament.entry_fee <= 0:
            return summary

        result = await self.session.execute(
            select(TournamentParticipant.account_id)
            .where(TournamentParticipant.tournament_id == tournament.id)
            .order_by(TournamentParticipant.joined_at)
        )
        refunded = Decimal("0")
        for account_id in result.scalars().all():
            refund = await self._credit(
                account_id, tournament.entry_fee, LedgerReason.TOURNAMENT_REFUND,
                tournament.id, flag_reason="tournament_refund_failed",
            )
            summary.refunds.append(refund)
            if refund.success:
                refunded += tournament.entry_fee

        if refunded > 0:
            await self.session.execute(
                update(Tournament)
                .where(Tournament.id == tournament.id)
                .values(prize_pool=Tournament.prize_pool - refunded)
                .execution_options(synchronize_session=False)
            )

        logger.info(
            f"Tournament refunded: id={tournament.id} "
            f"ok={summary.successful_refunds} failed={summary.failed_refunds}"
        )
        return summary

    async def _credit(
        self,
        account_id: str,
        amount: Decimal,
        reason: LedgerReason,
        tournament_id: str,
        flag_reason: str,
    ) -> PayoutResult:
        try:
            await self.ledger.credit(account_id, amount, reason, tournament_id)
        except ChessWagerError as e:
            await self.ledger.flag_for_reconciliation(
                account_id=account_id,
                amount=amount,
                reason=flag_reason,
                reference_id=tournament_id,
                details={"errorCode": e.code, "error": e.message},
                error=e,
            )
            return PayoutResult(account_id=account_id, amount=amount, success=False, error=e.code)
        return PayoutResult(account_id=account_id, amount=amount, success=True)
