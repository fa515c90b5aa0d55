"""
Tournament Engine.

State machine: open -> active -> completed, or open -> cancelled.

Registration, start, bracket progression and payout all run inside the
caller's transaction. Status and counter changes are conditional updates so
concurrent joins can never overfill a tournament and a tournament can only
start, conclude or cancel once.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from chesswager.middleware.prometheus import record_tournament_completed
from chesswager.models.account import Account
from chesswager.models.base import MONEY_QUANTUM, utcnow
from chesswager.models.game import GameStatus
from chesswager.models.tournament import (
    Tournament,
    TournamentGame,
    TournamentParticipant,
    TournamentStatus,
)
from chesswager.models.wallet import LedgerReason
from chesswager.services.game import GameRegistry
from chesswager.services.ledger import LedgerService
from chesswager.utils.errors import (
    AlreadyJoined,
    ChessWagerError,
    ErrorCode,
    InvalidAmount,
    InvalidTransition,
    NotAParticipant,
    NotFound,
    NotOpen,
    TournamentFull,
)

from .bracket import pair_round
from .settlement import PrizeSettlement, RefundSummary, TournamentSettlement

logger = logging.getLogger(__name__)

MIN_PARTICIPANTS = 2
MAX_PARTICIPANTS = 64


@dataclass
class ParticipantView:
    account_id: str
    username: str
    rating: int
    seed: int
    eliminated: bool
    placement: Optional[int]
    joined_at: Any


class TournamentEngine:
    """Winner-take-all single-elimination tournaments."""

    def __init__(
        self,
        session: AsyncSession,
        registry: Optional[GameRegistry] = None,
        ledger: Optional[LedgerService] = None,
    ) -> None:
        self.session = session
        self.ledger = ledger or (registry.ledger if registry else LedgerService(session))
        self.registry = registry or GameRegistry(session, ledger=self.ledger)
        self.settlement = TournamentSettlement(session, self.ledger)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def create_tournament(
        self,
        name: str,
        entry_fee: Decimal,
        max_participants: int,
        time_control: str,
        description: Optional[str] = None,
        creator_id: Optional[str] = None,
    ) -> Tournament:
        """Create an open tournament with no participants and an empty pool.

        Raises:
            ChessWagerError: max_participants outside [2, 64] or empty name
            InvalidAmount: Negative or too precise entry fee
            InvalidTimeControl: Time control not in "M+S" form
        """
        if not MIN_PARTICIPANTS <= max_participants <= MAX_PARTICIPANTS:
            raise ChessWagerError(
                ErrorCode.INVALID_REQUEST,
                f"max_participants must be between {MIN_PARTICIPANTS} and {MAX_PARTICIPANTS}",
            )
        if not name or not name.strip():
            raise ChessWagerError(ErrorCode.INVALID_REQUEST, "Tournament name is required")

        fee = Decimal(str(entry_fee))
        if not fee.is_finite() or fee < 0 or fee != fee.quantize(MONEY_QUANTUM):
            raise InvalidAmount(fee, "Entry fee must be a non-negative amount with at most 8 decimals")
        self.registry.validate_time_control(time_control)

        tournament = Tournament(
            name=name.strip(),
            description=description,
            creator_id=creator_id,
            entry_fee=fee.quantize(MONEY_QUANTUM),
            prize_pool=Decimal("0"),
            max_participants=max_participants,
            current_participants=0,
            time_control=time_control,
            status=TournamentStatus.OPEN.value,
            current_round=0,
        )
        self.session.add(tournament)
        await self.session.flush()

        logger.info(
            f"Tournament created: id={tournament.id} name={tournament.name} "
            f"fee={tournament.entry_fee} seats={max_participants}"
        )
        return tournament

    async def join_tournament(self, tournament_id: str, account_id: str) -> TournamentParticipant:
        """Register an account and collect its entry fee.

        Participant insert, counter/pool update and fee debit share one
        transaction; on any error the caller rolls back and nothing sticks.
        The tournament starts automatically when the last seat is taken.

        Raises:
            AlreadyJoined: Account is already registered
            NotOpen: Tournament is not open
            TournamentFull: No seats left
            InsufficientFunds: Account cannot pay the entry fee
        """
        tournament = await self._get(tournament_id)
        await self.registry._require_active_account(account_id)

        existing = await self.session.execute(
            select(TournamentParticipant.id).where(
                TournamentParticipant.tournament_id == tournament_id,
                TournamentParticipant.account_id == account_id,
            )
        )
        if existing.first() is not None:
            raise AlreadyJoined(tournament_id, account_id)
        if tournament.status != TournamentStatus.OPEN.value:
            raise self._join_rejection(tournament)

        participant = TournamentParticipant(
            tournament_id=tournament_id,
            account_id=account_id,
            joined_at=utcnow(),
        )
        self.session.add(participant)
        try:
            await self.session.flush()
        except IntegrityError:
            raise AlreadyJoined(tournament_id, account_id)

        result = await self.session.execute(
            update(Tournament)
            .where(
                Tournament.id == tournament_id,
                Tournament.status == TournamentStatus.OPEN.value,
                Tournament.current_participants < Tournament.max_participants,
            )
            .values(
                current_participants=Tournament.current_participants + 1,
                prize_pool=Tournament.prize_pool + tournament.entry_fee,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise self._join_rejection(await self._get(tournament_id))

        if tournament.entry_fee > 0:
            await self.ledger.debit(
                account_id, tournament.entry_fee, LedgerReason.TOURNAMENT_ENTRY, tournament_id
            )

        await self.session.refresh(tournament)
        logger.info(
            f"Tournament joined: id={tournament_id} account={account_id} "
            f"seats={tournament.current_participants}/{tournament.max_participants}"
        )

        if tournament.is_full:
            await self.start_tournament(tournament_id)
        return participant

    async def start_tournament(self, tournament_id: str) -> Tournament:
        """Close registration, seed the field and create round 1.

        Raises:
            InvalidTransition: Not open, or fewer than two participants
        """
        tournament = await self._get(tournament_id)
        if tournament.status != TournamentStatus.OPEN.value:
            raise InvalidTransition("tournament", tournament_id, tournament.status, "start")
        if tournament.current_participants < MIN_PARTICIPANTS:
            raise InvalidTransition(
                "tournament", tournament_id, "under-subscribed", "start"
            )

        result = await self.session.execute(
            update(Tournament)
            .where(
                Tournament.id == tournament_id,
                Tournament.status == TournamentStatus.OPEN.value,
            )
            .values(
                status=TournamentStatus.ACTIVE.value,
                current_round=1,
                start_time=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = await self._get(tournament_id)
            raise InvalidTransition("tournament", tournament_id, current.status, "start")

        # Seed by rating, earliest registration breaks ties
        rows = await self.session.execute(
            select(TournamentParticipant)
            .join(Account, Account.id == TournamentParticipant.account_id)
            .where(TournamentParticipant.tournament_id == tournament_id)
            .order_by(Account.rating.desc(), TournamentParticipant.joined_at.asc())
        )
        participants = list(rows.scalars().all())
        for seed, participant in enumerate(participants, start=1):
            participant.seed = seed
        await self.session.flush()

        await self.session.refresh(tournament)
        await self._create_round(tournament, 1, [p.account_id for p in participants], set())

        logger.info(
            f"Tournament started: id={tournament_id} players={len(participants)}"
        )
        return tournament

    async def record_result(
        self,
        tournament_id: str,
        game_id: str,
        winner_id: str,
    ) -> Optional[PrizeSettlement]:
        """Record who advanced from a bracket game.

        Eliminates the loser. When every pairing of the round is decided the
        next round is created; when one player is left the tournament
        concludes.

        Returns:
            The prize settlement when this result ended the tournament
        """
        tournament = await self._get(tournament_id)
        if tournament.status != TournamentStatus.ACTIVE.value:
            raise InvalidTransition("tournament", tournament_id, tournament.status, "record result for")

        result = await self.session.execute(
            select(TournamentGame).where(
                TournamentGame.tournament_id == tournament_id,
                TournamentGame.game_id == game_id,
            )
        )
        slot = result.scalar_one_or_none()
        if slot is None:
            raise NotFound("Tournament game", game_id)
        if winner_id not in (slot.white_id, slot.black_id):
            raise NotAParticipant(game_id, winner_id)

        decided = await self.session.execute(
            update(TournamentGame)
            .where(TournamentGame.id == slot.id, TournamentGame.winner_id.is_(None))
            .values(winner_id=winner_id)
            .execution_options(synchronize_session=False)
        )
        if decided.rowcount != 1:
            logger.debug(f"Bracket game already decided: {game_id}")
            return None

        loser_id = slot.black_id if winner_id == slot.white_id else slot.white_id
        await self.session.execute(
            update(TournamentParticipant)
            .where(
                TournamentParticipant.tournament_id == tournament_id,
                TournamentParticipant.account_id == loser_id,
            )
            .values(eliminated=True, eliminated_round=slot.round)
            .execution_options(synchronize_session=False)
        )
        logger.info(
            f"Bracket result: tournament={tournament_id} round={slot.round} "
            f"winner={winner_id} eliminated={loser_id}"
        )
        return await self._advance_if_round_complete(tournament, slot.round)

    async def conclude_tournament(self, tournament_id: str, winner_id: str) -> PrizeSettlement:
        """Pay the whole prize pool to the winner and complete the tournament.

        Raises:
            InvalidTransition: Tournament is not active
            NotAParticipant: Winner is not registered
        """
        tournament = await self._get(tournament_id)
        if tournament.status != TournamentStatus.ACTIVE.value:
            raise InvalidTransition("tournament", tournament_id, tournament.status, "conclude")
        if not await self._is_participant(tournament_id, winner_id):
            raise NotAParticipant(tournament_id, winner_id)

        result = await self.session.execute(
            update(Tournament)
            .where(
                Tournament.id == tournament_id,
                Tournament.status == TournamentStatus.ACTIVE.value,
            )
            .values(
                status=TournamentStatus.COMPLETED.value,
                winner_id=winner_id,
                end_time=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = await self._get(tournament_id)
            raise InvalidTransition("tournament", tournament_id, current.status, "conclude")

        await self._abandon_open_games(tournament_id)
        await self.session.refresh(tournament)
        settlement = await self.settlement.settle(tournament, winner_id)
        await self.session.refresh(tournament)
        record_tournament_completed()
        return settlement

    async def cancel_tournament(self, tournament_id: str) -> RefundSummary:
        """Cancel an open tournament and refund every entry fee.

        Raises:
            InvalidTransition: Tournament is not open
        """
        tournament = await self._get(tournament_id)
        if tournament.status != TournamentStatus.OPEN.value:
            raise InvalidTransition("tournament", tournament_id, tournament.status, "cancel")

        result = await self.session.execute(
            update(Tournament)
            .where(
                Tournament.id == tournament_id,
                Tournament.status == TournamentStatus.OPEN.value,
            )
            .values(status=TournamentStatus.CANCELLED.value, end_time=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = await self._get(tournament_id)
            raise InvalidTransition("tournament", tournament_id, current.status, "cancel")

        await self.session.refresh(tournament)
        summary = await self.settlement.refund_all(tournament)
        await self.session.refresh(tournament)
        logger.info(f"Tournament cancelled: id={tournament_id}")
        return summary

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_tournament(self, tournament_id: str) -> Tournament:
        return await self._get(tournament_id)

    async def list_open_tournaments(self, limit: int = 50) -> List[Tournament]:
        return await self.list_tournaments(TournamentStatus.OPEN, limit)

    async def list_tournaments(
        self,
        status: Optional[TournamentStatus] = None,
        limit: int = 50,
    ) -> List[Tournament]:
        query = select(Tournament).order_by(Tournament.created_at.desc()).limit(limit)
        if status is not None:
            query = query.where(Tournament.status == TournamentStatus(status).value)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_participants(self, tournament_id: str) -> List[ParticipantView]:
        await self._get(tournament_id)
        rows = await self.session.execute(
            select(TournamentParticipant, Account.username, Account.rating)
            .join(Account, Account.id == TournamentParticipant.account_id)
            .where(TournamentParticipant.tournament_id == tournament_id)
            .order_by(TournamentParticipant.joined_at.asc())
            .execution_options(populate_existing=True)
        )
        return [
            ParticipantView(
                account_id=p.account_id,
                username=username,
                rating=rating,
                seed=p.seed,
                eliminated=p.eliminated,
                placement=p.placement,
                joined_at=p.joined_at,
            )
            for p, username, rating in rows.all()
        ]

    async def get_bracket(self, tournament_id: str) -> List[Dict[str, Any]]:
        """Rounds of the bracket, each a list of pairings in slot order."""
        await self._get(tournament_id)
        result = await self.session.execute(
            select(TournamentGame)
            .where(TournamentGame.tournament_id == tournament_id)
            .order_by(TournamentGame.round.asc(), TournamentGame.slot.asc())
            .execution_options(populate_existing=True)
        )
        rounds: Dict[int, List[Dict[str, Any]]] = {}
        for slot in result.scalars().all():
            rounds.setdefault(slot.round, []).append({
                "slot": slot.slot,
                "gameId": slot.game_id,
                "whiteId": slot.white_id,
                "blackId": slot.black_id,
                "winnerId": slot.winner_id,
                "bye": slot.is_bye,
            })
        return [{"round": number, "pairings": pairings} for number, pairings in sorted(rounds.items())]

    # =========================================================================
    # Internals
    # =========================================================================

    async def _get(self, tournament_id: str) -> Tournament:
        result = await self.session.execute(
            select(Tournament)
            .where(Tournament.id == tournament_id)
            .execution_options(populate_existing=True)
        )
        tournament = result.scalar_one_or_none()
        if tournament is None:
            raise NotFound("Tournament", tournament_id)
        return tournament

    @staticmethod
    def _join_rejection(tournament: Tournament) -> ChessWagerError:
        # A tournament that filled up and auto-started is full, not merely closed
        if tournament.is_full and tournament.status in (
            TournamentStatus.OPEN.value,
            TournamentStatus.ACTIVE.value,
        ):
            return TournamentFull(tournament.id, tournament.max_participants)
        return NotOpen(tournament.id, tournament.status)

    async def _is_participant(self, tournament_id: str, account_id: str) -> bool:
        result = await self.session.execute(
            select(TournamentParticipant.id).where(
                TournamentParticipant.tournament_id == tournament_id,
                TournamentParticipant.account_id == account_id,
            )
        )
        return result.first() is not None

    async def _create_round(
        self,
        tournament: Tournament,
        round_number: int,
        seeded: List[str],
        had_bye: set,
    ) -> None:
        for pairing in pair_round(seeded, had_bye):
            if pairing.is_bye:
                self.session.add(TournamentGame(
                    tournament_id=tournament.id,
                    round=round_number,
                    slot=pairing.slot,
                    white_id=pairing.white_id,
                    winner_id=pairing.white_id,
                ))
                continue

            game = await self.registry.create_tournament_game(
                tournament.id, pairing.white_id, pairing.black_id, tournament.time_control
            )
            self.session.add(TournamentGame(
                tournament_id=tournament.id,
                game_id=game.id,
                round=round_number,
                slot=pairing.slot,
                white_id=pairing.white_id,
                black_id=pairing.black_id,
            ))
        await self.session.flush()
        logger.info(
            f"Round created: tournament={tournament.id} round={round_number} players={len(seeded)}"
        )

    async def _advance_if_round_complete(
        self,
        tournament: Tournament,
        round_number: int,
    ) -> Optional[PrizeSettlement]:
        pending = await self.session.execute(
            select(func.count(TournamentGame.id)).where(
                TournamentGame.tournament_id == tournament.id,
                TournamentGame.round == round_number,
                TournamentGame.winner_id.is_(None),
            )
        )
        if pending.scalar_one() > 0:
            return None

        rows = await self.session.execute(
            select(TournamentGame.winner_id)
            .join(
                TournamentParticipant,
                (TournamentParticipant.account_id == TournamentGame.winner_id)
                & (TournamentParticipant.tournament_id == TournamentGame.tournament_id),
            )
            .where(
                TournamentGame.tournament_id == tournament.id,
                TournamentGame.round == round_number,
            )
            .order_by(TournamentParticipant.seed.asc())
        )
        survivors = list(rows.scalars().all())

        if len(survivors) == 1:
            return await self.conclude_tournament(tournament.id, survivors[0])

        advanced = await self.session.execute(
            update(Tournament)
            .where(
                Tournament.id == tournament.id,
                Tournament.current_round == round_number,
            )
            .values(current_round=round_number + 1)
            .execution_options(synchronize_session=False)
        )
        if advanced.rowcount != 1:
            return None

        byes = await self.session.execute(
            select(TournamentGame.white_id).where(
                TournamentGame.tournament_id == tournament.id,
                TournamentGame.black_id.is_(None),
            )
        )
        await self.session.refresh(tournament)
        await self._create_round(tournament, round_number + 1, survivors, set(byes.scalars().all()))
        return None

    async def _abandon_open_games(self, tournament_id: str) -> None:
        """Cancel bracket games still in play when a tournament is concluded early."""
        result = await self.session.execute(
            select(TournamentGame.game_id).where(
                TournamentGame.tournament_id == tournament_id,
                TournamentGame.game_id.is_not(None),
                TournamentGame.winner_id.is_(None),
            )
        )
        for game_id in result.scalars().all():
            game = await self.registry.get_game(game_id)
            if game.status == GameStatus.ACTIVE.value:
                await self.registry.cancel_game(game_id, reason="tournament_concluded", forfeit=True)
