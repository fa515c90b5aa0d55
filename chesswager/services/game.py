"""Game Registry: wagered game lifecycle.

State machine:
    waiting -> active -> completed
    waiting -> cancelled
    active  -> cancelled   (forfeit only, e.g. disconnect timeout)

Every transition is a conditional UPDATE on the current status, so concurrent
joins, settles and cancels on the same game cannot both win. All balance
movement goes through the LedgerService.
"""

import html
import logging
import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from chesswager.config import get_settings
from chesswager.middleware.prometheus import record_game_cancelled, record_game_settled
from chesswager.models.account import Account, AccountStatus
from chesswager.models.base import MONEY_QUANTUM, generate_id, utcnow
from chesswager.models.game import (
    STARTING_FEN,
    ChatMessage,
    Game,
    GameOutcome,
    GameStatus,
)
from chesswager.models.wallet import LedgerReason
from chesswager.services.chess_rules import ChessRules, MoveVerdict
from chesswager.services.ledger import LedgerService
from chesswager.services.rating import RatingChange, RatingService
from chesswager.utils.errors import (
    AccountInactive,
    AlreadySettled,
    ChessWagerError,
    ErrorCode,
    GameNotActive,
    GameNotCancellable,
    GameNotJoinable,
    IllegalMove,
    InvalidAmount,
    InvalidTimeControl,
    NotAParticipant,
    NotFound,
    OutOfTurn,
    SelfJoin,
)

logger = logging.getLogger(__name__)

# "minutes+increment", e.g. "5+3"
TIME_CONTROL_PATTERN = re.compile(r"^(\d{1,3})\+(\d{1,3})$")

PGN_RESULTS = {
    "1-0": GameOutcome.CREATOR_WINS,
    "0-1": GameOutcome.OPPONENT_WINS,
    "1/2-1/2": GameOutcome.DRAW,
}


@dataclass
class PayoutResult:
    """Result of one payout or refund leg."""

    account_id: str
    amount: Decimal
    success: bool
    error: str | None = None


@dataclass
class SettlementSummary:
    """Summary of a settled or cancelled game."""

    game_id: str
    status: str
    outcome: str | None = None
    winner_id: str | None = None
    tournament_id: str | None = None
    payouts: list[PayoutResult] = field(default_factory=list)
    rating_change: RatingChange | None = None

    @property
    def success_count(self) -> int:
        return sum(1 for p in self.payouts if p.success)

    @property
    def failed_count(self) -> int:
        return sum(1 for p in self.payouts if not p.success)

    @property
    def fully_paid(self) -> bool:
        return self.failed_count == 0


@dataclass
class MoveResult:
    game: Game
    ply: int
    record: dict[str, Any]
    verdict: MoveVerdict | None = None
    settlement: SettlementSummary | None = None


@dataclass
class AvailableGame:
    """Waiting game as shown in the lobby, with the creator's rating."""

    game: Game
    creator_username: str
    creator_rating: int


class GameRegistry:
    """Creates, joins, plays, settles and cancels wagered games."""

    def __init__(
        self,
        session: AsyncSession,
        rules: ChessRules | None = None,
        ledger: LedgerService | None = None,
        rating: RatingService | None = None,
    ) -> None:
        self.session = session
        self.rules = rules
        self.ledger = ledger or LedgerService(session)
        self.rating = rating or RatingService(session)
        self.settings = get_settings()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def create_game(
        self,
        creator_id: str,
        wager: Decimal | str,
        time_control: str,
    ) -> Game:
        """Create a waiting game and escrow the creator's wager.

        Raises:
            InvalidAmount: Wager outside [min_wager, max_wager] or too precise
            InvalidTimeControl: Time control not in "M+S" form
            InsufficientFunds: Creator cannot cover the wager
        """
        amount = self.validate_wager(wager)
        self.validate_time_control(time_control)
        await self._require_active_account(creator_id)

        game_id = generate_id()
        await self.ledger.debit(creator_id, amount, LedgerReason.GAME_WAGER, game_id)

        game = Game(
            id=game_id,
            creator_id=creator_id,
            wager=amount,
            escrow=amount,
            time_control=time_control,
            status=GameStatus.WAITING.value,
            moves=[],
            move_count=0,
            position_fen=STARTING_FEN,
        )
        self.session.add(game)
        await self.session.flush()

        logger.info(
            f"Game created: id={game_id} creator={creator_id} "
            f"wager={amount} time_control={time_control}"
        )
        return game

    async def create_tournament_game(
        self,
        tournament_id: str,
        white_id: str,
        black_id: str,
        time_control: str,
    ) -> Game:
        """Create a zero-wager bracket game that starts immediately."""
        game = Game(
            id=generate_id(),
            creator_id=white_id,
            opponent_id=black_id,
            wager=Decimal("0"),
            escrow=Decimal("0"),
            time_control=time_control,
            status=GameStatus.ACTIVE.value,
            tournament_id=tournament_id,
            moves=[],
            move_count=0,
            position_fen=STARTING_FEN,
            started_at=utcnow(),
        )
        self.session.add(game)
        await self.session.flush()
        return game

    async def join_game(self, game_id: str, opponent_id: str) -> Game:
        """Join a waiting game and escrow the opponent's wager.

        The status flip and the debit share the caller's transaction: if the
        debit fails the caller rolls back and the game stays waiting.

        Raises:
            NotFound: Game does not exist
            SelfJoin: Opponent is the creator
            GameNotJoinable: Game is no longer waiting
            InsufficientFunds: Opponent cannot cover the wager
        """
        game = await self._get(game_id)
        if game.creator_id == opponent_id:
            raise SelfJoin(game_id)
        if game.status != GameStatus.WAITING.value or game.tournament_id:
            raise GameNotJoinable(game_id, game.status)
        await self._require_active_account(opponent_id)

        result = await self.session.execute(
            update(Game)
            .where(
                Game.id == game_id,
                Game.status == GameStatus.WAITING.value,
                Game.opponent_id.is_(None),
            )
            .values(
                status=GameStatus.ACTIVE.value,
                opponent_id=opponent_id,
                escrow=Game.escrow + game.wager,
                started_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = await self._get(game_id)
            raise GameNotJoinable(game_id, current.status)

        await self.ledger.debit(opponent_id, game.wager, LedgerReason.GAME_WAGER, game_id)
        await self.session.refresh(game)

        logger.info(f"Game joined: id={game_id} opponent={opponent_id} escrow={game.escrow}")
        return game

    async def record_move(self, game_id: str, mover_id: str, move: str) -> MoveResult:
        """Append a move to the log of an active game.

        The creator plays white and moves on even plies. When the rules
        oracle reports the game is over, the game is settled.

        Raises:
            NotAParticipant: Mover is not a player of the game
            GameNotActive: Game is not active
            OutOfTurn: It is the other player's turn
            IllegalMove: The rules oracle rejected the move
        """
        game = await self._get(game_id)
        if not game.is_participant(mover_id):
            raise NotAParticipant(game_id, mover_id)
        if game.status != GameStatus.ACTIVE.value:
            raise GameNotActive(game_id, game.status)
        if game.player_to_move() != mover_id:
            raise OutOfTurn(game_id)

        verdict: MoveVerdict | None = None
        fen = game.position_fen
        stored_move = move
        san = None
        if self.rules is not None:
            verdict = self.rules.apply_move(game.position_fen, move)
            if not verdict.legal:
                raise IllegalMove(game_id, move)
            fen = verdict.fen
            stored_move = verdict.move or move
            san = verdict.san

        seen = game.move_count
        record = {
            "ply": seen + 1,
            "accountId": mover_id,
            "move": stored_move,
            "san": san,
            "fen": fen,
            "at": utcnow().isoformat(),
        }

        result = await self.session.execute(
            update(Game)
            .where(
                Game.id == game_id,
                Game.status == GameStatus.ACTIVE.value,
                Game.move_count == seen,
            )
            .values(
                moves=[*(game.moves or []), record],
                move_count=seen + 1,
                position_fen=fen,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = await self._get(game_id)
            if current.status != GameStatus.ACTIVE.value:
                raise GameNotActive(game_id, current.status)
            raise OutOfTurn(game_id)

        await self.session.refresh(game)

        settlement = None
        if verdict is not None and verdict.game_over and verdict.result in PGN_RESULTS:
            logger.info(
                f"Game over by {verdict.termination}: id={game_id} result={verdict.result}"
            )
            settlement = await self.settle_game(game_id, PGN_RESULTS[verdict.result])
            await self.session.refresh(game)

        return MoveResult(
            game=game,
            ply=seen + 1,
            record=record,
            verdict=verdict,
            settlement=settlement,
        )

    async def settle_game(
        self,
        game_id: str,
        outcome: GameOutcome | str,
    ) -> SettlementSummary:
        """Pay out an active game and mark it completed.

        Win: one credit of the whole escrow to the winner. Draw: the wager
        back to each player as two independent credits. A leg that cannot be
        paid is flagged for reconciliation and stays in escrow.

        Raises:
            AlreadySettled: Game is already completed
            GameNotActive: Game is waiting or cancelled
        """
        outcome = GameOutcome(outcome)
        game = await self._get(game_id)
        if game.status == GameStatus.COMPLETED.value:
            raise AlreadySettled(game_id)
        if game.status != GameStatus.ACTIVE.value:
            raise GameNotActive(game_id, game.status)

        if outcome == GameOutcome.CREATOR_WINS:
            winner_id: str | None = game.creator_id
        elif outcome == GameOutcome.OPPONENT_WINS:
            winner_id = game.opponent_id
        else:
            winner_id = None

        result = await self.session.execute(
            update(Game)
            .where(Game.id == game_id, Game.status == GameStatus.ACTIVE.value)
            .values(
                status=GameStatus.COMPLETED.value,
                outcome=outcome.value,
                winner_id=winner_id,
                completed_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = await self._get(game_id)
            if current.status == GameStatus.COMPLETED.value:
                raise AlreadySettled(game_id)
            raise GameNotActive(game_id, current.status)

        if winner_id is not None:
            legs = [(winner_id, game.wager * 2)]
        else:
            legs = [(game.creator_id, game.wager), (game.opponent_id, game.wager)]
        legs = [(account_id, amount) for account_id, amount in legs if amount > 0]

        payouts = await self._pay_legs(game, legs, LedgerReason.GAME_PAYOUT, "game_payout_failed")

        if winner_id is not None:
            won = sum((p.amount for p in payouts if p.success), Decimal("0"))
            if won > 0:
                await self.session.execute(
                    update(Account)
                    .where(Account.id == winner_id)
                    .values(total_earnings=Account.total_earnings + won)
                    .execution_options(synchronize_session=False)
                )

        await self.session.refresh(game)
        rating_change = await self.rating.update_ratings(game)
        record_game_settled(outcome.value)

        summary = SettlementSummary(
            game_id=game_id,
            status=game.status,
            outcome=outcome.value,
            winner_id=winner_id,
            tournament_id=game.tournament_id,
            payouts=payouts,
            rating_change=rating_change,
        )
        logger.info(
            f"Game settled: id={game_id} outcome={outcome.value} "
            f"paid={summary.success_count} failed={summary.failed_count}"
        )

        if game.tournament_id:
            from chesswager.tournament.engine import TournamentEngine

            await TournamentEngine(self.session, registry=self).record_result(
                game.tournament_id,
                game_id,
                self.tournament_advancer(game, outcome),
            )

        return summary

    async def cancel_game(
        self,
        game_id: str,
        reason: str = "cancelled",
        forfeit: bool = False,
        requested_by: str | None = None,
    ) -> SettlementSummary:
        """Cancel a game and refund every escrowed wager to its payer.

        Waiting games can always be cancelled (by the creator when
        ``requested_by`` is given). Active games only with ``forfeit=True``.

        Raises:
            NotAParticipant: ``requested_by`` is not the creator
            GameNotCancellable: Game is completed, cancelled, or active
                without forfeit
        """
        game = await self._get(game_id)
        if requested_by is not None and requested_by != game.creator_id:
            raise NotAParticipant(game_id, requested_by)

        observed = game.status
        cancellable = observed == GameStatus.WAITING.value or (
            observed == GameStatus.ACTIVE.value and forfeit
        )
        if not cancellable:
            raise GameNotCancellable(game_id, observed)

        result = await self.session.execute(
            update(Game)
            .where(Game.id == game_id, Game.status == observed)
            .values(
                status=GameStatus.CANCELLED.value,
                cancel_reason=reason,
                completed_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = await self._get(game_id)
            raise GameNotCancellable(game_id, current.status)

        legs = [(game.creator_id, game.wager)]
        if observed == GameStatus.ACTIVE.value and game.opponent_id:
            legs.append((game.opponent_id, game.wager))
        legs = [(account_id, amount) for account_id, amount in legs if amount > 0]

        refunds = await self._pay_legs(game, legs, LedgerReason.GAME_REFUND, "game_refund_failed")
        await self.session.refresh(game)
        record_game_cancelled(reason)

        logger.info(
            f"Game cancelled: id={game_id} reason={reason} from={observed} "
            f"refunded={sum(1 for r in refunds if r.success)}/{len(refunds)}"
        )
        return SettlementSummary(
            game_id=game_id,
            status=game.status,
            tournament_id=game.tournament_id,
            payouts=refunds,
        )

    async def resign(self, game_id: str, account_id: str) -> SettlementSummary:
        """Resign an active game; the other player wins."""
        game = await self._get(game_id)
        if not game.is_participant(account_id):
            raise NotAParticipant(game_id, account_id)
        if game.status == GameStatus.COMPLETED.value:
            raise AlreadySettled(game_id)
        if game.status != GameStatus.ACTIVE.value:
            raise GameNotActive(game_id, game.status)

        outcome = (
            GameOutcome.OPPONENT_WINS
            if account_id == game.creator_id
            else GameOutcome.CREATOR_WINS
        )
        logger.info(f"Player resigned: game={game_id} account={account_id}")
        return await self.settle_game(game_id, outcome)

    @staticmethod
    def tournament_advancer(game: Game, outcome: GameOutcome) -> str:
        """Player who advances from a bracket game.

        A drawn bracket game is scored Armageddon style: black advances.
        """
        if outcome == GameOutcome.CREATOR_WINS:
            return game.creator_id
        return game.opponent_id  # type: ignore[return-value]

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_game(self, game_id: str) -> Game:
        return await self._get(game_id)

    async def list_available_games(
        self,
        exclude_account_id: str | None = None,
        limit: int = 50,
    ) -> list[AvailableGame]:
        """Waiting games, newest first, with the creator's rating."""
        query = (
            select(Game, Account.username, Account.rating)
            .join(Account, Account.id == Game.creator_id)
            .where(Game.status == GameStatus.WAITING.value)
            .order_by(Game.created_at.desc())
            .limit(limit)
        )
        if exclude_account_id:
            query = query.where(Game.creator_id != exclude_account_id)

        rows = await self.session.execute(query)
        return [
            AvailableGame(game=game, creator_username=username, creator_rating=rating)
            for game, username, rating in rows.all()
        ]

    async def games_for_account(self, account_id: str, limit: int = 50) -> list[Game]:
        result = await self.session.execute(
            select(Game)
            .where(or_(Game.creator_id == account_id, Game.opponent_id == account_id))
            .order_by(Game.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def active_game_for_account(self, account_id: str) -> Game | None:
        result = await self.session.execute(
            select(Game)
            .where(
                Game.status == GameStatus.ACTIVE.value,
                or_(Game.creator_id == account_id, Game.opponent_id == account_id),
            )
            .order_by(Game.started_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    # =========================================================================
    # Chat
    # =========================================================================

    async def add_chat_message(self, game_id: str, account_id: str, text: str) -> ChatMessage:
        """Persist a chat line from a player of the game.

        Raises:
            NotAParticipant: Author is not a player
            ChessWagerError: Empty or overlong message
        """
        game = await self._get(game_id)
        if not game.is_participant(account_id):
            raise NotAParticipant(game_id, account_id)

        content = (text or "").strip()
        if not content:
            raise ChessWagerError(ErrorCode.INVALID_REQUEST, "Message cannot be empty")
        # Stored escaped, so the bound applies to the escaped form
        content = html.escape(content)
        if len(content) > self.settings.chat_max_length:
            raise ChessWagerError(
                ErrorCode.INVALID_REQUEST,
                f"Message cannot exceed {self.settings.chat_max_length} characters",
            )

        message = ChatMessage(
            game_id=game_id,
            account_id=account_id,
            message=content,
        )
        self.session.add(message)
        await self.session.flush()
        return message

    async def get_chat_messages(self, game_id: str, limit: int = 100) -> list[ChatMessage]:
        await self._get(game_id)
        result = await self.session.execute(
            select(ChatMessage)
            .where(ChatMessage.game_id == game_id)
            .order_by(ChatMessage.created_at.asc())
            .limit(limit)
        )
        return list(result.scalars().all())

    # =========================================================================
    # Skill matching (advisory)
    # =========================================================================

    @staticmethod
    def skill_gap(rating: int, other_rating: int) -> int:
        return abs(rating - other_rating)

    def requires_confirmation(self, rating: int, other_rating: int) -> bool:
        """Whether a client should confirm before joining across this gap.

        Advisory only: joining is never blocked on rating.
        """
        return self.skill_gap(rating, other_rating) > self.settings.skill_mismatch_threshold

    # =========================================================================
    # Validation
    # =========================================================================

    def validate_wager(self, wager: Decimal | str) -> Decimal:
        try:
            amount = Decimal(str(wager))
        except InvalidOperation:
            raise InvalidAmount(str(wager), "Not a number")
        if not amount.is_finite():
            raise InvalidAmount(amount, "Not a number")
        if amount != amount.quantize(MONEY_QUANTUM):
            raise InvalidAmount(amount, "At most 8 decimal places")
        if amount < self.settings.min_wager or amount > self.settings.max_wager:
            raise InvalidAmount(
                amount,
                f"Wager must be between {self.settings.min_wager} and {self.settings.max_wager}",
            )
        return amount.quantize(MONEY_QUANTUM)

    @staticmethod
    def validate_time_control(time_control: str) -> tuple[int, int]:
        match = TIME_CONTROL_PATTERN.match(time_control or "")
        if not match:
            raise InvalidTimeControl(time_control)
        minutes, increment = int(match.group(1)), int(match.group(2))
        if minutes == 0 and increment == 0:
            raise InvalidTimeControl(time_control)
        return minutes, increment

    # =========================================================================
    # Internals
    # =========================================================================

    async def _get(self, game_id: str) -> Game:
        result = await self.session.execute(
            select(Game)
            .where(Game.id == game_id)
            .execution_options(populate_existing=True)
        )
        game = result.scalar_one_or_none()
        if game is None:
            raise NotFound("Game", game_id)
        return game

    async def _require_active_account(self, account_id: str) -> None:
        result = await self.session.execute(
            select(Account.status).where(Account.id == account_id)
        )
        status = result.scalar_one_or_none()
        if status is None:
            raise NotFound("Account", account_id)
        if status != AccountStatus.ACTIVE.value:
            raise AccountInactive(account_id)

    async def _pay_legs(
        self,
        game: Game,
        legs: list[tuple[str, Decimal]],
        reason: LedgerReason,
        flag_reason: str,
    ) -> list[PayoutResult]:
        """Credit each leg independently and release what was paid from escrow."""
        results: list[PayoutResult] = []
        paid = Decimal("0")
        for account_id, amount in legs:
            try:
                await self.ledger.credit(account_id, amount, reason, game.id)
            except ChessWagerError as e:
                await self.ledger.flag_for_reconciliation(
                    account_id=account_id,
                    amount=amount,
                    reason=flag_reason,
                    reference_id=game.id,
                    details={"errorCode": e.code, "error": e.message},
                    error=e,
                )
                results.append(
                    PayoutResult(account_id=account_id, amount=amount, success=False, error=e.code)
                )
                continue
            paid += amount
            results.append(PayoutResult(account_id=account_id, amount=amount, success=True))

        if paid > 0:
            await self.session.execute(
                update(Game)
                .where(Game.id == game.id)
                .values(escrow=Game.escrow - paid)
                .execution_options(synchronize_session=False)
            )
        return results
