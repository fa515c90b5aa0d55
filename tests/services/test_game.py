"""Tests for GameRegistry: lifecycle, moves, settlement and cancellation."""

from decimal import Decimal

import pytest
from sqlalchemy import select

from chesswager.models.account import Account
from chesswager.models.game import GameOutcome, GameStatus
from chesswager.models.wallet import ReconciliationFlag
from chesswager.services.chess_rules import PythonChessRules
from chesswager.services.game import GameRegistry
from chesswager.services.ledger import LedgerService
from chesswager.utils.errors import (
    AlreadySettled,
    ChessWagerError,
    GameNotActive,
    GameNotCancellable,
    GameNotJoinable,
    IllegalMove,
    InsufficientFunds,
    InvalidAmount,
    InvalidTimeControl,
    NotAParticipant,
    NotFound,
    OutOfTurn,
    SelfJoin,
)
from tests.conftest import balance_of

FOOLS_MATE = ["f2f3", "e7e5", "g2g4", "d8h4"]


@pytest.fixture
def registry(db_session) -> GameRegistry:
    return GameRegistry(db_session, rules=PythonChessRules())


@pytest.fixture
async def active_game(registry, db_session, make_account):
    """Active game with a 0.3 wager between two accounts funded with 1."""
    creator = await make_account(balance="1")
    opponent = await make_account(balance="1")
    game = await registry.create_game(creator, Decimal("0.3"), "5+3")
    await registry.join_game(game.id, opponent)
    await db_session.commit()
    return game, creator, opponent


class TestCreateGame:
    @pytest.mark.asyncio
    async def test_create_escrows_wager(self, registry, db_session, session_factory, make_account):
        creator = await make_account(balance="1")

        game = await registry.create_game(creator, "0.3", "5+3")
        await db_session.commit()

        assert game.status == GameStatus.WAITING.value
        assert game.creator_id == creator
        assert game.opponent_id is None
        assert game.wager == Decimal("0.3")
        assert game.escrow == Decimal("0.3")
        assert game.move_count == 0
        assert await balance_of(session_factory, creator) == Decimal("0.7")

    @pytest.mark.asyncio
    async def test_insufficient_funds_creates_nothing(self, registry, db_session, make_account):
        creator = await make_account(balance="0.1")

        with pytest.raises(InsufficientFunds):
            await registry.create_game(creator, "0.3", "5+3")
        await db_session.rollback()

        assert await registry.list_available_games() == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("wager", ["0", "-1", "0.001", "1000", "0.000000001", "abc"])
    async def test_wager_bounds(self, registry, make_account, wager):
        creator = await make_account(balance="5000")

        with pytest.raises(InvalidAmount):
            await registry.create_game(creator, wager, "5+3")

    @pytest.mark.parametrize("time_control", ["", "5", "blitz", "0+0", "5+", "1000+0"])
    def test_invalid_time_controls(self, time_control):
        with pytest.raises(InvalidTimeControl):
            GameRegistry.validate_time_control(time_control)

    def test_valid_time_control(self):
        assert GameRegistry.validate_time_control("3+2") == (3, 2)
        assert GameRegistry.validate_time_control("0+5") == (0, 5)


class TestJoinGame:
    @pytest.mark.asyncio
    async def test_join_activates_and_escrows_both(self, active_game, registry, session_factory):
        game, creator, opponent = active_game

        game = await registry.get_game(game.id)

        assert game.status == GameStatus.ACTIVE.value
        assert game.opponent_id == opponent
        assert game.escrow == Decimal("0.6")
        assert game.started_at is not None
        assert await balance_of(session_factory, opponent) == Decimal("0.7")

    @pytest.mark.asyncio
    async def test_self_join_rejected(self, registry, db_session, make_account):
        creator = await make_account(balance="1")
        game = await registry.create_game(creator, "0.3", "5+3")

        with pytest.raises(SelfJoin):
            await registry.join_game(game.id, creator)

    @pytest.mark.asyncio
    async def test_second_join_rejected(self, active_game, registry, make_account):
        game, _, _ = active_game
        latecomer = await make_account(balance="1")

        with pytest.raises(GameNotJoinable):
            await registry.join_game(game.id, latecomer)

    @pytest.mark.asyncio
    async def test_failed_debit_keeps_game_waiting(self, registry, db_session, make_account):
        creator = await make_account(balance="1")
        poor = await make_account(balance="0.1")
        game = await registry.create_game(creator, "0.3", "5+3")
        await db_session.commit()

        with pytest.raises(InsufficientFunds):
            await registry.join_game(game.id, poor)
        await db_session.rollback()

        game = await registry.get_game(game.id)
        assert game.status == GameStatus.WAITING.value
        assert game.opponent_id is None
        assert game.escrow == Decimal("0.3")

    @pytest.mark.asyncio
    async def test_unknown_game(self, registry, make_account):
        opponent = await make_account(balance="1")

        with pytest.raises(NotFound):
            await registry.join_game("no-such-game", opponent)


class TestRecordMove:
    @pytest.mark.asyncio
    async def test_moves_alternate_starting_with_creator(self, active_game, registry):
        game, creator, opponent = active_game

        first = await registry.record_move(game.id, creator, "e2e4")
        second = await registry.record_move(game.id, opponent, "e5")

        assert first.ply == 1
        assert first.record["accountId"] == creator
        assert first.record["move"] == "e2e4"
        assert first.record["san"] == "e4"
        assert second.ply == 2
        assert second.record["move"] == "e7e5"
        assert second.game.move_count == 2
        assert [m["ply"] for m in second.game.moves] == [1, 2]
        assert second.game.position_fen == second.record["fen"]

    @pytest.mark.asyncio
    async def test_out_of_turn(self, active_game, registry):
        game, _, opponent = active_game

        with pytest.raises(OutOfTurn):
            await registry.record_move(game.id, opponent, "e7e5")

    @pytest.mark.asyncio
    async def test_illegal_move_not_recorded(self, active_game, registry):
        game, creator, _ = active_game

        with pytest.raises(IllegalMove):
            await registry.record_move(game.id, creator, "e2e5")

        game = await registry.get_game(game.id)
        assert game.move_count == 0

    @pytest.mark.asyncio
    async def test_non_participant(self, active_game, registry, make_account):
        game, _, _ = active_game
        stranger = await make_account()

        with pytest.raises(NotAParticipant):
            await registry.record_move(game.id, stranger, "e2e4")

    @pytest.mark.asyncio
    async def test_move_on_waiting_game(self, registry, make_account):
        creator = await make_account(balance="1")
        game = await registry.create_game(creator, "0.3", "5+3")

        with pytest.raises(GameNotActive):
            await registry.record_move(game.id, creator, "e2e4")

    @pytest.mark.asyncio
    async def test_checkmate_settles_game(self, active_game, registry, db_session, session_factory):
        game, creator, opponent = active_game
        players = [creator, opponent]

        result = None
        for ply, move in enumerate(FOOLS_MATE):
            result = await registry.record_move(game.id, players[ply % 2], move)
        await db_session.commit()

        assert result.verdict.game_over
        assert result.verdict.termination == "checkmate"
        assert result.settlement is not None
        assert result.settlement.outcome == GameOutcome.OPPONENT_WINS.value
        assert result.settlement.winner_id == opponent
        assert result.game.status == GameStatus.COMPLETED.value
        assert result.game.escrow == Decimal("0")
        assert await balance_of(session_factory, opponent) == Decimal("1.3")
        assert await balance_of(session_factory, creator) == Decimal("0.7")

        with pytest.raises(GameNotActive):
            await registry.record_move(game.id, creator, "a2a3")


class TestSettlement:
    @pytest.mark.asyncio
    async def test_win_pays_whole_escrow(self, active_game, registry, db_session, session_factory):
        game, creator, opponent = active_game

        summary = await registry.settle_game(game.id, GameOutcome.CREATOR_WINS)
        await db_session.commit()

        assert summary.winner_id == creator
        assert summary.fully_paid
        assert [(p.account_id, p.amount) for p in summary.payouts] == [(creator, Decimal("0.6"))]
        assert await balance_of(session_factory, creator) == Decimal("1.3")
        assert await balance_of(session_factory, opponent) == Decimal("0.7")

        account = await db_session.get(Account, creator)
        await db_session.refresh(account)
        assert account.total_earnings == Decimal("0.6")
        assert account.games_won == 1

    @pytest.mark.asyncio
    async def test_draw_returns_each_wager(self, active_game, registry, db_session, session_factory):
        game, creator, opponent = active_game

        summary = await registry.settle_game(game.id, "draw")
        await db_session.commit()

        assert summary.winner_id is None
        assert summary.success_count == 2
        assert await balance_of(session_factory, creator) == Decimal("1")
        assert await balance_of(session_factory, opponent) == Decimal("1")
        game = await registry.get_game(game.id)
        assert game.escrow == Decimal("0")

    @pytest.mark.asyncio
    async def test_settle_twice_rejected(self, active_game, registry):
        game, _, _ = active_game
        await registry.settle_game(game.id, GameOutcome.CREATOR_WINS)

        with pytest.raises(AlreadySettled):
            await registry.settle_game(game.id, GameOutcome.OPPONENT_WINS)

    @pytest.mark.asyncio
    async def test_settle_waiting_game_rejected(self, registry, make_account):
        creator = await make_account(balance="1")
        game = await registry.create_game(creator, "0.3", "5+3")

        with pytest.raises(GameNotActive):
            await registry.settle_game(game.id, GameOutcome.DRAW)

    @pytest.mark.asyncio
    async def test_failed_payout_is_flagged_and_kept_in_escrow(
        self, active_game, registry, db_session, monkeypatch
    ):
        game, creator, _ = active_game

        async def broken_credit(*args, **kwargs):
            raise InvalidAmount("0.6", "ledger unavailable")

        monkeypatch.setattr(registry.ledger, "credit", broken_credit)

        summary = await registry.settle_game(game.id, GameOutcome.CREATOR_WINS)

        assert summary.failed_count == 1
        assert summary.fully_paid is False
        game = await registry.get_game(game.id)
        assert game.status == GameStatus.COMPLETED.value
        assert game.escrow == Decimal("0.6")
        flags = (await db_session.execute(select(ReconciliationFlag))).scalars().all()
        assert [(f.account_id, f.reason) for f in flags] == [(creator, "game_payout_failed")]

    @pytest.mark.asyncio
    async def test_resign_awards_other_player(self, active_game, registry):
        game, creator, opponent = active_game

        summary = await registry.resign(game.id, creator)

        assert summary.outcome == GameOutcome.OPPONENT_WINS.value
        assert summary.winner_id == opponent


class TestCancelGame:
    @pytest.mark.asyncio
    async def test_cancel_waiting_refunds_creator(
        self, registry, db_session, session_factory, make_account
    ):
        creator = await make_account(balance="1")
        game = await registry.create_game(creator, "0.3", "5+3")

        summary = await registry.cancel_game(game.id, requested_by=creator)
        await db_session.commit()

        assert summary.status == GameStatus.CANCELLED.value
        assert [(p.account_id, p.amount) for p in summary.payouts] == [(creator, Decimal("0.3"))]
        assert await balance_of(session_factory, creator) == Decimal("1")

    @pytest.mark.asyncio
    async def test_only_creator_cancels(self, registry, make_account):
        creator = await make_account(balance="1")
        other = await make_account(balance="1")
        game = await registry.create_game(creator, "0.3", "5+3")

        with pytest.raises(NotAParticipant):
            await registry.cancel_game(game.id, requested_by=other)

    @pytest.mark.asyncio
    async def test_active_game_needs_forfeit(self, active_game, registry):
        game, _, _ = active_game

        with pytest.raises(GameNotCancellable):
            await registry.cancel_game(game.id)

    @pytest.mark.asyncio
    async def test_forfeit_refunds_both(self, active_game, registry, db_session, session_factory):
        game, creator, opponent = active_game

        summary = await registry.cancel_game(game.id, reason="disconnect_forfeit", forfeit=True)
        await db_session.commit()

        assert summary.success_count == 2
        game = await registry.get_game(game.id)
        assert game.cancel_reason == "disconnect_forfeit"
        assert game.escrow == Decimal("0")
        assert await balance_of(session_factory, creator) == Decimal("1")
        assert await balance_of(session_factory, opponent) == Decimal("1")

    @pytest.mark.asyncio
    async def test_completed_game_not_cancellable(self, active_game, registry):
        game, _, _ = active_game
        await registry.settle_game(game.id, GameOutcome.DRAW)

        with pytest.raises(GameNotCancellable):
            await registry.cancel_game(game.id, forfeit=True)


class TestQueriesAndChat:
    @pytest.mark.asyncio
    async def test_available_games_exclude_own(self, registry, make_account):
        mine = await make_account(balance="1")
        theirs = await make_account(balance="1", rating=1600)
        await registry.create_game(mine, "0.1", "5+3")
        other_game = await registry.create_game(theirs, "0.2", "10+0")

        available = await registry.list_available_games(exclude_account_id=mine)

        assert [a.game.id for a in available] == [other_game.id]
        assert available[0].creator_rating == 1600

    @pytest.mark.asyncio
    async def test_skill_mismatch_is_advisory(self, registry):
        assert registry.skill_gap(1200, 1600) == 400
        assert registry.requires_confirmation(1200, 1600) is True
        assert registry.requires_confirmation(1200, 1450) is False

    @pytest.mark.asyncio
    async def test_chat_is_escaped_and_ordered(self, active_game, registry):
        game, creator, opponent = active_game

        await registry.add_chat_message(game.id, creator, "  good luck <b>  ")
        await registry.add_chat_message(game.id, opponent, "you too")

        messages = await registry.get_chat_messages(game.id)
        assert [m.message for m in messages] == ["good luck &lt;b&gt;", "you too"]

    @pytest.mark.asyncio
    async def test_chat_rules(self, active_game, registry, make_account):
        game, creator, _ = active_game
        stranger = await make_account()

        with pytest.raises(NotAParticipant):
            await registry.add_chat_message(game.id, stranger, "hi")
        with pytest.raises(ChessWagerError):
            await registry.add_chat_message(game.id, creator, "   ")
        with pytest.raises(ChessWagerError):
            await registry.add_chat_message(game.id, creator, "x" * 201)

    @pytest.mark.asyncio
    async def test_chat_length_counts_escaped_text(self, active_game, registry):
        game, creator, _ = active_game

        with pytest.raises(ChessWagerError):
            await registry.add_chat_message(game.id, creator, "<" * 200)

        message = await registry.add_chat_message(game.id, creator, "<" * 50)
        assert message.message == "&lt;" * 50
        assert len(message.message) <= 200

    @pytest.mark.asyncio
    async def test_games_for_account(self, active_game, registry, make_account):
        game, creator, opponent = active_game

        assert [g.id for g in await registry.games_for_account(opponent)] == [game.id]
        active = await registry.active_game_for_account(creator)
        assert active is not None and active.id == game.id
        assert await registry.active_game_for_account(await make_account()) is None


@pytest.mark.asyncio
async def test_ledger_is_shared_with_rating_session(db_session):
    registry = GameRegistry(db_session)
    assert isinstance(registry.ledger, LedgerService)
    assert registry.ledger.session is db_session
    assert registry.rating.session is db_session
