"""Tests for TournamentEngine.

Registration and escrow, automatic start, bracket progression, prize
settlement and cancellation refunds.
"""

import asyncio
from decimal import Decimal

import pytest

from chesswager.models.game import GameOutcome, GameStatus
from chesswager.models.tournament import TournamentStatus
from chesswager.services.game import GameRegistry
from chesswager.tournament.engine import TournamentEngine
from chesswager.utils.errors import (
    AlreadyJoined,
    ChessWagerError,
    InsufficientFunds,
    InvalidAmount,
    InvalidTimeControl,
    InvalidTransition,
    NotOpen,
    TournamentFull,
)
from tests.conftest import balance_of


@pytest.fixture
def engine(db_session) -> TournamentEngine:
    return TournamentEngine(db_session, registry=GameRegistry(db_session))


async def field_of(make_account, ratings: list[int], balance: str = "1") -> list[str]:
    """Accounts in seed order (ratings given best first)."""
    return [await make_account(balance=balance, rating=r) for r in ratings]


async def open_games(engine: TournamentEngine, tournament_id: str, round_number: int) -> list[dict]:
    bracket = await engine.get_bracket(tournament_id)
    pairings = next(r["pairings"] for r in bracket if r["round"] == round_number)
    return [p for p in pairings if not p["bye"]]


class TestCreateTournament:
    @pytest.mark.asyncio
    async def test_create_open_tournament(self, engine, make_account):
        organizer = await make_account()

        tournament = await engine.create_tournament(
            "Friday Blitz", Decimal("0.5"), 8, "3+2", description="weekly", creator_id=organizer
        )

        assert tournament.status == TournamentStatus.OPEN.value
        assert tournament.prize_pool == Decimal("0")
        assert tournament.current_participants == 0
        assert tournament.current_round == 0
        assert tournament.creator_id == organizer

    @pytest.mark.asyncio
    async def test_validation(self, engine):
        with pytest.raises(ChessWagerError):
            await engine.create_tournament("Too small", Decimal("0"), 1, "3+2")
        with pytest.raises(ChessWagerError):
            await engine.create_tournament("Too big", Decimal("0"), 65, "3+2")
        with pytest.raises(ChessWagerError):
            await engine.create_tournament("   ", Decimal("0"), 4, "3+2")
        with pytest.raises(InvalidAmount):
            await engine.create_tournament("Negative", Decimal("-1"), 4, "3+2")
        with pytest.raises(InvalidTimeControl):
            await engine.create_tournament("Clockless", Decimal("0"), 4, "forever")


class TestRegistration:
    @pytest.mark.asyncio
    async def test_join_escrows_entry_fee(self, engine, db_session, session_factory, make_account):
        (player,) = await field_of(make_account, [1500])
        tournament = await engine.create_tournament("Cup", Decimal("0.25"), 4, "5+0")

        participant = await engine.join_tournament(tournament.id, player)
        await db_session.commit()

        tournament = await engine.get_tournament(tournament.id)
        assert participant.account_id == player
        assert tournament.current_participants == 1
        assert tournament.prize_pool == Decimal("0.25")
        assert tournament.status == TournamentStatus.OPEN.value
        assert await balance_of(session_factory, player) == Decimal("0.75")

    @pytest.mark.asyncio
    async def test_double_join_rejected(self, engine, make_account):
        (player,) = await field_of(make_account, [1500])
        tournament = await engine.create_tournament("Cup", Decimal("0.25"), 4, "5+0")
        await engine.join_tournament(tournament.id, player)

        with pytest.raises(AlreadyJoined):
            await engine.join_tournament(tournament.id, player)

    @pytest.mark.asyncio
    async def test_failed_fee_leaves_no_seat(self, engine, db_session, make_account):
        poor = await make_account(balance="0.1")
        tournament = await engine.create_tournament("Cup", Decimal("0.25"), 4, "5+0")
        await db_session.commit()

        with pytest.raises(InsufficientFunds):
            await engine.join_tournament(tournament.id, poor)
        await db_session.rollback()

        tournament = await engine.get_tournament(tournament.id)
        assert tournament.current_participants == 0
        assert tournament.prize_pool == Decimal("0")
        assert await engine.get_participants(tournament.id) == []

    @pytest.mark.asyncio
    async def test_last_seat_starts_tournament(self, engine, make_account):
        seeds = await field_of(make_account, [2000, 1800, 1600, 1400])
        tournament = await engine.create_tournament("Cup", Decimal("0.5"), 4, "5+0")

        # Join in reverse so seeding is by rating, not by arrival
        for account_id in reversed(seeds):
            await engine.join_tournament(tournament.id, account_id)

        tournament = await engine.get_tournament(tournament.id)
        assert tournament.status == TournamentStatus.ACTIVE.value
        assert tournament.current_round == 1
        assert tournament.prize_pool == Decimal("2")

        participants = {p.account_id: p.seed for p in await engine.get_participants(tournament.id)}
        assert [participants[a] for a in seeds] == [1, 2, 3, 4]

        games = await open_games(engine, tournament.id, 1)
        assert [(g["whiteId"], g["blackId"]) for g in games] == [
            (seeds[0], seeds[3]),
            (seeds[1], seeds[2]),
        ]
        for pairing in games:
            game = await engine.registry.get_game(pairing["gameId"])
            assert game.status == GameStatus.ACTIVE.value
            assert game.tournament_id == tournament.id
            assert game.wager == Decimal("0")

    @pytest.mark.asyncio
    async def test_join_after_filling_up(self, engine, make_account):
        first, second, late = await field_of(make_account, [1500, 1400, 1300])
        tournament = await engine.create_tournament("Duel", Decimal("0"), 2, "5+0")
        await engine.join_tournament(tournament.id, first)
        await engine.join_tournament(tournament.id, second)

        with pytest.raises(TournamentFull):
            await engine.join_tournament(tournament.id, late)

    @pytest.mark.asyncio
    async def test_join_after_early_start(self, engine, make_account):
        first, second, late = await field_of(make_account, [1500, 1400, 1300])
        tournament = await engine.create_tournament("Cup", Decimal("0"), 4, "5+0")
        await engine.join_tournament(tournament.id, first)
        await engine.join_tournament(tournament.id, second)
        await engine.start_tournament(tournament.id)

        with pytest.raises(NotOpen):
            await engine.join_tournament(tournament.id, late)

    @pytest.mark.asyncio
    async def test_concurrent_joins_never_overfill(self, session_factory, make_account):
        players = await field_of(make_account, [1500, 1400, 1300, 1200, 1100])
        async with session_factory() as session:
            tournament = await TournamentEngine(session).create_tournament(
                "Rush", Decimal("0.5"), 3, "5+0"
            )
            await session.commit()

        async def attempt(account_id: str) -> str:
            async with session_factory() as session:
                try:
                    await TournamentEngine(session).join_tournament(tournament.id, account_id)
                    await session.commit()
                    return "joined"
                except ChessWagerError as e:
                    await session.rollback()
                    return e.code

        outcomes = await asyncio.gather(*(attempt(p) for p in players))

        assert sorted(outcomes) == ["TOURNAMENT_FULL", "TOURNAMENT_FULL", "joined", "joined", "joined"]
        async with session_factory() as session:
            tournament = await TournamentEngine(session).get_tournament(tournament.id)
            assert tournament.current_participants == 3
            assert tournament.prize_pool == Decimal("1.5")
        balances = sorted([await balance_of(session_factory, p) for p in players])
        assert balances == [Decimal("0.5")] * 3 + [Decimal("1")] * 2

    @pytest.mark.asyncio
    async def test_start_needs_two_players(self, engine, make_account):
        (player,) = await field_of(make_account, [1500])
        tournament = await engine.create_tournament("Cup", Decimal("0"), 4, "5+0")
        await engine.join_tournament(tournament.id, player)

        with pytest.raises(InvalidTransition):
            await engine.start_tournament(tournament.id)


class TestProgression:
    @pytest.mark.asyncio
    async def test_four_player_bracket_to_champion(
        self, engine, db_session, session_factory, make_account
    ):
        seeds = await field_of(make_account, [2000, 1800, 1600, 1400])
        tournament = await engine.create_tournament("Cup", Decimal("0.5"), 4, "5+0")
        for account_id in seeds:
            await engine.join_tournament(tournament.id, account_id)

        # Higher seed (white) wins every game
        for pairing in await open_games(engine, tournament.id, 1):
            await engine.registry.resign(pairing["gameId"], pairing["blackId"])

        tournament = await engine.get_tournament(tournament.id)
        assert tournament.current_round == 2
        final = await open_games(engine, tournament.id, 2)
        assert [(g["whiteId"], g["blackId"]) for g in final] == [(seeds[0], seeds[1])]

        await engine.registry.resign(final[0]["gameId"], seeds[1])
        await db_session.commit()

        tournament = await engine.get_tournament(tournament.id)
        assert tournament.status == TournamentStatus.COMPLETED.value
        assert tournament.winner_id == seeds[0]
        assert tournament.prize_pool == Decimal("0")
        assert await balance_of(session_factory, seeds[0]) == Decimal("2.5")
        assert await balance_of(session_factory, seeds[3]) == Decimal("0.5")

        placements = {p.account_id: p.placement for p in await engine.get_participants(tournament.id)}
        assert placements == {seeds[0]: 1, seeds[1]: 2, seeds[2]: 3, seeds[3]: 3}

    @pytest.mark.asyncio
    async def test_draw_advances_black(self, engine, make_account):
        white, black = await field_of(make_account, [1600, 1500])
        tournament = await engine.create_tournament("Duel", Decimal("0"), 2, "5+0")
        await engine.join_tournament(tournament.id, white)
        await engine.join_tournament(tournament.id, black)
        (pairing,) = await open_games(engine, tournament.id, 1)

        await engine.registry.settle_game(pairing["gameId"], GameOutcome.DRAW)

        tournament = await engine.get_tournament(tournament.id)
        assert tournament.status == TournamentStatus.COMPLETED.value
        assert tournament.winner_id == black

    @pytest.mark.asyncio
    async def test_odd_field_uses_bye(self, engine, make_account):
        seeds = await field_of(make_account, [2000, 1800, 1600])
        tournament = await engine.create_tournament("Trio", Decimal("0"), 4, "5+0")
        for account_id in seeds:
            await engine.join_tournament(tournament.id, account_id)
        await engine.start_tournament(tournament.id)

        bracket = await engine.get_bracket(tournament.id)
        round_one = bracket[0]["pairings"]
        assert round_one[0]["bye"] is True
        assert round_one[0]["whiteId"] == seeds[0]
        assert round_one[0]["winnerId"] == seeds[0]
        assert round_one[0]["gameId"] is None

        (game,) = await open_games(engine, tournament.id, 1)
        await engine.registry.resign(game["gameId"], game["blackId"])

        final = await open_games(engine, tournament.id, 2)
        assert [(g["whiteId"], g["blackId"]) for g in final] == [(seeds[0], seeds[1])]

    @pytest.mark.asyncio
    async def test_results_for_decided_games_are_ignored(self, engine, make_account):
        seeds = await field_of(make_account, [2000, 1800, 1600, 1400])
        tournament = await engine.create_tournament("Cup", Decimal("0"), 4, "5+0")
        for account_id in seeds:
            await engine.join_tournament(tournament.id, account_id)
        first = (await open_games(engine, tournament.id, 1))[0]
        await engine.registry.resign(first["gameId"], first["blackId"])

        again = await engine.record_result(tournament.id, first["gameId"], first["whiteId"])

        assert again is None
        tournament = await engine.get_tournament(tournament.id)
        assert tournament.current_round == 1


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_refunds_every_entry(self, engine, db_session, session_factory, make_account):
        players = await field_of(make_account, [1500, 1400, 1300])
        tournament = await engine.create_tournament("Cup", Decimal("0.4"), 8, "5+0")
        for account_id in players:
            await engine.join_tournament(tournament.id, account_id)

        summary = await engine.cancel_tournament(tournament.id)
        await db_session.commit()

        assert summary.successful_refunds == 3
        assert summary.failed_refunds == 0
        tournament = await engine.get_tournament(tournament.id)
        assert tournament.status == TournamentStatus.CANCELLED.value
        assert tournament.prize_pool == Decimal("0")
        for account_id in players:
            assert await balance_of(session_factory, account_id) == Decimal("1")

    @pytest.mark.asyncio
    async def test_active_tournament_cannot_be_cancelled(self, engine, make_account):
        first, second = await field_of(make_account, [1500, 1400])
        tournament = await engine.create_tournament("Duel", Decimal("0"), 2, "5+0")
        await engine.join_tournament(tournament.id, first)
        await engine.join_tournament(tournament.id, second)

        with pytest.raises(InvalidTransition):
            await engine.cancel_tournament(tournament.id)

    @pytest.mark.asyncio
    async def test_list_by_status(self, engine):
        open_one = await engine.create_tournament("Open", Decimal("0"), 4, "5+0")
        cancelled = await engine.create_tournament("Cancelled", Decimal("0"), 4, "5+0")
        await engine.cancel_tournament(cancelled.id)

        assert [t.id for t in await engine.list_open_tournaments()] == [open_one.id]
        assert {t.id for t in await engine.list_tournaments()} == {open_one.id, cancelled.id}
