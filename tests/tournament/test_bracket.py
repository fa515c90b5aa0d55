"""Tests for single-elimination pairing and placements."""

import pytest

from chesswager.models.tournament import TournamentParticipant
from chesswager.tournament.bracket import choose_bye, pair_round, rounds_needed
from chesswager.tournament.settlement import compute_placements


def players(n: int) -> list[str]:
    return [f"p{i}" for i in range(1, n + 1)]


class TestPairRound:
    def test_even_field_pairs_top_against_bottom(self):
        pairings = pair_round(players(4))

        assert [(p.slot, p.white_id, p.black_id) for p in pairings] == [
            (0, "p1", "p4"),
            (1, "p2", "p3"),
        ]
        assert not any(p.is_bye for p in pairings)

    def test_odd_field_gives_top_seed_a_bye(self):
        pairings = pair_round(players(5))

        assert pairings[0].is_bye
        assert pairings[0].players == ["p1"]
        assert [(p.white_id, p.black_id) for p in pairings[1:]] == [("p2", "p5"), ("p3", "p4")]

    def test_bye_goes_to_best_seed_without_one(self):
        pairings = pair_round(players(3), had_bye={"p1"})

        assert pairings[0].white_id == "p2"
        assert pairings[1].players == ["p1", "p3"]

    def test_everyone_had_a_bye(self):
        assert choose_bye(players(3), had_bye=players(3)) == "p1"
        assert choose_bye(players(4)) is None

    @pytest.mark.parametrize("n", range(2, 17))
    def test_every_player_appears_once(self, n):
        pairings = pair_round(players(n))

        seen = [pid for p in pairings for pid in p.players]
        assert sorted(seen) == sorted(players(n))
        assert [p.slot for p in pairings] == list(range(len(pairings)))

    def test_rejects_bad_fields(self):
        with pytest.raises(ValueError):
            pair_round(["p1"])
        with pytest.raises(ValueError):
            pair_round(["p1", "p1"])

    @pytest.mark.parametrize(
        "count,expected",
        [(1, 0), (2, 1), (3, 2), (4, 2), (5, 3), (8, 3), (9, 4), (64, 6)],
    )
    def test_rounds_needed(self, count, expected):
        assert rounds_needed(count) == expected


class TestPlacements:
    @staticmethod
    def participant(account_id: str, eliminated_round: int | None = None) -> TournamentParticipant:
        return TournamentParticipant(
            tournament_id="t-1",
            account_id=account_id,
            eliminated=eliminated_round is not None,
            eliminated_round=eliminated_round,
        )

    def test_knockout_rounds_share_placements(self):
        participants = [
            self.participant("p1"),
            self.participant("p2", eliminated_round=2),
            self.participant("p3", eliminated_round=1),
            self.participant("p4", eliminated_round=1),
        ]

        placements = compute_placements(participants, "p1", final_round=2)

        assert placements == {"p1": 1, "p2": 2, "p3": 3, "p4": 3}

    def test_players_alive_at_early_conclusion_rank_behind_winner(self):
        participants = [
            self.participant("p1"),
            self.participant("p2"),
            self.participant("p3", eliminated_round=1),
        ]

        placements = compute_placements(participants, "p1", final_round=1)

        assert placements == {"p1": 1, "p2": 2, "p3": 3}
