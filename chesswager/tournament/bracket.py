"""
Single-elimination bracket pairing.

Each round pairs the surviving players in seed order: highest seed against
lowest seed, second against second-lowest, and so on, with the higher seed
playing white. With an odd number of survivors the highest seed that has not
had a bye yet sits the round out and advances.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence


@dataclass(frozen=True)
class Pairing:
    slot: int
    white_id: str
    black_id: Optional[str] = None

    @property
    def is_bye(self) -> bool:
        return self.black_id is None

    @property
    def players(self) -> List[str]:
        return [p for p in (self.white_id, self.black_id) if p is not None]


def choose_bye(seeded: Sequence[str], had_bye: Iterable[str] = ()) -> Optional[str]:
    """Player who gets the bye this round, or None for an even field."""
    if len(seeded) % 2 == 0:
        return None
    previous = set(had_bye)
    for account_id in seeded:
        if account_id not in previous:
            return account_id
    return seeded[0]


def pair_round(seeded: Sequence[str], had_bye: Iterable[str] = ()) -> List[Pairing]:
    """Pair one round.

    Args:
        seeded: Surviving players, best seed first
        had_bye: Players that already received a bye in an earlier round

    Returns:
        Pairings in slot order; every player appears in exactly one pairing
    """
    if len(seeded) < 2:
        raise ValueError("A round needs at least two players")
    if len(set(seeded)) != len(seeded):
        raise ValueError("Duplicate player in round")

    players = list(seeded)
    pairings: List[Pairing] = []

    bye = choose_bye(players, had_bye)
    if bye is not None:
        players.remove(bye)
        pairings.append(Pairing(slot=0, white_id=bye))

    offset = len(pairings)
    n = len(players)
    for i in range(n // 2):
        pairings.append(
            Pairing(slot=offset + i, white_id=players[i], black_id=players[n - 1 - i])
        )
    return pairings


def rounds_needed(player_count: int) -> int:
    """Number of rounds to reduce ``player_count`` players to one."""
    rounds = 0
    remaining = player_count
    while remaining > 1:
        remaining = (remaining + 1) // 2
        rounds += 1
    return rounds
