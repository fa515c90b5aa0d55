"""Chess rules collaborator.

The game registry treats the rules engine as an opaque oracle: it hands over
the current position and a proposed move and persists whatever comes back.
"""

from dataclasses import dataclass
from typing import Protocol

import chess


@dataclass(frozen=True)
class MoveVerdict:
    """Result of asking the rules engine about a move.

    ``result`` is the PGN result string ("1-0", "0-1", "1/2-1/2") once the
    game is over, otherwise None.
    """

    legal: bool
    fen: str
    move: str | None = None
    san: str | None = None
    game_over: bool = False
    result: str | None = None
    termination: str | None = None


class ChessRules(Protocol):
    def apply_move(self, fen: str, move: str) -> MoveVerdict:
        ...


class PythonChessRules:
    """Rules oracle backed by python-chess.

    Moves may be given in UCI ("e2e4") or SAN ("e4").
    """

    def apply_move(self, fen: str, move: str) -> MoveVerdict:
        try:
            board = chess.Board(fen)
        except ValueError:
            return MoveVerdict(legal=False, fen=fen)

        parsed = self._parse(board, move)
        if parsed is None:
            return MoveVerdict(legal=False, fen=fen)

        san = board.san(parsed)
        board.push(parsed)

        outcome = board.outcome(claim_draw=True)
        if outcome is None:
            return MoveVerdict(legal=True, fen=board.fen(), move=parsed.uci(), san=san)

        return MoveVerdict(
            legal=True,
            fen=board.fen(),
            move=parsed.uci(),
            san=san,
            game_over=True,
            result=outcome.result(),
            termination=outcome.termination.name.lower(),
        )

    @staticmethod
    def _parse(board: chess.Board, move: str) -> chess.Move | None:
        try:
            candidate = chess.Move.from_uci(move)
        except ValueError:
            candidate = None
        if candidate is not None and candidate in board.legal_moves:
            return candidate
        try:
            return board.parse_san(move)
        except ValueError:
            return None
