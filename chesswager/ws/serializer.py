"""Game and chat payloads sent over the wire."""

from typing import Any

from chesswager.models.game import ChatMessage, Game, GameStatus
from chesswager.services.game import SettlementSummary


def game_state_payload(game: Game, after_ply: int = 0) -> dict[str, Any]:
    """Snapshot of a game with the moves after ``after_ply``."""
    moves = [m for m in (game.moves or []) if m.get("ply", 0) > after_ply]
    return {
        "gameId": game.id,
        "status": game.status,
        "whiteId": game.white_id,
        "blackId": game.black_id,
        "wager": str(game.wager),
        "timeControl": game.time_control,
        "tournamentId": game.tournament_id,
        "fen": game.position_fen,
        "ply": game.ply_count,
        "toMove": game.player_to_move() if game.status == GameStatus.ACTIVE.value else None,
        "moves": moves,
        "outcome": game.outcome,
        "winnerId": game.winner_id,
    }


def game_over_payload(game: Game, summary: SettlementSummary) -> dict[str, Any]:
    return {
        "gameId": game.id,
        "outcome": summary.outcome,
        "winnerId": summary.winner_id,
        "fen": game.position_fen,
        "ply": game.ply_count,
        "payouts": [
            {"accountId": p.account_id, "amount": str(p.amount), "success": p.success}
            for p in summary.payouts
        ],
        "ratingChanges": {
            game.creator_id: game.creator_rating_delta,
            game.opponent_id: game.opponent_rating_delta,
        } if game.ratings_applied else {},
    }


def game_cancelled_payload(game: Game, summary: SettlementSummary) -> dict[str, Any]:
    return {
        "gameId": game.id,
        "reason": game.cancel_reason,
        "refunds": [
            {"accountId": p.account_id, "amount": str(p.amount), "success": p.success}
            for p in summary.payouts
        ],
    }


def chat_payload(message: ChatMessage) -> dict[str, Any]:
    return {
        "id": message.id,
        "gameId": message.game_id,
        "accountId": message.account_id,
        "message": message.message,
        "createdAt": message.created_at.isoformat(),
    }
