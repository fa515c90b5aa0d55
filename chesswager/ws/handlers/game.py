"""Game room event handlers.

Events:
- join_game: bind the connection to a game room and send its state
- game_move: record a move, relay it, acknowledge it and announce game over

Moves are committed before anything is sent: a relayed move is always
durable.
"""

from __future__ import annotations

import logging
from typing import Any

from chesswager.models.game import GameStatus
from chesswager.utils.errors import ChessWagerError, ErrorCode, NotAParticipant
from chesswager.ws.connection import ConnectionState, WebSocketConnection
from chesswager.ws.events import EventType
from chesswager.ws.handlers.base import BaseHandler
from chesswager.ws.messages import MessageEnvelope
from chesswager.ws.serializer import game_over_payload, game_state_payload

logger = logging.getLogger(__name__)


def _require_str(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ChessWagerError(ErrorCode.INVALID_REQUEST, f"{key} is required")
    return value.strip()


def _last_ply(payload: dict[str, Any]) -> int:
    value = payload.get("lastPly", 0)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ChessWagerError(ErrorCode.INVALID_REQUEST, "lastPly must be a non-negative integer")
    return value


class GameHandler(BaseHandler):
    @property
    def handled_events(self) -> tuple[EventType, ...]:
        return (EventType.JOIN_GAME, EventType.GAME_MOVE)

    async def handle(
        self,
        conn: WebSocketConnection,
        event: MessageEnvelope,
    ) -> MessageEnvelope | None:
        if event.type == EventType.JOIN_GAME:
            return await self._handle_join(conn, event)
        if event.type == EventType.GAME_MOVE:
            return await self._handle_move(conn, event)
        return None

    async def _handle_join(
        self,
        conn: WebSocketConnection,
        event: MessageEnvelope,
    ) -> MessageEnvelope:
        game_id = _require_str(event.payload, "gameId")
        last_ply = _last_ply(event.payload)

        async with self.manager.session() as session:
            game = await self.manager.registry(session).get_game(game_id)
            if not game.is_participant(conn.account_id):
                raise NotAParticipant(game_id, conn.account_id)

        await self.manager.bind_room(conn, game_id, last_ply)
        await self.manager.clear_resume_state(conn.account_id)
        logger.info(f"Joined room: account={conn.account_id} game={game_id} lastPly={last_ply}")

        return MessageEnvelope.create(
            event_type=EventType.GAME_STATE,
            payload=game_state_payload(game, after_ply=last_ply),
            trace_id=event.trace_id,
        )

    async def _handle_move(
        self,
        conn: WebSocketConnection,
        event: MessageEnvelope,
    ) -> None:
        game_id = event.payload.get("gameId") or conn.game_id
        if not isinstance(game_id, str) or not game_id:
            raise ChessWagerError(ErrorCode.INVALID_REQUEST, "gameId is required")
        move = _require_str(event.payload, "move")

        async with self.manager.session() as session:
            result = await self.manager.registry(session).record_move(
                game_id, conn.account_id, move
            )
        game = result.game

        if conn.game_id != game_id:
            await self.manager.bind_room(conn, game_id, result.ply - 1)
        conn.ack(result.ply)

        other_id = game.other_player(conn.account_id)
        if other_id is not None:
            relayed = await self.manager.send_to_account(
                other_id,
                MessageEnvelope.create(
                    EventType.GAME_MOVE,
                    {"gameId": game_id, **result.record},
                    trace_id=event.trace_id,
                ),
            )
            other = self.manager.get_connection(other_id)
            if relayed and other is not None and other.game_id == game_id:
                other.ack(result.ply)

        await conn.send(
            MessageEnvelope.create(
                EventType.MOVE_ACK,
                {
                    "gameId": game_id,
                    "ply": result.ply,
                    "move": result.record["move"],
                    "san": result.record["san"],
                    "fen": result.record["fen"],
                },
                trace_id=event.trace_id,
            ).to_dict()
        )

        if result.settlement is not None:
            await self.manager.broadcast_to_room(
                game_id,
                MessageEnvelope.create(
                    EventType.GAME_OVER,
                    game_over_payload(game, result.settlement),
                ),
            )
        return None

    async def resume(self, conn: WebSocketConnection, state: dict[str, Any]) -> bool:
        """Re-bind a reconnecting connection to its room.

        Sends the moves after the last acknowledged ply and tells the
        opponent the player is back. Returns False when there is nothing to
        resume.
        """
        game_id = state.get("gameId")
        if not game_id:
            return False
        last_ply = int(state.get("lastAckedPly") or 0)

        try:
            async with self.manager.session() as session:
                game = await self.manager.registry(session).get_game(game_id)
        except ChessWagerError as e:
            logger.info(f"Resume skipped: account={conn.account_id} game={game_id} code={e.code}")
            return False
        if not game.is_participant(conn.account_id):
            return False

        await self.manager.bind_room(conn, game_id, last_ply)
        conn.state = ConnectionState.RECOVERED
        await conn.send(
            MessageEnvelope.create(
                EventType.GAME_STATE,
                game_state_payload(game, after_ply=last_ply),
            ).to_dict()
        )
        if game.status == GameStatus.ACTIVE.value:
            await self.manager.broadcast_to_room(
                game_id,
                MessageEnvelope.create(
                    EventType.OPPONENT_RECONNECTED,
                    {"gameId": game_id, "accountId": conn.account_id},
                ),
                exclude=conn.account_id,
            )
        await self.manager.clear_resume_state(conn.account_id)
        logger.info(f"Resumed: account={conn.account_id} game={game_id} afterPly={last_ply}")
        return True
