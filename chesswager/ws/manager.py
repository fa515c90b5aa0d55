"""Connection manager: one live connection per account, game rooms and
reconnection grace timers."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from chesswager.config import get_settings
from chesswager.middleware.prometheus import record_ws_connection, record_ws_message
from chesswager.models.game import GameStatus
from chesswager.services.chess_rules import PythonChessRules
from chesswager.services.game import GameRegistry
from chesswager.utils.db import get_db_session
from chesswager.utils.errors import ChessWagerError
from chesswager.utils.json_utils import json_dumps, json_loads
from chesswager.ws.connection import ConnectionState, WebSocketConnection
from chesswager.ws.events import EventType
from chesswager.ws.messages import MessageEnvelope
from chesswager.ws.serializer import game_cancelled_payload, game_over_payload

logger = logging.getLogger(__name__)

RESUME_KEY = "ws:resume:{account_id}"
REPLACED_CLOSE_CODE = 4001


class ConnectionManager:
    """Owns the live connection table of this process.

    Register and unregister run under an asyncio lock. Resume state is
    mirrored to Redis when a client is configured and kept in memory
    otherwise.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        redis: Redis | None = None,
        grace_period: float | None = None,
    ):
        self._settings = get_settings()
        self.session_factory = session_factory
        self.redis = redis
        self.grace_period = (
            grace_period if grace_period is not None
            else self._settings.reconnect_grace_period
        )

        self._connections: dict[str, WebSocketConnection] = {}  # account_id -> connection
        self._rooms: dict[str, set[str]] = {}  # game_id -> account ids
        self._grace_timers: dict[str, asyncio.Task] = {}  # account_id -> timer
        self._resume: dict[str, dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def session(self):
        """Per-event unit of work: commits on success, rolls back on error."""
        return get_db_session(self.session_factory)

    def registry(self, session: AsyncSession) -> GameRegistry:
        return GameRegistry(session, rules=PythonChessRules())

    async def stop(self) -> None:
        """Cancel grace timers and close every connection."""
        for task in list(self._grace_timers.values()):
            task.cancel()
        for task in list(self._grace_timers.values()):
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._grace_timers.clear()

        async with self._lock:
            connections = list(self._connections.values())
            self._connections.clear()
            self._rooms.clear()
        for conn in connections:
            await conn.close(1001, "Server shutting down")
        logger.info(f"ConnectionManager stopped (connections closed: {len(connections)})")

    # =========================================================================
    # Connection Lifecycle
    # =========================================================================

    async def connect(self, conn: WebSocketConnection) -> dict[str, Any] | None:
        """Register a connection, replacing any live one for the account.

        Returns the stored resume state when the account is reconnecting.
        """
        async with self._lock:
            previous = self._connections.get(conn.account_id)
            self._connections[conn.account_id] = conn
            if previous is not None and previous.game_id:
                self._leave_room(previous.account_id, previous.game_id)

        if previous is not None and previous is not conn:
            logger.info(
                f"Account {conn.account_id} opened a new connection, "
                f"closing {previous.connection_id}"
            )
            await previous.close(REPLACED_CLOSE_CODE, "Replaced by a newer connection")
            record_ws_connection(False)

        timer = self._grace_timers.pop(conn.account_id, None)
        if timer is not None:
            timer.cancel()
            logger.info(f"Grace timer cancelled: account={conn.account_id}")

        record_ws_connection(True)
        logger.info(
            f"Connection {conn.connection_id} registered for account {conn.account_id} "
            f"(total: {len(self._connections)})"
        )
        if previous is not None and previous is not conn and previous.game_id:
            return {"gameId": previous.game_id, "lastAckedPly": previous.last_acked_ply}
        return await self.get_resume_state(conn.account_id)

    async def disconnect(self, conn: WebSocketConnection) -> None:
        """Unregister a closing connection.

        A connection that was already replaced only drops out of the table;
        the newer connection keeps the room and no grace timer starts.
        """
        async with self._lock:
            current = self._connections.get(conn.account_id)
            if current is not conn:
                return
            del self._connections[conn.account_id]
            game_id = conn.game_id
            if game_id:
                self._leave_room(conn.account_id, game_id)

        conn.state = ConnectionState.DISCONNECTED
        record_ws_connection(False)
        logger.info(f"Connection {conn.connection_id} disconnected: account={conn.account_id}")

        if not game_id:
            return

        # Finished games have nothing to resume
        if not await self._is_active(game_id):
            await self.clear_resume_state(conn.account_id)
            return

        await self.store_resume_state(
            conn.account_id,
            {
                "gameId": game_id,
                "lastAckedPly": conn.last_acked_ply,
                "disconnectedAt": datetime.now(timezone.utc).isoformat(),
            },
        )

        await self.broadcast_to_room(
            game_id,
            MessageEnvelope.create(
                EventType.OPPONENT_DISCONNECTED,
                {
                    "gameId": game_id,
                    "accountId": conn.account_id,
                    "gracePeriod": self.grace_period,
                },
            ),
        )
        self._grace_timers[conn.account_id] = asyncio.create_task(
            self._grace_expired(conn.account_id, game_id)
        )
        logger.info(
            f"Grace timer started: account={conn.account_id} game={game_id} "
            f"period={self.grace_period}s"
        )

    def get_connection(self, account_id: str) -> WebSocketConnection | None:
        return self._connections.get(account_id)

    def is_connected(self, account_id: str) -> bool:
        return account_id in self._connections

    def has_grace_timer(self, account_id: str) -> bool:
        return account_id in self._grace_timers

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    # =========================================================================
    # Rooms
    # =========================================================================

    async def bind_room(self, conn: WebSocketConnection, game_id: str, last_ply: int = 0) -> None:
        """Bind a connection to a game room; last join wins."""
        async with self._lock:
            if self._connections.get(conn.account_id) is not conn:
                return
            if conn.game_id and conn.game_id != game_id:
                self._leave_room(conn.account_id, conn.game_id)
            conn.game_id = game_id
            conn.last_acked_ply = last_ply
            self._rooms.setdefault(game_id, set()).add(conn.account_id)

    def room_members(self, game_id: str) -> list[str]:
        return sorted(self._rooms.get(game_id, set()))

    def _leave_room(self, account_id: str, game_id: str) -> None:
        members = self._rooms.get(game_id)
        if members is None:
            return
        members.discard(account_id)
        if not members:
            del self._rooms[game_id]

    # =========================================================================
    # Sending
    # =========================================================================

    async def send_to_account(self, account_id: str, message: MessageEnvelope) -> bool:
        conn = self._connections.get(account_id)
        if conn is None:
            return False
        sent = await conn.send(message.to_dict())
        if sent:
            record_ws_message("sent", message.type.value)
        return sent

    async def broadcast_to_room(
        self,
        game_id: str,
        message: MessageEnvelope,
        exclude: str | None = None,
    ) -> int:
        """Send to every connection bound to the room. Returns the count sent."""
        sent = 0
        for account_id in self.room_members(game_id):
            if account_id == exclude:
                continue
            if await self.send_to_account(account_id, message):
                sent += 1
        return sent

    # =========================================================================
    # Resume state
    # =========================================================================

    async def store_resume_state(self, account_id: str, state: dict[str, Any]) -> None:
        self._resume[account_id] = state
        if self.redis is None:
            return
        try:
            await self.redis.setex(
                RESUME_KEY.format(account_id=account_id),
                self._settings.redis_resume_ttl,
                json_dumps(state),
            )
        except Exception as e:
            logger.warning(f"Failed to store resume state for {account_id}: {e}")

    async def get_resume_state(self, account_id: str) -> dict[str, Any] | None:
        if self.redis is not None:
            try:
                data = await self.redis.get(RESUME_KEY.format(account_id=account_id))
                if data:
                    return json_loads(data)
            except Exception as e:
                logger.warning(f"Failed to read resume state for {account_id}: {e}")
        return self._resume.get(account_id)

    async def clear_resume_state(self, account_id: str) -> None:
        self._resume.pop(account_id, None)
        if self.redis is None:
            return
        try:
            await self.redis.delete(RESUME_KEY.format(account_id=account_id))
        except Exception as e:
            logger.warning(f"Failed to clear resume state for {account_id}: {e}")

    # =========================================================================
    # Grace timers
    # =========================================================================

    async def _is_active(self, game_id: str) -> bool:
        try:
            async with self.session() as session:
                game = await self.registry(session).get_game(game_id)
                return game.status == GameStatus.ACTIVE.value
        except ChessWagerError:
            return False

    async def _grace_expired(self, account_id: str, game_id: str) -> None:
        """Forfeit a game whose player did not come back in time.

        Wagered games are cancelled and both wagers refunded. Bracket games
        cannot be replayed, so the absent player resigns and the opponent
        advances.
        """
        try:
            await asyncio.sleep(self.grace_period)
        except asyncio.CancelledError:
            return
        if self._grace_timers.get(account_id) is asyncio.current_task():
            del self._grace_timers[account_id]

        try:
            async with self.session() as session:
                registry = self.registry(session)
                game = await registry.get_game(game_id)
                if game.status != GameStatus.ACTIVE.value:
                    return
                if game.tournament_id:
                    summary = await registry.resign(game_id, account_id)
                    frame = MessageEnvelope.create(
                        EventType.GAME_OVER, game_over_payload(game, summary)
                    )
                else:
                    summary = await registry.cancel_game(
                        game_id, reason="disconnect_forfeit", forfeit=True
                    )
                    frame = MessageEnvelope.create(
                        EventType.GAME_CANCELLED, game_cancelled_payload(game, summary)
                    )
        except ChessWagerError as e:
            # Another path finished the game first
            logger.info(f"Grace expiry skipped: game={game_id} code={e.code}")
            return
        except Exception:
            logger.exception(f"Grace expiry failed: account={account_id} game={game_id}")
            return

        logger.info(f"Grace period expired: account={account_id} game={game_id}")
        await self.clear_resume_state(account_id)
        await self.broadcast_to_room(game_id, frame)
