"""WebSocket connection model."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    CONNECTED = "connected"
    RECOVERED = "recovered"
    DISCONNECTED = "disconnected"


@dataclass
class WebSocketConnection:
    """A single authenticated WebSocket connection.

    A connection is bound to at most one game room at a time.
    """

    websocket: WebSocket
    account_id: str
    connection_id: str
    connected_at: datetime
    state: ConnectionState = ConnectionState.CONNECTED

    # Room binding
    game_id: str | None = None
    last_acked_ply: int = 0

    # Heartbeat tracking
    last_ping_at: datetime | None = None

    async def send(self, message: dict[str, Any]) -> bool:
        """Send message to client. Returns False if failed."""
        try:
            await self.websocket.send_json(message)
            return True
        except Exception as e:
            logger.warning(f"Failed to send message to {self.connection_id}: {e}")
            return False

    async def close(self, code: int = 1000, reason: str = "") -> None:
        """Close the connection."""
        try:
            self.state = ConnectionState.DISCONNECTED
            await self.websocket.close(code, reason)
        except Exception as e:
            logger.debug(f"Error closing connection {self.connection_id}: {e}")

    def update_ping(self) -> None:
        self.last_ping_at = datetime.now(timezone.utc)

    def ack(self, ply: int) -> None:
        """Advance the last acknowledged ply; never moves backwards."""
        if ply > self.last_acked_ply:
            self.last_acked_ply = ply
