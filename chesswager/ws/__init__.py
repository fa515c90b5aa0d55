"""Realtime session hub: authenticated WebSocket connections bound to game
rooms, with reconnection grace timers."""

from chesswager.ws.gateway import router
from chesswager.ws.manager import ConnectionManager

__all__ = ["router", "ConnectionManager"]
