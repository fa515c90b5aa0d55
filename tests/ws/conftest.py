"""WebSocket test fixtures and utilities."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import uuid4

import pytest_asyncio

from chesswager.services.chess_rules import PythonChessRules
from chesswager.services.game import GameRegistry
from chesswager.utils.json_utils import json_dumps
from chesswager.ws.connection import WebSocketConnection
from chesswager.ws.gateway import HandlerRegistry
from chesswager.ws.manager import ConnectionManager


# =============================================================================
# Mock Classes
# =============================================================================


class MockWebSocket:
    """Mock WebSocket for testing."""

    def __init__(self):
        self.accepted = False
        self.closed = False
        self.close_code = None
        self.close_reason = None
        self.sent_messages: list[dict[str, Any]] = []
        self.receive_queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()

    async def accept(self) -> None:
        self.accepted = True

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed = True
        self.close_code = code
        self.close_reason = reason

    async def send_json(self, data: dict[str, Any]) -> None:
        if self.closed:
            raise RuntimeError("WebSocket closed")
        self.sent_messages.append(data)

    async def receive_json(self) -> dict[str, Any]:
        if self.closed:
            raise RuntimeError("WebSocket closed")
        return await self.receive_queue.get()

    def add_message(self, message: dict[str, Any]) -> None:
        """Add message to receive queue."""
        self.receive_queue.put_nowait(message)

    def frames(self, event_type: str) -> list[dict[str, Any]]:
        return [m for m in self.sent_messages if m["type"] == event_type]

    @property
    def types(self) -> list[str]:
        return [m["type"] for m in self.sent_messages]


class MockRedis:
    """Mock Redis client for testing."""

    def __init__(self):
        self._data: dict[str, Any] = {}
        self.ttls: dict[str, int] = {}

    async def ping(self) -> bool:
        return True

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def setex(self, key: str, ttl: int, value: str) -> bool:
        self._data[key] = value
        self.ttls[key] = ttl
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._data.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed


# =============================================================================
# Helpers
# =============================================================================


def make_connection(account_id: str) -> WebSocketConnection:
    return WebSocketConnection(
        websocket=MockWebSocket(),
        account_id=account_id,
        connection_id=str(uuid4()),
        connected_at=datetime.now(timezone.utc),
    )


async def wait_for_frame(
    websocket: MockWebSocket,
    event_type: str,
    timeout: float = 2.0,
) -> dict[str, Any]:
    """Poll the mock socket until a frame of the given type arrives."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        frames = websocket.frames(event_type)
        if frames:
            return frames[-1]
        await asyncio.sleep(0.01)
    raise AssertionError(f"No {event_type} frame within {timeout}s: got {websocket.types}")


def frame(event_type: str, payload: dict[str, Any] | None = None, trace_id: str = "trace-1") -> str:
    return json_dumps({"type": event_type, "traceId": trace_id, "payload": payload or {}})


# =============================================================================
# Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def mock_redis() -> MockRedis:
    return MockRedis()


@pytest_asyncio.fixture
async def manager(session_factory, mock_redis):
    manager = ConnectionManager(
        session_factory=session_factory,
        redis=mock_redis,
        grace_period=0.05,
    )
    yield manager
    await manager.stop()


@pytest_asyncio.fixture
async def handlers(manager) -> HandlerRegistry:
    return HandlerRegistry(manager)


@pytest_asyncio.fixture
async def wager_game(session_factory, make_account) -> tuple[str, str, str]:
    """Committed active game with a 0.3 wager. Returns (game_id, white, black)."""
    creator = await make_account(balance="1")
    opponent = await make_account(balance="1")
    async with session_factory() as session:
        registry = GameRegistry(session, rules=PythonChessRules())
        game = await registry.create_game(creator, Decimal("0.3"), "5+0")
        await registry.join_game(game.id, opponent)
        await session.commit()
        return game.id, creator, opponent
