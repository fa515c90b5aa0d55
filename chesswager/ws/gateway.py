"""WebSocket gateway endpoint.

Connection flow:
1. Client connects to /ws (no token in the URL)
2. Client sends ``{type: "auth", payload: {token}}`` within the auth timeout
3. Server verifies the session token and that the account is active
4. Server sends connection_state and, for a reconnect, the game_state to resume
5. Bidirectional message exchange until the socket closes
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from fastapi import APIRouter, Request, WebSocket, WebSocketDisconnect

from chesswager.config import get_settings
from chesswager.logging_config import connection_context
from chesswager.middleware.prometheus import record_ws_message
from chesswager.services.account import AccountService
from chesswager.utils.errors import ChessWagerError
from chesswager.utils.json_utils import json_loads
from chesswager.utils.security import TokenError, verify_access_token
from chesswager.ws.connection import ConnectionState, WebSocketConnection
from chesswager.ws.events import CLIENT_TO_SERVER_EVENTS, EventType
from chesswager.ws.handlers.base import BaseHandler
from chesswager.ws.handlers.chat import ChatHandler
from chesswager.ws.handlers.game import GameHandler
from chesswager.ws.handlers.system import SystemHandler, create_connection_state_message
from chesswager.ws.manager import ConnectionManager
from chesswager.ws.messages import (
    MessageEnvelope,
    create_error_message,
    error_from_exception,
)

logger = logging.getLogger(__name__)
router = APIRouter(tags=["WebSocket"])

AUTH_FAILED_CLOSE_CODE = 4001


class HandlerRegistry:
    """Registry for event handlers."""

    def __init__(self, manager: ConnectionManager):
        self.manager = manager
        self.system = SystemHandler(manager)
        self.game = GameHandler(manager)
        self.chat = ChatHandler(manager)

        self._handlers: dict[EventType, BaseHandler] = {}
        for handler in (self.system, self.game, self.chat):
            for event_type in handler.handled_events:
                self._handlers[event_type] = handler

    def get_handler(self, event_type: EventType) -> BaseHandler | None:
        return self._handlers.get(event_type)


def get_manager(websocket: WebSocket) -> ConnectionManager:
    """The connection manager owned by the running app."""
    return websocket.app.state.connections


async def authenticate(websocket: WebSocket, manager: ConnectionManager) -> str | None:
    """Wait for the auth frame and return the verified account id.

    Closes the socket and returns None on any failure. The account id comes
    from the token subject only.
    """
    settings = get_settings()
    try:
        data = await asyncio.wait_for(
            websocket.receive_json(),
            timeout=settings.ws_auth_timeout_seconds,
        )
    except asyncio.TimeoutError:
        logger.warning("WebSocket auth timeout - no auth message received")
        await websocket.close(AUTH_FAILED_CLOSE_CODE, "Authentication timeout")
        return None
    except WebSocketDisconnect:
        return None
    except Exception as e:
        logger.warning(f"WebSocket auth error: {type(e).__name__}")
        await websocket.close(AUTH_FAILED_CLOSE_CODE, "Authentication error")
        return None

    if not isinstance(data, dict) or data.get("type") != EventType.AUTH.value:
        await websocket.close(AUTH_FAILED_CLOSE_CODE, "Expected auth message")
        return None

    payload = data.get("payload") or {}
    token = payload.get("token") if isinstance(payload, dict) else None
    if not token:
        await websocket.close(AUTH_FAILED_CLOSE_CODE, "Missing token in auth message")
        return None

    try:
        account_id = str(verify_access_token(token)["sub"])
    except TokenError as e:
        logger.warning(f"WebSocket token error: {e.code}")
        await websocket.close(AUTH_FAILED_CLOSE_CODE, "Invalid or expired token")
        return None

    try:
        async with manager.session() as session:
            await AccountService(session).get_active_account(account_id)
    except ChessWagerError as e:
        logger.warning(f"WebSocket auth rejected: account={account_id} code={e.code}")
        await websocket.close(AUTH_FAILED_CLOSE_CODE, "Account not active")
        return None

    return account_id


async def dispatch(
    registry: HandlerRegistry,
    conn: WebSocketConnection,
    raw: str,
) -> None:
    """Parse one frame, run its handler and send the reply or error."""
    trace_id = None
    try:
        event = MessageEnvelope.from_dict(json_loads(raw))
        trace_id = event.trace_id
        record_ws_message("received", event.type.value)

        if event.type not in CLIENT_TO_SERVER_EVENTS or event.type == EventType.AUTH:
            error = create_error_message(
                error_code="INVALID_EVENT_DIRECTION",
                error_message=f"Event {event.type.value} cannot be sent by client",
                trace_id=trace_id,
            )
            await conn.send(error.to_dict())
            return

        handler = registry.get_handler(event.type)
        if handler is None:
            error = create_error_message(
                error_code="UNKNOWN_EVENT",
                error_message=f"Unknown event type: {event.type.value}",
                trace_id=trace_id,
            )
            await conn.send(error.to_dict())
            return

        response = await handler.handle(conn, event)
        if response is not None:
            await conn.send(response.to_dict())

    except ChessWagerError as e:
        await conn.send(error_from_exception(e, trace_id=trace_id).to_dict())

    except ValueError as e:
        logger.warning(f"Invalid message format: {e}")
        error = create_error_message(
            error_code="INVALID_MESSAGE",
            error_message="Invalid message format",
            trace_id=trace_id,
        )
        await conn.send(error.to_dict())

    except Exception as e:
        logger.exception(f"Handler error: {e}")
        error = create_error_message(
            error_code="HANDLER_ERROR",
            error_message="Internal handler error",
            trace_id=trace_id,
        )
        await conn.send(error.to_dict())


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    manager = get_manager(websocket)
    await websocket.accept()

    account_id = await authenticate(websocket, manager)
    if account_id is None:
        return

    conn = WebSocketConnection(
        websocket=websocket,
        account_id=account_id,
        connection_id=str(uuid4()),
        connected_at=datetime.now(timezone.utc),
    )
    resume_state = await manager.connect(conn)
    registry = HandlerRegistry(manager)

    await conn.send(
        create_connection_state_message(
            state=ConnectionState.CONNECTED,
            account_id=account_id,
            connection_id=conn.connection_id,
        ).to_dict()
    )
    if resume_state:
        await registry.game.resume(conn, resume_state)

    logger.info(f"WebSocket connected: account={account_id}, conn={conn.connection_id}")

    try:
        with connection_context(account_id, conn.connection_id):
            while True:
                raw = await websocket.receive_text()
                await dispatch(registry, conn, raw)

    except WebSocketDisconnect as e:
        logger.info(
            f"WebSocket disconnected: account={account_id}, conn={conn.connection_id}, "
            f"code={e.code}"
        )

    except Exception as e:
        logger.exception(f"WebSocket error: {e}")

    finally:
        await manager.disconnect(conn)


@router.get("/ws/stats")
async def websocket_stats(request: Request) -> dict[str, Any]:
    """Connection statistics for monitoring."""
    manager: ConnectionManager = request.app.state.connections
    return {"connections": manager.connection_count, "status": "running"}
