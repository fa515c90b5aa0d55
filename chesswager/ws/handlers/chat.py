"""In-game chat handler. Lines are persisted before they are fanned out."""

from __future__ import annotations

import logging

from chesswager.utils.errors import ChessWagerError, ErrorCode
from chesswager.ws.connection import WebSocketConnection
from chesswager.ws.events import EventType
from chesswager.ws.handlers.base import BaseHandler
from chesswager.ws.messages import MessageEnvelope
from chesswager.ws.serializer import chat_payload

logger = logging.getLogger(__name__)


class ChatHandler(BaseHandler):
    @property
    def handled_events(self) -> tuple[EventType, ...]:
        return (EventType.CHAT_MESSAGE,)

    async def handle(
        self,
        conn: WebSocketConnection,
        event: MessageEnvelope,
    ) -> MessageEnvelope | None:
        game_id = event.payload.get("gameId") or conn.game_id
        text = event.payload.get("message")
        if not isinstance(game_id, str) or not game_id:
            raise ChessWagerError(ErrorCode.INVALID_REQUEST, "gameId is required")
        if not isinstance(text, str):
            raise ChessWagerError(ErrorCode.INVALID_REQUEST, "message is required")

        async with self.manager.session() as session:
            message = await self.manager.registry(session).add_chat_message(
                game_id, conn.account_id, text
            )

        frame = MessageEnvelope.create(
            EventType.CHAT_MESSAGE,
            chat_payload(message),
            trace_id=event.trace_id,
        )
        await self.manager.broadcast_to_room(game_id, frame)
        if conn.game_id != game_id:
            # Sender is not bound to this room; echo so it sees its own line
            await conn.send(frame.to_dict())
        logger.debug(f"Chat: account={conn.account_id} game={game_id}")
        return None
