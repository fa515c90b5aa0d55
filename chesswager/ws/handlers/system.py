"""System event handlers (ping/pong, connection state)."""

from chesswager.config import get_settings
from chesswager.ws.connection import ConnectionState, WebSocketConnection
from chesswager.ws.events import EventType
from chesswager.ws.handlers.base import BaseHandler
from chesswager.ws.messages import MessageEnvelope


class SystemHandler(BaseHandler):
    @property
    def handled_events(self) -> tuple[EventType, ...]:
        return (EventType.PING,)

    async def handle(
        self,
        conn: WebSocketConnection,
        event: MessageEnvelope,
    ) -> MessageEnvelope | None:
        if event.type == EventType.PING:
            conn.update_ping()
            return MessageEnvelope.create(
                event_type=EventType.PONG,
                payload={},
                trace_id=event.trace_id,
            )
        return None


def create_connection_state_message(
    state: ConnectionState,
    account_id: str,
    connection_id: str,
) -> MessageEnvelope:
    """Sent once authentication succeeds."""
    return MessageEnvelope.create(
        event_type=EventType.CONNECTION_STATE,
        payload={
            "state": state.value,
            "accountId": account_id,
            "connectionId": connection_id,
            "heartbeatInterval": get_settings().heartbeat_interval,
        },
    )
