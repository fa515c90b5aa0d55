"""Base handler interface for WebSocket events."""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from chesswager.ws.connection import WebSocketConnection
from chesswager.ws.events import EventType
from chesswager.ws.messages import MessageEnvelope

if TYPE_CHECKING:
    from chesswager.ws.manager import ConnectionManager


class BaseHandler(ABC):
    """Base class for event handlers.

    Each handler is responsible for a group of related events. A handler
    either returns the reply for the sender or sends its frames itself and
    returns None. Core errors propagate to the gateway, which turns them
    into error frames.
    """

    def __init__(self, manager: "ConnectionManager"):
        self.manager = manager

    @property
    @abstractmethod
    def handled_events(self) -> tuple[EventType, ...]:
        """Return event types this handler can process."""
        ...

    @abstractmethod
    async def handle(
        self,
        conn: WebSocketConnection,
        event: MessageEnvelope,
    ) -> MessageEnvelope | None:
        ...

    def can_handle(self, event_type: EventType) -> bool:
        return event_type in self.handled_events
