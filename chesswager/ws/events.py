"""WebSocket event type definitions."""

from enum import Enum


class EventType(str, Enum):
    """All WebSocket event types."""

    # System events
    AUTH = "auth"
    PING = "ping"
    PONG = "pong"
    CONNECTION_STATE = "connection_state"
    ERROR = "error"

    # Game events
    JOIN_GAME = "join_game"
    GAME_STATE = "game_state"
    GAME_MOVE = "game_move"
    MOVE_ACK = "move_ack"
    GAME_OVER = "game_over"
    GAME_CANCELLED = "game_cancelled"
    OPPONENT_DISCONNECTED = "opponent_disconnected"
    OPPONENT_RECONNECTED = "opponent_reconnected"

    # Chat events
    CHAT_MESSAGE = "chat_message"


# Client -> Server events
CLIENT_TO_SERVER_EVENTS = frozenset({
    EventType.AUTH,
    EventType.PING,
    EventType.JOIN_GAME,
    EventType.GAME_MOVE,
    EventType.CHAT_MESSAGE,
})

# Server -> Client events
SERVER_TO_CLIENT_EVENTS = frozenset({
    EventType.PONG,
    EventType.CONNECTION_STATE,
    EventType.ERROR,
    EventType.GAME_STATE,
    EventType.GAME_MOVE,
    EventType.MOVE_ACK,
    EventType.GAME_OVER,
    EventType.GAME_CANCELLED,
    EventType.OPPONENT_DISCONNECTED,
    EventType.OPPONENT_RECONNECTED,
    EventType.CHAT_MESSAGE,
})
