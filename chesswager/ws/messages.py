"""Message envelope for the realtime protocol.

Every frame in both directions is ``{type, ts, traceId, payload}``.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from chesswager.utils.errors import ChessWagerError
from chesswager.ws.events import EventType


def _now_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


@dataclass(frozen=True)
class MessageEnvelope:
    type: EventType
    ts: int  # Unix timestamp in milliseconds
    trace_id: str
    payload: dict[str, Any]

    @classmethod
    def create(
        cls,
        event_type: EventType,
        payload: dict[str, Any],
        trace_id: str | None = None,
    ) -> MessageEnvelope:
        return cls(
            type=event_type,
            ts=_now_ms(),
            trace_id=trace_id or str(uuid.uuid4()),
            payload=payload,
        )

    @classmethod
    def from_dict(cls, data: Any) -> MessageEnvelope:
        """Parse an incoming frame.

        Raises:
            ValueError: If the frame is not an object with a known type
        """
        if not isinstance(data, dict) or "type" not in data:
            raise ValueError("Frame must be an object with a type")
        payload = data.get("payload") or {}
        if not isinstance(payload, dict):
            raise ValueError("Payload must be an object")
        return cls(
            type=EventType(data["type"]),
            ts=data.get("ts") or _now_ms(),
            trace_id=data.get("traceId") or str(uuid.uuid4()),
            payload=payload,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "ts": self.ts,
            "traceId": self.trace_id,
            "payload": self.payload,
        }


@dataclass
class ErrorPayload:
    error_code: str
    error_message: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "errorCode": self.error_code,
            "errorMessage": self.error_message,
            "details": self.details,
        }


def create_error_message(
    error_code: str,
    error_message: str,
    details: dict[str, Any] | None = None,
    trace_id: str | None = None,
) -> MessageEnvelope:
    """Helper to create an error envelope."""
    return MessageEnvelope.create(
        event_type=EventType.ERROR,
        payload=ErrorPayload(
            error_code=error_code,
            error_message=error_message,
            details=details or {},
        ).to_dict(),
        trace_id=trace_id,
    )


def error_from_exception(
    error: ChessWagerError,
    trace_id: str | None = None,
) -> MessageEnvelope:
    return create_error_message(
        error_code=error.code,
        error_message=error.message,
        details=error.details,
        trace_id=trace_id,
    )
