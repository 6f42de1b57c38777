"""Event records and their text/event-stream framing."""

from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel

# Well-known kinds. Producers may add others; the hub forwards them verbatim.
CONNECTED = "connected"
ALERT = "alert"
ACK = "ack"
PING = "ping"
HEALTH = "health"


@dataclass(frozen=True)
class Event:
    """Immutable tagged record delivered to stream subscribers."""

    kind: str
    payload: Any = None

    def __post_init__(self) -> None:
        if not isinstance(self.kind, str) or not self.kind:
            raise ValueError("event kind must be a non-empty string")
        if any(ch in self.kind for ch in ("\n", "\r", ":")):
            raise ValueError(f"event kind may not contain newline or colon: {self.kind!r}")


def _default(value: Any) -> Any:
    if isinstance(value, BaseModel):
        to_payload = getattr(value, "to_payload", None)
        if callable(to_payload):
            return to_payload()
        return value.model_dump(mode="json")
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def encode_payload(payload: Any) -> str:
    """Serialise a payload to a single line of compact JSON.

    NaN and infinities have no JSON form and raise ValueError.
    """
    return json.dumps(payload, default=_default, separators=(",", ":"), ensure_ascii=False, allow_nan=False)


def encode_frame(event: Event) -> bytes:
    """Render one event as a complete text/event-stream frame."""
    return f"event: {event.kind}\ndata: {encode_payload(event.payload)}\n\n".encode("utf-8")
