"""Direct cross-context notification messages."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

import orjson


class MessageType(str, Enum):
    """Type of cross-context notification."""

    AUTH_STATE_CHANGED = "AUTH_STATE_CHANGED"
    CONFIG_CHANGED = "CONFIG_CHANGED"


@dataclass(frozen=True, slots=True)
class SyncMessage:
    """A value change announced by one context to its siblings.

    value is the JSON form of the new value, None when cleared.
    """

    type: MessageType
    key: str
    value: Any = None
    origin: str = ""
    message_id: str = field(default_factory=lambda: str(uuid4()))
    sent_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_bytes(self) -> bytes:
        """Serialize to JSON bytes."""
        return orjson.dumps(
            {
                "type": self.type.value,
                "key": self.key,
                "value": self.value,
                "origin": self.origin,
                "message_id": self.message_id,
                "sent_at": self.sent_at.isoformat(),
            }
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "SyncMessage":
        """Deserialize from JSON bytes."""
        parsed = orjson.loads(data)
        return cls(
            type=MessageType(parsed["type"]),
            key=parsed["key"],
            value=parsed.get("value"),
            origin=parsed.get("origin", ""),
            message_id=parsed.get("message_id") or str(uuid4()),
            sent_at=(
                datetime.fromisoformat(parsed["sent_at"])
                if parsed.get("sent_at")
                else datetime.now(UTC)
            ),
        )
