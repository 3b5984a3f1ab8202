"""Tests for cross-context sync messages."""

from datetime import UTC, datetime

import orjson
import pytest

from forgetful.sync.messages import MessageType, SyncMessage


class TestSyncMessage:
    """Tests for SyncMessage serialization."""

    def test_defaults(self) -> None:
        message = SyncMessage(type=MessageType.CONFIG_CHANGED, key="user_preferences")

        assert message.value is None
        assert message.origin == ""
        assert message.message_id
        assert message.sent_at.tzinfo is not None

    def test_to_bytes(self) -> None:
        message = SyncMessage(
            type=MessageType.AUTH_STATE_CHANGED,
            key="auth_session",
            value={"user": {"id": "1"}},
            origin="popup",
            message_id="m-1",
            sent_at=datetime(2024, 1, 1, tzinfo=UTC),
        )

        parsed = orjson.loads(message.to_bytes())

        assert parsed == {
            "type": "AUTH_STATE_CHANGED",
            "key": "auth_session",
            "value": {"user": {"id": "1"}},
            "origin": "popup",
            "message_id": "m-1",
            "sent_at": "2024-01-01T00:00:00+00:00",
        }

    def test_from_bytes_preserves_fields(self) -> None:
        original = SyncMessage(
            type=MessageType.CONFIG_CHANGED,
            key="user_preferences",
            value={"theme": "dark"},
            origin="options",
        )

        restored = SyncMessage.from_bytes(original.to_bytes())

        assert restored == original

    def test_from_bytes_fills_missing_fields(self) -> None:
        restored = SyncMessage.from_bytes(b'{"type":"CONFIG_CHANGED","key":"k"}')

        assert restored.type == MessageType.CONFIG_CHANGED
        assert restored.origin == ""
        assert restored.message_id

    def test_unknown_type_rejected(self) -> None:
        with pytest.raises(ValueError):
            SyncMessage.from_bytes(b'{"type":"NOPE","key":"k"}')
