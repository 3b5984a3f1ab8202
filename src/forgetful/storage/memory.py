"""In-process persistent store.

One InMemoryStore instance is shared by every context in the process,
playing the role of the browser's sync storage area. Values are kept as
encoded bytes so every read and every change notification hands out a
freshly decoded copy, the same way separate contexts each deserialize
their own instance of a payload.
"""

from __future__ import annotations

import logging
from typing import Any

from forgetful.config import settings
from forgetful.exceptions import QuotaExceeded
from forgetful.storage.base import (
    ChangeCallback,
    JSONValue,
    PersistentStore,
    StorageUsage,
    Unsubscribe,
    check_quota,
    decode_value,
    encode_value,
)

logger = logging.getLogger(__name__)


class InMemoryStore(PersistentStore):
    """Dict-backed store with quotas and a synchronous change feed."""

    def __init__(
        self,
        item_quota_bytes: int | None = None,
        total_quota_bytes: int | None = None,
    ):
        self.item_quota_bytes = item_quota_bytes or settings.item_quota_bytes
        self.total_quota_bytes = total_quota_bytes or settings.total_quota_bytes
        self._data: dict[str, bytes] = {}
        self._callbacks: list[ChangeCallback] = []

    async def get(self, key: str) -> JSONValue | None:
        return decode_value(self._data.get(key))

    async def set(self, key: str, value: JSONValue) -> None:
        encoded = encode_value(key, value)
        check_quota(key, encoded, self.item_quota_bytes)

        current = self._data.get(key)
        projected = self.bytes_in_use() + len(key.encode()) + len(encoded)
        if current is not None:
            projected -= len(key.encode()) + len(current)
        if projected > self.total_quota_bytes:
            raise QuotaExceeded(key, projected, self.total_quota_bytes)

        self._data[key] = encoded
        self._emit(key, current, encoded)

    async def remove(self, key: str) -> None:
        old = self._data.pop(key, None)
        if old is not None:
            self._emit(key, old, None)

    def subscribe_to_changes(self, callback: ChangeCallback) -> Unsubscribe:
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    # -------------------------------------------------------------------------
    # Whole-area operations
    # -------------------------------------------------------------------------

    def keys(self) -> list[str]:
        return list(self._data)

    def bytes_in_use(self) -> int:
        return sum(len(key.encode()) + len(value) for key, value in self._data.items())

    def usage(self) -> StorageUsage:
        return StorageUsage(used=self.bytes_in_use(), quota=self.total_quota_bytes)

    async def clear(self) -> None:
        """Remove every key, notifying subscribers of each removal."""
        for key in list(self._data):
            await self.remove(key)

    async def export_data(self) -> dict[str, Any]:
        """Snapshot of all stored values."""
        return {key: decode_value(value) for key, value in self._data.items()}

    async def import_data(self, data: dict[str, Any]) -> None:
        """Write every key of a snapshot produced by export_data()."""
        for key, value in data.items():
            await self.set(key, value)

    # -------------------------------------------------------------------------
    # Change feed
    # -------------------------------------------------------------------------

    def _emit(self, key: str, old: bytes | None, new: bytes | None) -> None:
        for callback in list(self._callbacks):
            try:
                callback(key, decode_value(old), decode_value(new))
            except Exception:
                logger.exception(f"Store change callback failed for {key}")
