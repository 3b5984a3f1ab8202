"""Persistent store interface.

Defines the contract the sync layer needs from the shared key-value store.
The store is the ground truth across contexts; it offers no transactions,
last write wins.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import orjson

from forgetful.exceptions import NotSerializable, QuotaExceeded

JSONValue = Any

# Called with (key, old_value, new_value); new_value is None on removal
ChangeCallback = Callable[[str, JSONValue, JSONValue], None]
Unsubscribe = Callable[[], None]


@dataclass(frozen=True, slots=True)
class StoreChange:
    """A single key change observed on the store's change feed."""

    key: str
    old_value: JSONValue = None
    new_value: JSONValue = None

    @property
    def removed(self) -> bool:
        return self.new_value is None


@dataclass(frozen=True, slots=True)
class StorageUsage:
    """Bytes used against the store quota."""

    used: int
    quota: int

    @property
    def available(self) -> int:
        return max(0, self.quota - self.used)

    @property
    def percent_used(self) -> float:
        return (self.used / self.quota) * 100 if self.quota else 0.0


class PersistentStore(ABC):
    """Abstract base class for persistent key-value stores."""

    @abstractmethod
    async def get(self, key: str) -> JSONValue | None:
        """Return the stored value, or None if the key is absent."""
        ...

    @abstractmethod
    async def set(self, key: str, value: JSONValue) -> None:
        """Store a JSON value.

        Raises:
            QuotaExceeded: Encoded payload exceeds the store quota
            NotSerializable: Value can't be encoded as JSON
        """
        ...

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Remove a key. Removing an absent key is not an error."""
        ...

    @abstractmethod
    def subscribe_to_changes(self, callback: ChangeCallback) -> Unsubscribe:
        """Register a change callback and return a function that cancels it."""
        ...

    async def start(self) -> None:
        """Start delivering change notifications. No-op for local stores."""

    async def stop(self) -> None:
        """Stop delivering change notifications."""


def encode_value(key: str, value: JSONValue) -> bytes:
    """Encode a value for storage.

    Raises:
        NotSerializable: value contains functions, cycles or other non-JSON content
    """
    if value is None:
        raise NotSerializable(f"Value for {key!r} cannot be None", key=key)
    try:
        return orjson.dumps(value)
    except (orjson.JSONEncodeError, TypeError) as e:
        raise NotSerializable(f"Value for {key!r} is not JSON serializable: {e}", key=key) from e


def decode_value(data: bytes | str | None) -> JSONValue | None:
    """Decode a stored payload."""
    if data is None:
        return None
    return orjson.loads(data)


def check_quota(key: str, encoded: bytes, limit: int) -> None:
    """Raise QuotaExceeded if a single encoded item is over the limit."""
    size = len(key.encode()) + len(encoded)
    if size > limit:
        raise QuotaExceeded(key, size, limit)
