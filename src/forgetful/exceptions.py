"""Error taxonomy for the sync layer.

Only failures that affect the caller's own request are raised:
- LoadFailure: reading the store during initialize()
- PersistFailure (and its payload-level subclasses): writing the store
- BroadcastFailure: raised by broadcasters, always swallowed by synchronizers
- ListenerFailure: wraps a listener exception, logged and collected, never raised
"""

from __future__ import annotations

from typing import Any


class ForgetfulError(Exception):
    """Base class for all sync layer errors."""


class StoreError(ForgetfulError):
    """A persistent store operation failed."""

    def __init__(self, message: str, key: str | None = None):
        self.key = key
        super().__init__(message)


class LoadFailure(StoreError):
    """Reading a key from the store failed during initialization."""


class PersistFailure(StoreError):
    """Writing or removing a key in the store failed."""


class QuotaExceeded(PersistFailure):
    """Payload exceeds the store's size quota."""

    def __init__(self, key: str, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(f"Value for {key!r} is {size} bytes, quota is {limit} bytes", key=key)


class NotSerializable(PersistFailure):
    """Payload cannot be encoded as JSON."""


class BroadcastFailure(ForgetfulError):
    """Direct cross-context notification could not be delivered."""


class ListenerFailure(ForgetfulError):
    """A registered listener raised while being notified."""

    def __init__(self, listener: Any, error: BaseException):
        self.listener = listener
        self.error = error
        name = getattr(listener, "__name__", listener.__class__.__name__)
        super().__init__(f"Listener {name} failed: {error}")


class SynchronizerClosed(ForgetfulError):
    """Operation attempted on a synchronizer that was torn down."""


class ValidationError(ForgetfulError, ValueError):
    """Input rejected before reaching the cache or the store."""


class CollectionValidationError(ValidationError):
    """Invalid owner id or collection shape."""


class ConfigValidationError(ValidationError):
    """Invalid configuration value."""
