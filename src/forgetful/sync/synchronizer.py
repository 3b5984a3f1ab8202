"""Generic cross-context synchronized value.

A StateSynchronizer keeps one store key observed consistently by every
context that holds an instance for it:

- Local writes update the in-memory value first, then broadcast to
  siblings, then persist. Read-after-write in the same context never
  regresses, even if persisting is slow or fails.
- Store change events and incoming broadcasts are reconciled through the
  same update path, which compares values structurally and notifies
  listeners only when something actually changed.

State machine:
    UNINITIALIZED -> LOADING -> READY
    READY -> READY                (local write / external change)
    any -> UNINITIALIZED          (reset)
    any -> CLOSED                 (close, terminal)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar
from uuid import uuid4

import orjson
import pydantic

from forgetful.exceptions import (
    ListenerFailure,
    LoadFailure,
    PersistFailure,
    SynchronizerClosed,
    ValidationError,
)
from forgetful.storage.base import JSONValue, PersistentStore, StoreChange, Unsubscribe
from forgetful.sync.broadcast import Broadcaster
from forgetful.sync.messages import MessageType, SyncMessage

logger = logging.getLogger(__name__)

V = TypeVar("V")
M = TypeVar("M", bound=pydantic.BaseModel)

Listener = Callable[[Any], None]


def _canonical(value: JSONValue) -> bytes:
    return orjson.dumps(value, option=orjson.OPT_SORT_KEYS)


class SyncState(str, Enum):
    """Lifecycle state of a synchronized value."""

    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    CLOSED = "closed"


@dataclass(frozen=True)
class SyncSummary:
    """Read-only view of a synchronized value."""

    key: str
    state: SyncState
    initialized: bool
    has_value: bool


class ValueCodec(Generic[V]):
    """Converts between stored JSON and the in-memory value type.

    dump() output is also what structural comparison runs on.
    """

    def parse(self, raw: Any) -> V:
        raise NotImplementedError

    def dump(self, value: V) -> JSONValue:
        raise NotImplementedError


class JsonCodec(ValueCodec[Any]):
    """Plain JSON values, compared by content."""

    def parse(self, raw: Any) -> Any:
        return raw

    def dump(self, value: Any) -> JSONValue:
        return value


class ModelCodec(ValueCodec[M]):
    """Pydantic models validated on every load."""

    def __init__(self, model: type[M]):
        self.model = model

    def parse(self, raw: Any) -> M:
        return self.model.model_validate(raw)

    def dump(self, value: M) -> JSONValue:
        return value.model_dump(mode="json", by_alias=True, exclude_none=True)


class StateSynchronizer(Generic[V]):
    """One store key kept consistent across contexts.

    Args:
        key: Store key holding the value
        store: Shared persistent store
        broadcaster: Direct channel to sibling contexts, optional
        codec: Value conversion; plain JSON by default
        message_type: Type used for outgoing broadcasts
        origin: Identifier of this context, used to ignore own broadcasts
    """

    default_message_type: MessageType = MessageType.CONFIG_CHANGED

    def __init__(
        self,
        key: str,
        store: PersistentStore,
        broadcaster: Broadcaster | None = None,
        *,
        codec: ValueCodec[V] | None = None,
        message_type: MessageType | None = None,
        origin: str | None = None,
    ):
        self.key = key
        self.store = store
        self.broadcaster = broadcaster
        self.codec: ValueCodec[V] = codec or JsonCodec()  # type: ignore[assignment]
        self.message_type = message_type or self.default_message_type
        self.origin = origin or (broadcaster.origin if broadcaster else str(uuid4())[:8])

        self._current: V | None = None
        self._initialized = False
        self._state = SyncState.UNINITIALIZED
        self._listeners: set[Listener] = set()
        self._unsubscribe: Unsubscribe | None = None
        self._init_lock = asyncio.Lock()
        self.last_listener_failures: list[ListenerFailure] = []

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def current(self) -> V | None:
        """Last known value without triggering a load."""
        return self._current

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def initialize(self) -> None:
        """Load the value and subscribe to store changes, once.

        Concurrent callers share a single load.

        Raises:
            LoadFailure: Store read failed; a later call retries
        """
        self._check_open()
        if self._initialized:
            return

        async with self._init_lock:
            if self._initialized:
                return
            self._check_open()

            self._state = SyncState.LOADING
            try:
                raw = await self.store.get(self.key)
            except Exception as e:
                self._state = SyncState.UNINITIALIZED
                raise LoadFailure(f"Failed to load {self.key}: {e}", key=self.key) from e
            except asyncio.CancelledError:
                self._state = SyncState.UNINITIALIZED
                raise

            self._current = self._parse_stored(raw)
            self._unsubscribe = self.store.subscribe_to_changes(self._on_store_change)
            self._initialized = True
            self._state = SyncState.READY
            logger.debug(f"Initialized {self.key} (present={self._current is not None})")

    def reset(self) -> None:
        """Drop local state so the next access reloads from the store."""
        self._cancel_subscription()
        self._current = None
        self._initialized = False
        if self._state is not SyncState.CLOSED:
            self._state = SyncState.UNINITIALIZED

    def close(self) -> None:
        """Tear down: drop listeners and the store subscription."""
        self._cancel_subscription()
        self._listeners.clear()
        self._current = None
        self._initialized = False
        self._state = SyncState.CLOSED

    # -------------------------------------------------------------------------
    # Value access
    # -------------------------------------------------------------------------

    async def get_value(self) -> V | None:
        """Current value, loading it first if needed."""
        await self.initialize()
        return self._current

    async def set_value(self, value: V | JSONValue | None) -> None:
        """Write a value locally, announce it, then persist it.

        The local value is kept even if persisting fails.

        Raises:
            ValidationError: value doesn't fit the value type
            QuotaExceeded, NotSerializable: rejected by the store
            PersistFailure: any other store write failure
        """
        if value is None:
            await self.clear()
            return

        await self.initialize()
        parsed = self._coerce(value)

        self._update(parsed)
        await self._broadcast(parsed)
        await self._persist(parsed)

    async def clear(self) -> None:
        """Clear the value locally, announce it, then remove the key."""
        await self.initialize()

        self._update(None)
        await self._broadcast(None)
        await self._persist(None)

    def on_external_change(self, raw: JSONValue | None) -> bool:
        """Reconcile a value observed from another context.

        Returns True if the value changed and listeners were notified.
        """
        if not self._initialized:
            logger.debug(f"Ignoring external change of {self.key} before initialization")
            return False

        try:
            new_value = None if raw is None else self.codec.parse(raw)
        except (pydantic.ValidationError, ValueError, TypeError) as e:
            logger.warning(f"Ignoring invalid external value for {self.key}: {e}")
            return False

        return self._update(new_value)

    async def handle_message(self, message: SyncMessage) -> None:
        """Broadcast handler: route a sibling's announcement for this key."""
        if message.key != self.key or message.origin == self.origin:
            return
        self.on_external_change(message.value)

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def add_listener(self, listener: Listener) -> None:
        self._listeners.add(listener)

    def remove_listener(self, listener: Listener) -> None:
        self._listeners.discard(listener)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def summary(self) -> SyncSummary:
        return SyncSummary(
            key=self.key,
            state=self._state,
            initialized=self._initialized,
            has_value=self._current is not None,
        )

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _update(self, new_value: V | None) -> bool:
        """Single update path: compare structurally, replace, notify."""
        if self._same(new_value, self._current):
            return False

        self._current = new_value
        self._notify(new_value)
        return True

    def _same(self, a: V | None, b: V | None) -> bool:
        if a is None or b is None:
            return a is b
        # Serialized form keeps True and 1 distinct
        try:
            return _canonical(self.codec.dump(a)) == _canonical(self.codec.dump(b))
        except (orjson.JSONEncodeError, TypeError):
            return False

    def _notify(self, value: V | None) -> None:
        failures = []
        for listener in list(self._listeners):
            try:
                listener(value)
            except Exception as e:
                failure = ListenerFailure(listener, e)
                logger.error(f"{self.key}: {failure}", exc_info=e)
                failures.append(failure)
        self.last_listener_failures = failures

    async def _broadcast(self, value: V | None) -> None:
        if self.broadcaster is None:
            return

        try:
            message = SyncMessage(
                type=self.message_type,
                key=self.key,
                value=None if value is None else self.codec.dump(value),
                origin=self.origin,
            )
            await self.broadcaster.publish(message)
        except Exception as e:
            logger.debug(f"Broadcast of {self.key} not delivered: {e}")

    async def _persist(self, value: V | None) -> None:
        try:
            if value is None:
                await self.store.remove(self.key)
            else:
                await self.store.set(self.key, self.codec.dump(value))
        except PersistFailure:
            raise
        except Exception as e:
            raise PersistFailure(f"Failed to persist {self.key}: {e}", key=self.key) from e

    def _coerce(self, value: Any) -> V:
        try:
            return self.codec.parse(value)
        except pydantic.ValidationError as e:
            raise ValidationError(f"Invalid value for {self.key}: {e}") from e

    def _parse_stored(self, raw: JSONValue | None) -> V | None:
        if raw is None:
            return None
        try:
            return self.codec.parse(raw)
        except (pydantic.ValidationError, ValueError, TypeError) as e:
            logger.warning(f"Stored value for {self.key} is invalid, treating as absent: {e}")
            return None

    def _on_store_change(self, key: str, old_value: JSONValue, new_value: JSONValue) -> None:
        change = StoreChange(key=key, old_value=old_value, new_value=new_value)
        if change.key != self.key:
            return
        if change.removed:
            logger.debug(f"Store removed {self.key}")
        self.on_external_change(change.new_value)

    def _cancel_subscription(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _check_open(self) -> None:
        if self._state is SyncState.CLOSED:
            raise SynchronizerClosed(f"Synchronizer for {self.key} is closed")
