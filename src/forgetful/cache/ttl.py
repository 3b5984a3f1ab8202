"""Bounded in-process cache with per-entry TTL and LRU eviction.

Entries live in an OrderedDict kept in last-touch order, so the
least-recently-used entry is always at the front. Every public operation
runs through an OperationSerializer: a cache operation requested while
another one is executing (for example from an on_evict hook) is queued and
applied after the outer operation completes, in FIFO order.

Example:
    cache: BoundedTTLCache[dict] = BoundedTTLCache(capacity=100, default_ttl=300)
    cache.set("user_preferences", prefs)
    cache.get("user_preferences")  # refreshes recency
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict, deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Generic, Literal, TypeVar

logger = logging.getLogger(__name__)

V = TypeVar("V")
T = TypeVar("T")

EvictionReason = Literal["expired", "capacity"]
EvictionHook = Callable[[str, Any, EvictionReason], None]


@dataclass(slots=True)
class CacheEntry(Generic[V]):
    """A cached value with absolute expiry and last-touch time."""

    value: V
    expires_at: float
    touched_at: float

    def is_expired(self, now: float) -> bool:
        """Entry is logically absent once its expiry has been reached."""
        return now >= self.expires_at


@dataclass
class CacheStats:
    """Diagnostic snapshot of a cache."""

    size: int
    capacity: int
    keys: list[str] = field(default_factory=list)  # least to most recently used
    recency: dict[str, float] = field(default_factory=dict)


class OperationSerializer:
    """Runs operations one at a time on a single logical thread.

    An operation submitted while another is in progress is queued instead of
    interleaved, and the queue is drained in order once the running
    operation finishes. Operations queued by drained operations are appended
    to the same queue.
    """

    def __init__(self) -> None:
        self._in_progress = False
        self._queue: deque[Callable[[], Any]] = deque()

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    @property
    def pending(self) -> int:
        """Number of queued operations."""
        return len(self._queue)

    def run(self, operation: Callable[[], T]) -> T | None:
        """Run an operation now, or queue it if one is already running.

        Returns the operation's result when it ran immediately, None when it
        was queued.
        """
        if self._in_progress:
            self._queue.append(operation)
            return None

        self._in_progress = True
        try:
            return operation()
        finally:
            self._drain()

    def _drain(self) -> None:
        try:
            while self._queue:
                operation = self._queue.popleft()
                try:
                    operation()
                except Exception:
                    # No caller is left to receive the error
                    logger.exception("Queued cache operation failed")
        finally:
            self._in_progress = False


class BoundedTTLCache(Generic[V]):
    """Size-bounded cache with TTL expiry and least-recently-used eviction.

    Args:
        capacity: Maximum number of entries
        default_ttl: TTL in seconds used when set() is given none
        clock: Monotonic time source in seconds
        on_evict: Called with (key, value, reason) for each evicted entry
    """

    def __init__(
        self,
        capacity: int = 100,
        default_ttl: float = 300.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        on_evict: EvictionHook | None = None,
    ):
        if capacity < 1:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self._capacity = capacity
        self.default_ttl = default_ttl
        self._clock = clock
        self._on_evict = on_evict
        self._entries: OrderedDict[str, CacheEntry[V]] = OrderedDict()
        self._serializer = OperationSerializer()

    @property
    def capacity(self) -> int:
        return self._capacity

    @capacity.setter
    def capacity(self, value: int) -> None:
        """Change the bound. Shrinking takes effect on the next insertion."""
        if value < 1:
            raise ValueError(f"capacity must be positive, got {value}")
        self._capacity = value

    # -------------------------------------------------------------------------
    # Public operations
    # -------------------------------------------------------------------------

    def set(self, key: str, value: V, ttl: float | None = None) -> None:
        """Insert or refresh an entry at the most-recently-used position.

        A ttl <= 0 stores an entry that is already expired.
        """
        self._serializer.run(lambda: self._set(key, value, ttl))

    def get(self, key: str) -> V | None:
        """Return the value, or None if missing or expired.

        A hit moves the entry to the most-recently-used position.
        """
        return self._serializer.run(lambda: self._get(key))

    def remove(self, key: str) -> bool:
        """Remove an entry. Returns True if it was present."""
        return bool(self._serializer.run(lambda: self._remove(key)))

    def clear(self) -> None:
        """Remove all entries."""
        self._serializer.run(self._entries.clear)

    def purge_expired(self) -> int:
        """Drop every expired entry. Returns the number dropped."""
        return self._serializer.run(lambda: self._sweep_expired(self._clock())) or 0

    def stats(self) -> CacheStats:
        """Size, keys in recency order and last-touch times."""
        return CacheStats(
            size=len(self._entries),
            capacity=self._capacity,
            keys=list(self._entries),
            recency={key: entry.touched_at for key, entry in self._entries.items()},
        )

    def size(self) -> int:
        return len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        """Membership check that neither touches nor purges."""
        entry = self._entries.get(key) if isinstance(key, str) else None
        return entry is not None and not entry.is_expired(self._clock())

    # -------------------------------------------------------------------------
    # Serialized implementations
    # -------------------------------------------------------------------------

    def _set(self, key: str, value: V, ttl: float | None) -> None:
        now = self._clock()
        self._sweep_expired(now)

        if key not in self._entries and len(self._entries) >= self._capacity:
            self._evict_lru(max(1, len(self._entries) - self._capacity + 1))

        ttl = self.default_ttl if ttl is None else ttl
        self._entries[key] = CacheEntry(value=value, expires_at=now + ttl, touched_at=now)
        self._entries.move_to_end(key)

    def _get(self, key: str) -> V | None:
        entry = self._entries.get(key)
        if entry is None:
            return None

        now = self._clock()
        if entry.is_expired(now):
            del self._entries[key]
            self._notify_evicted(key, entry.value, "expired")
            return None

        entry.touched_at = now
        self._entries.move_to_end(key)
        return entry.value

    def _remove(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def _sweep_expired(self, now: float) -> int:
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            entry = self._entries.pop(key)
            self._notify_evicted(key, entry.value, "expired")
        return len(expired)

    def _evict_lru(self, count: int) -> None:
        for _ in range(min(count, len(self._entries))):
            key, entry = self._entries.popitem(last=False)
            logger.debug(f"Evicted least recently used cache entry {key}")
            self._notify_evicted(key, entry.value, "capacity")

    def _notify_evicted(self, key: str, value: V, reason: EvictionReason) -> None:
        if self._on_evict is None:
            return
        try:
            self._on_evict(key, value, reason)
        except Exception:
            logger.exception(f"Eviction hook failed for {key}")
