"""Per-owner cache of whole record collections.

Each owner's bookmark list is stored as a single entry and invalidated
wholesale whenever any of that owner's records change. The cache never
loads anything itself; a miss means the caller has to fetch.

An empty list is a valid cached value ("loaded, nothing there") and is
distinct from a miss ("not loaded").
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from forgetful.cache.keys import StorageKeys
from forgetful.cache.ttl import BoundedTTLCache, CacheStats
from forgetful.exceptions import CollectionValidationError

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 25
MAX_PAGE_SIZE = 100

Record = dict[str, Any]


@dataclass(frozen=True, slots=True)
class CollectionPage:
    """One page of a cached collection."""

    items: list[Record]
    page: int
    page_size: int
    total: int
    total_pages: int


class CachedCollection:
    """Cache of record collections keyed by owner id."""

    def __init__(
        self,
        capacity: int = 20,
        ttl: float = 300.0,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._cache: BoundedTTLCache[list[Record]] = BoundedTTLCache(
            capacity=capacity, default_ttl=ttl, clock=clock
        )

    def get(self, owner_id: str) -> list[Record] | None:
        """Cached collection for an owner, or None on a miss."""
        if not owner_id:
            return None
        collection = self._cache.get(StorageKeys.bookmark_collection(owner_id))
        return None if collection is None else list(collection)

    def set(self, owner_id: str, collection: Sequence[Record], ttl: float | None = None) -> None:
        """Cache an owner's collection.

        Raises:
            CollectionValidationError: owner_id is empty or collection isn't a list
        """
        if not isinstance(owner_id, str) or not owner_id.strip():
            raise CollectionValidationError("Owner id must be a non-empty string")
        if collection is None or not isinstance(collection, (list, tuple)):
            raise CollectionValidationError(
                f"Collection for {owner_id} must be a list, got {type(collection).__name__}"
            )

        self._cache.set(StorageKeys.bookmark_collection(owner_id), list(collection), ttl)

    def invalidate(self, owner_id: str) -> bool:
        """Drop an owner's collection after any mutation of its records."""
        removed = self._cache.remove(StorageKeys.bookmark_collection(owner_id))
        if removed:
            logger.debug(f"Invalidated cached collection for {owner_id}")
        return removed

    def invalidate_all(self) -> None:
        """Drop every cached collection."""
        self._cache.clear()
        logger.debug("Invalidated all cached collections")

    def owners(self) -> list[str]:
        """Owner ids with a resident (possibly expired) entry."""
        owners = []
        for key in self._cache.stats().keys:
            owner_id = StorageKeys.parse_collection_key(key)
            if owner_id is not None:
                owners.append(owner_id)
        return owners

    def page(
        self, owner_id: str, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE
    ) -> CollectionPage | None:
        """Slice a cached collection. None on a miss."""
        collection = self.get(owner_id)
        if collection is None:
            return None

        page = max(1, page)
        page_size = max(1, min(page_size, MAX_PAGE_SIZE))
        start = (page - 1) * page_size
        return CollectionPage(
            items=collection[start : start + page_size],
            page=page,
            page_size=page_size,
            total=len(collection),
            total_pages=math.ceil(len(collection) / page_size),
        )

    def stats(self) -> CacheStats:
        return self._cache.stats()
