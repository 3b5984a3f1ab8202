"""In-process cache layer.

- BoundedTTLCache: size-bounded LRU cache with per-entry TTL
- CachedCollection: whole-collection cache keyed by owner id
- StorageKeys: persisted key layout
"""

from forgetful.cache.collection import CachedCollection, CollectionPage
from forgetful.cache.keys import StorageKeys
from forgetful.cache.ttl import BoundedTTLCache, CacheEntry, CacheStats, OperationSerializer

__all__ = [
    "BoundedTTLCache",
    "CacheEntry",
    "CacheStats",
    "CachedCollection",
    "CollectionPage",
    "OperationSerializer",
    "StorageKeys",
]
