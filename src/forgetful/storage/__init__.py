"""Persistent store adapters.

- PersistentStore: contract used by the sync layer
- InMemoryStore: shared in-process store
- RedisStore: Redis strings with a pub/sub change feed
"""

from forgetful.storage.base import (
    ChangeCallback,
    PersistentStore,
    StorageUsage,
    StoreChange,
    Unsubscribe,
)
from forgetful.storage.memory import InMemoryStore
from forgetful.storage.redis import RedisStore, create_redis

__all__ = [
    "ChangeCallback",
    "InMemoryStore",
    "PersistentStore",
    "RedisStore",
    "StorageUsage",
    "StoreChange",
    "Unsubscribe",
    "create_redis",
]
