"""Redis-backed persistent store.

Lets contexts running in separate processes share one store. Values are
orjson-encoded under "{namespace}:{key}". Every write publishes a change
notification on a pub/sub channel so subscribed stores in other processes
can fire their change callbacks.

Example:
    client = create_redis()
    store = RedisStore(client)
    await store.start()
    unsubscribe = store.subscribe_to_changes(on_change)
    ...
    await store.stop()
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, cast
from uuid import uuid4

import orjson
import redis.asyncio as redis

from forgetful.cache.keys import StorageKeys
from forgetful.config import settings
from forgetful.storage.base import (
    ChangeCallback,
    JSONValue,
    PersistentStore,
    Unsubscribe,
    check_quota,
    decode_value,
    encode_value,
)
from forgetful.storage.pubsub import ChannelSubscription

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)


def create_redis(url: str | None = None) -> Redis:
    """Create a Redis client with its own connection pool."""
    return redis.from_url(  # type: ignore[no-untyped-call]
        url or settings.redis_url,
        decode_responses=False,  # payloads are orjson bytes
    )


class RedisStore(PersistentStore):
    """Persistent store over Redis strings plus a pub/sub change feed.

    Each change notification carries the writing store's origin. A store
    ignores notifications it published itself: the synchronizers on top of
    it already applied those writes locally, and a late echo would replace
    a newer local value.
    """

    def __init__(
        self,
        client: Redis,
        namespace: str | None = None,
        change_channel: str | None = None,
        item_quota_bytes: int | None = None,
        origin: str | None = None,
    ):
        self.client = client
        self.namespace = namespace or settings.store_namespace
        self.change_channel = change_channel or settings.change_channel
        self.item_quota_bytes = item_quota_bytes or settings.item_quota_bytes
        self.origin = origin or uuid4().hex[:8]
        self._callbacks: list[ChangeCallback] = []
        self._subscription = ChannelSubscription(client, self.change_channel, self._on_payload)

    def _key(self, key: str) -> str:
        return StorageKeys.namespaced(self.namespace, key)

    async def get(self, key: str) -> JSONValue | None:
        return decode_value(await self.client.get(self._key(key)))

    async def set(self, key: str, value: JSONValue) -> None:
        encoded = encode_value(key, value)
        check_quota(key, encoded, self.item_quota_bytes)

        old = await self.client.set(self._key(key), encoded, get=True)
        await self._publish_change(key, old, encoded)

    async def remove(self, key: str) -> None:
        old = await self.client.getdel(self._key(key))
        if old is not None:
            await self._publish_change(key, old, None)

    def subscribe_to_changes(self, callback: ChangeCallback) -> Unsubscribe:
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    # -------------------------------------------------------------------------
    # Change feed
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Start listening for change notifications."""
        if self._subscription.running:
            return
        await self._subscription.start()
        logger.info(f"Started store change feed on channel {self.change_channel}")

    async def stop(self) -> None:
        """Stop listening for change notifications."""
        await self._subscription.stop()
        logger.info("Stopped store change feed")

    async def _publish_change(self, key: str, old: bytes | None, new: bytes | None) -> None:
        payload = orjson.dumps(
            {
                "id": str(uuid4()),
                "origin": self.origin,
                "key": key,
                "old": decode_value(old),
                "new": decode_value(new),
            }
        )
        count = cast(int, await self.client.publish(self.change_channel, payload))
        logger.debug(f"Published change of {key} to {count} subscribers")

    async def _on_payload(self, data: bytes) -> None:
        self.handle_change_message(data)

    def handle_change_message(self, data: bytes) -> None:
        """Dispatch one change notification from another store to every callback."""
        try:
            parsed = orjson.loads(data)
            key = parsed["key"]
        except (orjson.JSONDecodeError, KeyError, TypeError) as e:
            logger.error(f"Failed to parse change notification: {e}")
            return

        if parsed.get("origin") == self.origin:
            return

        for callback in list(self._callbacks):
            try:
                callback(key, parsed.get("old"), parsed.get("new"))
            except Exception:
                logger.exception(f"Store change callback failed for {key}")
