"""Tests for the Redis-backed persistent store."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import orjson
import pytest

from forgetful.exceptions import NotSerializable, QuotaExceeded
from forgetful.storage.redis import RedisStore
from forgetful.sync.synchronizer import StateSynchronizer


@pytest.fixture
def mock_redis() -> AsyncMock:
    client = AsyncMock()
    client.get.return_value = None
    client.set.return_value = None
    client.getdel.return_value = None
    client.publish.return_value = 1
    return client


@pytest.fixture
def redis_store(mock_redis: AsyncMock) -> RedisStore:
    return RedisStore(
        mock_redis,
        namespace="test:store",
        change_channel="test:changes",
        item_quota_bytes=256,
    )


class TestRedisStore:
    """Tests for key operations."""

    async def test_get_uses_namespaced_key(
        self, redis_store: RedisStore, mock_redis: AsyncMock
    ) -> None:
        mock_redis.get.return_value = b'{"user":{"id":"1"}}'

        value = await redis_store.get("auth_session")

        mock_redis.get.assert_called_once_with("test:store:auth_session")
        assert value == {"user": {"id": "1"}}

    async def test_get_absent_key(self, redis_store: RedisStore) -> None:
        assert await redis_store.get("missing") is None

    async def test_set_writes_and_publishes(
        self, redis_store: RedisStore, mock_redis: AsyncMock
    ) -> None:
        mock_redis.set.return_value = b"1"

        await redis_store.set("configVersion", 2)

        mock_redis.set.assert_called_once_with("test:store:configVersion", b"2", get=True)
        channel, payload = mock_redis.publish.call_args.args
        assert channel == "test:changes"
        parsed = orjson.loads(payload)
        assert parsed["key"] == "configVersion"
        assert parsed["old"] == 1
        assert parsed["new"] == 2

    async def test_set_over_quota(self, redis_store: RedisStore, mock_redis: AsyncMock) -> None:
        with pytest.raises(QuotaExceeded):
            await redis_store.set("k", "x" * 512)
        mock_redis.set.assert_not_called()

    async def test_set_unserializable(
        self, redis_store: RedisStore, mock_redis: AsyncMock
    ) -> None:
        with pytest.raises(NotSerializable):
            await redis_store.set("k", {1, 2})
        mock_redis.set.assert_not_called()

    async def test_remove_publishes_when_key_existed(
        self, redis_store: RedisStore, mock_redis: AsyncMock
    ) -> None:
        mock_redis.getdel.return_value = b'"old"'

        await redis_store.remove("k")

        mock_redis.getdel.assert_called_once_with("test:store:k")
        parsed = orjson.loads(mock_redis.publish.call_args.args[1])
        assert parsed["old"] == "old"
        assert parsed["new"] is None

    async def test_remove_absent_key_does_not_publish(
        self, redis_store: RedisStore, mock_redis: AsyncMock
    ) -> None:
        await redis_store.remove("missing")
        mock_redis.publish.assert_not_called()


class TestRedisChangeFeed:
    """Tests for change notification handling."""

    def test_handle_change_message_dispatches(self, redis_store: RedisStore) -> None:
        events: list[tuple] = []
        redis_store.subscribe_to_changes(lambda *args: events.append(args))

        redis_store.handle_change_message(
            orjson.dumps({"id": "x", "key": "k", "old": None, "new": {"a": 1}})
        )

        assert events == [("k", None, {"a": 1})]

    def test_invalid_message_ignored(self, redis_store: RedisStore) -> None:
        events: list[tuple] = []
        redis_store.subscribe_to_changes(lambda *args: events.append(args))

        redis_store.handle_change_message(b"not json")
        redis_store.handle_change_message(orjson.dumps({"id": "x"}))

        assert events == []

    def test_unsubscribe(self, redis_store: RedisStore) -> None:
        events: list[tuple] = []
        unsubscribe = redis_store.subscribe_to_changes(lambda *args: events.append(args))
        unsubscribe()

        redis_store.handle_change_message(orjson.dumps({"key": "k", "new": 1}))
        assert events == []

    async def test_start_and_stop(self, redis_store: RedisStore, mock_redis: AsyncMock) -> None:
        async def get_message(**kwargs):
            await asyncio.sleep(0.01)
            return None

        pubsub = AsyncMock()
        pubsub.get_message.side_effect = get_message
        mock_redis.pubsub = MagicMock(return_value=pubsub)

        await redis_store.start()
        await redis_store.start()
        pubsub.subscribe.assert_called_once_with("test:changes")

        await redis_store.stop()
        pubsub.unsubscribe.assert_called_once_with("test:changes")
        pubsub.close.assert_called_once()

    async def test_published_change_carries_origin(self, mock_redis: AsyncMock) -> None:
        store = RedisStore(mock_redis, change_channel="test:changes", origin="popup-1")

        await store.set("k", 1)

        assert orjson.loads(mock_redis.publish.call_args.args[1])["origin"] == "popup-1"

    def test_own_changes_ignored(self, redis_store: RedisStore) -> None:
        events: list[tuple] = []
        redis_store.subscribe_to_changes(lambda *args: events.append(args))

        redis_store.handle_change_message(
            orjson.dumps({"origin": redis_store.origin, "key": "k", "old": None, "new": 1})
        )
        redis_store.handle_change_message(
            orjson.dumps({"origin": "other", "key": "k", "old": None, "new": 2})
        )

        assert events == [("k", None, 2)]

    async def test_late_echo_does_not_regress_value(
        self, redis_store: RedisStore, mock_redis: AsyncMock
    ) -> None:
        sync = StateSynchronizer("auth_session", redis_store)
        await sync.initialize()

        await sync.set_value({"user": {"id": "1"}})
        first_payload = mock_redis.publish.call_args_list[0].args[1]
        await sync.set_value({"user": {"id": "2"}})

        listener = MagicMock()
        sync.add_listener(listener)
        redis_store.handle_change_message(first_payload)

        assert sync.current == {"user": {"id": "2"}}
        listener.assert_not_called()
