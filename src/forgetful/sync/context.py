"""Composition of the sync layer for one execution context.

Each context (popup, options page, background worker) builds its own
SyncContext around the shared store and broadcast channel. Nothing here is
a module-level singleton, so several contexts can coexist in one process.

Example:
    store = InMemoryStore()
    hub = BroadcastHub()

    popup = SyncContext("popup", store, hub.attach("popup"))
    background = SyncContext("background", store, hub.attach("background"))
    await popup.start()
    await background.start()

    await popup.session.set_value({"user": {"id": "1"}})
    await hub.drain()
    assert (await background.session.get_value()).user.id == "1"
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from forgetful.cache.collection import CachedCollection
from forgetful.config import settings
from forgetful.observability.logging import LogContext
from forgetful.storage.base import PersistentStore
from forgetful.storage.redis import RedisStore, create_redis
from forgetful.sync.broadcast import Broadcaster, RedisBroadcaster
from forgetful.sync.migration import SchemaMigrator
from forgetful.sync.preferences import ConfigurationSynchronizer
from forgetful.sync.session import Session, SessionSynchronizer

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)


class SyncContext:
    """Session and configuration synchronizers for one context."""

    def __init__(
        self,
        name: str,
        store: PersistentStore,
        broadcaster: Broadcaster | None = None,
        *,
        migrator: SchemaMigrator | None = None,
        bookmarks: CachedCollection | None = None,
    ):
        self.name = name
        self.store = store
        self.broadcaster = broadcaster
        origin = broadcaster.origin if broadcaster else name

        self.session = SessionSynchronizer(store, broadcaster, origin=origin)
        self.config = ConfigurationSynchronizer(
            store, broadcaster, origin=origin, bookmarks=bookmarks
        )
        self.migrator = migrator or SchemaMigrator(store)

        self._started = False
        self._session_user_id: str | None = None
        self._redis: Redis | None = None
        self.session.add_listener(self._on_session_changed)

    @classmethod
    def from_settings(cls, name: str | None = None, client: Redis | None = None) -> "SyncContext":
        """Redis-backed context configured from settings."""
        name = name or settings.context_name
        owned = client is None
        client = client or create_redis()
        origin = f"{name}-{uuid4().hex[:8]}"
        context = cls(
            name,
            RedisStore(client, origin=origin),
            RedisBroadcaster(client, origin=origin),
        )
        if owned:
            context._redis = client
        return context

    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> None:
        """Connect, migrate the store schema and load both values."""
        if self._started:
            return

        with LogContext(context_name=self.name):
            if self.broadcaster is not None:
                self.broadcaster.add_handler(self.session.handle_message)
                self.broadcaster.add_handler(self.config.handle_message)
                await self.broadcaster.start()

            await self.store.start()
            await self.migrator.migrate()
            await asyncio.gather(self.session.initialize(), self.config.initialize())

            session = self.session.current
            self._session_user_id = session.user.id if session else None
            self._started = True
            logger.info(f"Started sync context {self.name}")

    async def close(self) -> None:
        """Tear down synchronizers, subscriptions and connections."""
        with LogContext(context_name=self.name):
            if self.broadcaster is not None:
                self.broadcaster.remove_handler(self.session.handle_message)
                self.broadcaster.remove_handler(self.config.handle_message)
                await self.broadcaster.stop()

            self.session.close()
            self.config.close()
            self.config.invalidate_bookmarks()
            await self.store.stop()

            if self._redis is not None:
                await self._redis.aclose()
                self._redis = None

            self._started = False
            logger.info(f"Closed sync context {self.name}")

    async def __aenter__(self) -> "SyncContext":
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Backup
    # -------------------------------------------------------------------------

    async def export_config(self) -> dict[str, Any]:
        """Preferences plus the current session."""
        data = await self.config.export_config()
        session = await self.session.get_value()
        data["auth"] = self.session.codec.dump(session) if session else None
        return data

    async def import_config(self, data: dict[str, Any]) -> None:
        await self.config.import_config(data)
        if data.get("auth"):
            await self.session.set_value(data["auth"])

    # -------------------------------------------------------------------------
    # Cross-field reactions
    # -------------------------------------------------------------------------

    def _on_session_changed(self, session: Session | None) -> None:
        user_id = session.user.id if session else None
        if user_id != self._session_user_id:
            # Cached collections belong to the previous user
            self.config.invalidate_bookmarks()
            logger.debug(f"Session user changed in {self.name}, dropped cached collections")
        self._session_user_id = user_id
