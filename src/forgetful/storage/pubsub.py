"""Redis Pub/Sub listen loop shared by the store change feed and the broadcaster.

Example:
    subscription = ChannelSubscription(client, "forgetful:changes", on_payload)
    await subscription.start()
    ...
    await subscription.stop()
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from redis.asyncio import Redis
    from redis.asyncio.client import PubSub

logger = logging.getLogger(__name__)

PayloadHandler = Callable[[bytes], Awaitable[None]]


class ChannelSubscription:
    """Subscribes to one channel and feeds every raw payload to a handler."""

    def __init__(self, client: Redis, channel: str, handler: PayloadHandler):
        self.client = client
        self.channel = channel
        self.handler = handler
        self._running = False
        self._task: asyncio.Task[None] | None = None
        self._pubsub: PubSub | None = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Subscribe and start the listen loop. No-op when already running."""
        if self._running:
            return

        self._pubsub = self.client.pubsub()
        await self._pubsub.subscribe(self.channel)

        self._running = True
        self._task = asyncio.create_task(self._listen_loop())

    async def stop(self) -> None:
        """Stop the listen loop and unsubscribe."""
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        if self._pubsub:
            await self._pubsub.unsubscribe(self.channel)
            await self._pubsub.close()  # type: ignore[no-untyped-call]
            self._pubsub = None

    async def _listen_loop(self) -> None:
        """Main loop for receiving messages."""
        while self._running and self._pubsub:
            try:
                message = await self._pubsub.get_message(
                    ignore_subscribe_messages=True,
                    timeout=1.0,
                )

                if message is None:
                    continue

                if message["type"] == "message":
                    await self.handler(message["data"])

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in listener on {self.channel}: {e}")
                await asyncio.sleep(1)
