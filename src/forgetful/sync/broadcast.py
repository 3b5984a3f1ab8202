"""Best-effort direct notifications between contexts.

A broadcast is the low-latency path next to the store's change feed:
sibling contexts that are currently running learn about a new value
without waiting for the store to propagate it. Delivery is not
guaranteed; a publish with nobody listening raises BroadcastFailure,
which senders treat as non-fatal.

Two implementations:
- InMemoryBroadcaster: contexts in one process, connected through a BroadcastHub
- RedisBroadcaster: contexts in separate processes, via Redis Pub/Sub
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, cast

from forgetful.config import settings
from forgetful.exceptions import BroadcastFailure
from forgetful.storage.pubsub import ChannelSubscription
from forgetful.sync.messages import SyncMessage

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)

MessageHandler = Callable[[SyncMessage], Awaitable[None]]


class Broadcaster(ABC):
    """Publish/subscribe capability shared by all contexts."""

    def __init__(self, origin: str):
        self.origin = origin
        self._handlers: list[MessageHandler] = []
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def add_handler(self, handler: MessageHandler) -> None:
        """Register a handler for incoming messages. Already registered handlers are kept once."""
        if handler in self._handlers:
            return
        self._handlers.append(handler)
        handler_name = getattr(handler, "__name__", handler.__class__.__name__)
        logger.debug(f"Registered broadcast handler: {handler_name}")

    def remove_handler(self, handler: MessageHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    @abstractmethod
    async def publish(self, message: SyncMessage) -> int:
        """Send a message to sibling contexts.

        Returns the number of receivers.

        Raises:
            BroadcastFailure: Nobody received the message
        """
        ...

    @abstractmethod
    async def start(self) -> None:
        """Start receiving messages."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop receiving messages."""
        ...

    async def dispatch(self, message: SyncMessage) -> None:
        """Hand an incoming message to every handler."""
        if message.origin == self.origin:
            return

        logger.debug(f"Received {message.type.value} for {message.key} from {message.origin}")
        for handler in list(self._handlers):
            try:
                await handler(message)
            except Exception as e:
                logger.error(f"Broadcast handler failed: {e}")


class BroadcastHub:
    """Connects the in-process broadcasters of every context."""

    def __init__(self) -> None:
        self._members: list[InMemoryBroadcaster] = []
        self._pending: set[asyncio.Task[None]] = set()

    def attach(self, origin: str) -> "InMemoryBroadcaster":
        """Create a broadcaster for a new context."""
        broadcaster = InMemoryBroadcaster(origin, self)
        self._members.append(broadcaster)
        return broadcaster

    def detach(self, broadcaster: "InMemoryBroadcaster") -> None:
        if broadcaster in self._members:
            self._members.remove(broadcaster)

    def deliver(self, sender: "InMemoryBroadcaster", message: SyncMessage) -> int:
        """Schedule delivery to every running member except the sender."""
        receivers = [m for m in self._members if m is not sender and m.running]
        if not receivers:
            raise BroadcastFailure(f"No receivers for {message.type.value}")

        data = message.to_bytes()
        for receiver in receivers:
            # Each receiver decodes its own copy
            task = asyncio.create_task(receiver.dispatch(SyncMessage.from_bytes(data)))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
        return len(receivers)

    async def drain(self) -> None:
        """Wait until every scheduled delivery has run."""
        while self._pending:
            await asyncio.gather(*list(self._pending))


class InMemoryBroadcaster(Broadcaster):
    """Broadcaster for contexts living in the same process."""

    def __init__(self, origin: str, hub: BroadcastHub):
        super().__init__(origin)
        self.hub = hub

    async def publish(self, message: SyncMessage) -> int:
        return self.hub.deliver(self, message)

    async def start(self) -> None:
        self._running = True

    async def stop(self) -> None:
        self._running = False


class RedisBroadcaster(Broadcaster):
    """Broadcasts messages via Redis Pub/Sub.

    Handles both publishing and receiving: once started, it subscribes to
    the channel and dispatches every message from another origin to the
    registered handlers.
    """

    def __init__(self, client: Redis, origin: str, channel: str | None = None):
        super().__init__(origin)
        self.client = client
        self.channel = channel or settings.broadcast_channel
        self._subscription = ChannelSubscription(client, self.channel, self._handle_message)

    async def start(self) -> None:
        """Start listening for messages."""
        if self._running:
            return

        await self._subscription.start()
        self._running = True
        logger.info(f"Started broadcaster {self.origin} on channel {self.channel}")

    async def stop(self) -> None:
        """Stop listening for messages."""
        self._running = False
        await self._subscription.stop()
        logger.info(f"Stopped broadcaster {self.origin}")

    async def publish(self, message: SyncMessage) -> int:
        count = cast(int, await self.client.publish(self.channel, message.to_bytes()))
        # Our own subscription is counted too
        receivers = count - 1 if self._running else count
        if receivers <= 0:
            raise BroadcastFailure(f"No receivers for {message.type.value}")

        logger.debug(f"Published {message.type.value} for {message.key} to {receivers} receivers")
        return receivers

    async def _handle_message(self, data: bytes) -> None:
        try:
            message = SyncMessage.from_bytes(data)
        except Exception as e:
            logger.error(f"Failed to parse broadcast message: {e}")
            return
        await self.dispatch(message)
