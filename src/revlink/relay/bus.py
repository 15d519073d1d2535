"""
Command bus.

Multi-producer, multi-consumer broadcast of coordination commands. Every
subscriber owns a bounded queue; publishing never blocks, and a subscriber
that falls behind loses its oldest queued commands. Losses are counted per
subscription.
"""

import asyncio

from revlink.models.commands import Command
from revlink.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_CAPACITY = 32


class Subscription:
    """
    A consumer handle on the bus.

    Sees every command published after it was created, in publish order,
    minus whatever was dropped while its queue was full.
    """

    def __init__(self, bus: "CommandBus", name: str, capacity: int):
        self.name = name
        self.dropped = 0
        self._bus = bus
        self._queue: asyncio.Queue[Command] = asyncio.Queue(maxsize=capacity)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def pending(self) -> int:
        """Number of commands queued and not yet consumed."""
        return self._queue.qsize()

    def deliver(self, command: Command) -> None:
        """Queue a command, dropping the oldest one if full. Never blocks."""
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
            logger.warning(
                f"[Bus] Subscriber '{self.name}' lagging, dropped a command "
                f"(total dropped: {self.dropped})"
            )
        self._queue.put_nowait(command)

    async def get(self) -> Command:
        """Wait for the next command."""
        return await self._queue.get()

    def get_nowait(self) -> Command:
        """
        Take the next command if one is queued.

        Raises:
            asyncio.QueueEmpty: if nothing is queued
        """
        return self._queue.get_nowait()

    def close(self) -> None:
        """Stop receiving commands."""
        if not self._closed:
            self._closed = True
            self._bus._unsubscribe(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"Subscription(name={self.name!r}, pending={self.pending()}, "
            f"dropped={self.dropped})"
        )


class CommandBus:
    """Lossy broadcast channel shared by every relay component."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError("Bus capacity must be at least 1")
        self.capacity = capacity
        self._subscriptions: list[Subscription] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, name: str = "anonymous") -> Subscription:
        """Create a subscription. No replay of earlier commands."""
        subscription = Subscription(self, name, self.capacity)
        self._subscriptions.append(subscription)
        logger.debug(f"[Bus] '{name}' subscribed ({self.subscriber_count} total)")
        return subscription

    def _unsubscribe(self, subscription: Subscription) -> None:
        try:
            self._subscriptions.remove(subscription)
        except ValueError:
            return
        logger.debug(
            f"[Bus] '{subscription.name}' unsubscribed ({self.subscriber_count} left)"
        )

    def publish(self, command: Command) -> int:
        """
        Deliver ``command`` to every current subscriber.

        Returns:
            Number of subscribers the command was queued for
        """
        logger.trace(f"[Bus] publish {command!r}")
        subscribers = list(self._subscriptions)
        for subscription in subscribers:
            subscription.deliver(command)
        return len(subscribers)
