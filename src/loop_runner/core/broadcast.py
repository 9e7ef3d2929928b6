"""Fan-out of loop events to connected observers.

Each observer is a ``Subscriber`` with its own bounded queue. Publishing never
blocks the loop: an observer whose queue is full or closed is dropped.
"""

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Callable, Optional

logger = logging.getLogger(__name__)

_CLOSED = None


class Subscriber:
    """Handle for one connected observer."""

    def __init__(self, queue_size: int = 256):
        self._queue: asyncio.Queue[Optional[str]] = asyncio.Queue(maxsize=queue_size)
        self.alive = True

    def enqueue(self, message: str) -> None:
        """Queue a serialized event; raises if the observer is gone or stalled."""
        if not self.alive:
            raise ConnectionError("subscriber closed")
        self._queue.put_nowait(message)

    async def get(self) -> Optional[str]:
        """Next serialized event, or ``None`` once the subscriber is closed."""
        if not self.alive and self._queue.empty():
            return _CLOSED
        return await self._queue.get()

    def close(self) -> None:
        if not self.alive:
            return
        self.alive = False
        try:
            self._queue.put_nowait(_CLOSED)
        except asyncio.QueueFull:
            pass


class BroadcastHub:
    """Registry of subscribers and event publisher."""

    def __init__(
        self,
        snapshot: Callable[[], dict[str, Any]],
        queue_size: int = 256,
    ):
        """Initialize the hub.

        Args:
            snapshot: Returns the ``{state, config}`` view sent to new observers
            queue_size: Pending events per observer before it is dropped
        """
        self._snapshot = snapshot
        self._queue_size = queue_size
        self._subscribers: set[Subscriber] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> Subscriber:
        """Register an observer; its first event is always ``connected``."""
        subscriber = Subscriber(self._queue_size)
        subscriber.enqueue(_encode({"type": "connected", **self._snapshot()}))
        self._subscribers.add(subscriber)
        logger.debug(f"Observer connected ({len(self._subscribers)} total)")
        return subscriber

    def unsubscribe(self, subscriber: Subscriber) -> None:
        subscriber.close()
        self._subscribers.discard(subscriber)
        logger.debug(f"Observer disconnected ({len(self._subscribers)} total)")

    def publish(self, event: dict[str, Any]) -> None:
        """Serialize ``event`` once and deliver it to every observer."""
        message = _encode(event)
        for subscriber in list(self._subscribers):
            try:
                subscriber.enqueue(message)
            except (asyncio.QueueFull, ConnectionError):
                self.unsubscribe(subscriber)

    def close(self) -> None:
        """End every observer stream."""
        for subscriber in list(self._subscribers):
            self.unsubscribe(subscriber)


def _encode(event: dict[str, Any]) -> str:
    return json.dumps(event)


async def sse_stream(
    hub: BroadcastHub,
    subscriber: Subscriber,
    heartbeat_s: float = 15.0,
) -> AsyncIterator[bytes]:
    """Yield SSE frames for ``subscriber`` until it is closed."""
    try:
        while True:
            try:
                message = await asyncio.wait_for(subscriber.get(), timeout=heartbeat_s)
            except asyncio.TimeoutError:
                yield b": heartbeat\n\n"
                continue
            if message is _CLOSED:
                break
            yield f"data: {message}\n\n".encode("utf-8")
    finally:
        hub.unsubscribe(subscriber)
