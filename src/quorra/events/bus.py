"""In-process broadcast event bus."""

import asyncio
import logging
from typing import Any, Optional

from pydantic import BaseModel

from quorra.events.models import Event, EventType

logger = logging.getLogger(__name__)


class Subscription:
    """
    One subscriber's view of the bus.

    Each subscription owns a bounded queue. When the queue is full the
    oldest undelivered event is dropped to make room, so a slow consumer
    loses history instead of stalling publishers. Drops are counted in
    ``dropped``.
    """

    def __init__(self, bus: "EventBus", max_queue_size: int) -> None:
        self._bus = bus
        self.max_queue_size = max_queue_size
        # capacity is enforced in _offer so the close marker never evicts an event
        self._queue: asyncio.Queue = asyncio.Queue()
        self.dropped = 0
        self.closed = False
        self._close_sent = False

    def _offer(self, event: Event) -> None:
        while self._queue.qsize() >= self.max_queue_size:
            self._queue.get_nowait()
            self._queue.task_done()
            self.dropped += 1
        self._queue.put_nowait(event)

    async def get(self, timeout: Optional[float] = None) -> Optional[Event]:
        """
        Wait for the next event.

        Args:
            timeout: Optional timeout in seconds

        Returns:
            Next event, or None once the subscription is closed

        Raises:
            asyncio.TimeoutError: If no event arrives in time
        """
        if self.closed and self._queue.empty():
            return None
        if timeout is None:
            event = await self._queue.get()
        else:
            event = await asyncio.wait_for(self._queue.get(), timeout=timeout)
        if event is None:
            self._queue.task_done()
            self.closed = True
        return event

    def get_nowait(self) -> Optional[Event]:
        """Return the next queued event or None if nothing is queued."""
        try:
            event = self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None
        if event is None:
            self._queue.task_done()
            self.closed = True
        return event

    def ack(self) -> None:
        """Mark the last event returned by get() as handled."""
        self._queue.task_done()

    async def join(self) -> None:
        """Wait until every queued event has been acknowledged."""
        await self._queue.join()

    def pending(self) -> int:
        return self._queue.qsize()

    def close(self) -> None:
        """Detach from the bus and wake any waiting consumer."""
        self._bus.unsubscribe(self)
        if not self.closed and not self._close_sent:
            self._close_sent = True
            self._queue.put_nowait(None)

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> Event:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event


class EventBus:
    """
    Fire-and-forget broadcast channel.

    Every subscriber sees every event published after it subscribed, in
    publish order per publisher. publish() never awaits, so a publisher can
    not deadlock on a consumer. All methods must be called from the event
    loop thread.
    """

    def __init__(self, config: Optional[dict] = None) -> None:
        config = config or {}
        self.max_queue_size = config.get("max_queue_size", 1000)
        self._subscribers: list[Subscription] = []
        self.published_count = 0

    def publish(self, event_type: EventType | str, payload: Any = None) -> Event:
        """
        Publish an event to all current subscribers.

        Args:
            event_type: Event type
            payload: Dict or pydantic payload model

        Returns:
            The published event
        """
        if isinstance(payload, BaseModel):
            payload = payload.model_dump()
        event = Event(type=EventType(event_type), payload=payload or {})

        for subscription in list(self._subscribers):
            try:
                subscription._offer(event)
            except Exception as e:
                logger.error(f"Failed to deliver {event.type.value} to subscriber: {e}", exc_info=True)

        self.published_count += 1
        logger.debug(f"Published {event.type.value}: {event.payload}")
        return event

    def subscribe(self, max_queue_size: Optional[int] = None) -> Subscription:
        """Create a new independent subscription."""
        subscription = Subscription(self, max_queue_size or self.max_queue_size)
        self._subscribers.append(subscription)
        logger.debug(f"New subscriber ({len(self._subscribers)} total)")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def close(self) -> None:
        """Close every subscription so consumers drain and stop."""
        for subscription in list(self._subscribers):
            subscription.close()
