"""Event consumer that drains the bus and dispatches to handlers."""

import asyncio
import importlib
import logging
from abc import ABC, abstractmethod
from typing import Optional

from quorra.events.bus import EventBus, Subscription
from quorra.events.models import Event

logger = logging.getLogger(__name__)


class EventHandler(ABC):
    """Base handler interface for user implementation."""

    priority: int = 100  # Lower = runs first

    @abstractmethod
    async def handle(self, event: Event) -> None:
        """
        React to an event.

        Args:
            event: Event delivered by the bus
        """
        pass

    def should_run(self, event: Event) -> bool:
        """Optional filter to skip handling."""
        return True


class EventConsumer:
    """
    Drains one bus subscription and runs handlers for each event.

    Features:
    - Register handlers per event type, or "*" for every event
    - Load handlers from configuration ("module.path:ClassName")
    - Execute handlers in priority order
    - A failing handler is logged and skipped; the rest still run
    """

    def __init__(self, bus: EventBus, config: Optional[dict] = None):
        """
        Initialize event consumer.

        Args:
            bus: Event bus to subscribe to
            config: Consumer configuration
        """
        self.bus = bus
        self.config = config or {}
        self.handlers: dict[str, list[tuple[int, EventHandler]]] = {}  # type -> [(priority, handler)]
        self._subscription: Optional[Subscription] = None
        self._task: Optional[asyncio.Task] = None
        self.processed_count = 0

    def load_handlers(self) -> None:
        """Instantiate handlers listed in the "handlers" config section."""
        for handler_config in self.config.get("handlers", []):
            if not handler_config.get("enabled", True):
                continue

            handler_path = handler_config.get("path", "")
            if ":" not in handler_path:
                logger.warning(f"Invalid handler path format: {handler_path}")
                continue

            try:
                module_path, class_name = handler_path.split(":")
                module = importlib.import_module(module_path)
                handler_class = getattr(module, class_name)
                handler = handler_class(config=handler_config.get("config", {}))
            except Exception as e:
                logger.error(f"Error loading handler {handler_path}: {e}", exc_info=True)
                continue

            priority = handler_config.get("priority", handler.priority)
            for event_type in handler_config.get("events", ["*"]):
                self.register(event_type, handler, priority=priority)

    def register(self, event_type: str, handler: EventHandler, priority: Optional[int] = None) -> None:
        """
        Register a handler for an event type.

        Args:
            event_type: Event type value (e.g. "task-finished") or "*"
            handler: Handler instance
            priority: Priority (lower first); defaults to handler.priority
        """
        if priority is None:
            priority = handler.priority
        key = getattr(event_type, "value", event_type)
        self.handlers.setdefault(key, []).append((priority, handler))
        self.handlers[key].sort(key=lambda x: x[0])
        logger.debug(f"Registered handler {handler.__class__.__name__} for '{event_type}' (priority={priority})")

    def get_handlers_for_event(self, event: Event) -> list[EventHandler]:
        matched = self.handlers.get(event.type.value, []) + self.handlers.get("*", [])
        matched.sort(key=lambda x: x[0])
        return [handler for _, handler in matched]

    async def dispatch(self, event: Event) -> None:
        """Run every matching handler for one event."""
        for handler in self.get_handlers_for_event(event):
            try:
                if not handler.should_run(event):
                    continue
                await handler.handle(event)
            except Exception as e:
                logger.error(
                    f"Error in handler {handler.__class__.__name__} for event '{event.type.value}': {e}",
                    exc_info=True,
                )
        self.processed_count += 1

    def start(self) -> None:
        """Subscribe and start draining in the background."""
        if self._task is not None:
            return
        self._subscription = self.bus.subscribe()
        self._task = asyncio.create_task(self._run(self._subscription))
        logger.info("Event consumer started")

    async def _run(self, subscription: Subscription) -> None:
        async for event in subscription:
            try:
                await self.dispatch(event)
            finally:
                subscription.ack()

    async def drain(self) -> None:
        """Wait until every event delivered so far has been handled."""
        if self._subscription is not None:
            await self._subscription.join()

    async def stop(self) -> None:
        """Close the subscription and wait for the drain task to finish."""
        if self._subscription is not None:
            self._subscription.close()
        if self._task is not None:
            await self._task
        self._task = None
        self._subscription = None
        logger.info("Event consumer stopped")
