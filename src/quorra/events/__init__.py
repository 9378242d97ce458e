"""Event bus and consumers."""

from quorra.events.bus import EventBus, Subscription
from quorra.events.consumer import EventConsumer, EventHandler
from quorra.events.models import Event, EventType

__all__ = ["Event", "EventBus", "EventConsumer", "EventHandler", "EventType", "Subscription"]
