"""Unit tests for EventConsumer and the built-in handlers."""

import asyncio
import json

import pytest

from quorra.events.bus import EventBus
from quorra.events.consumer import EventConsumer, EventHandler
from quorra.events.handlers import LoggingHandler, NotificationHandler
from quorra.events.models import Event, EventType


class RecordingHandler(EventHandler):
    """Test handler that records what it saw."""

    def __init__(self, config=None, name="recorder", priority=100, log=None):
        self.config = config or {}
        self.name = name
        self.priority = priority
        self.log = log if log is not None else []

    async def handle(self, event):
        self.log.append((self.name, event.type.value))


class FailingHandler(EventHandler):
    """Test handler that always raises."""

    priority = 1

    async def handle(self, event):
        raise RuntimeError("boom")


class TestEventConsumerRegistration:
    """Test handler registration."""

    def test_register_orders_by_priority(self):
        """Handlers run lowest priority first, wildcard handlers included."""
        consumer = EventConsumer(EventBus())
        late = RecordingHandler(name="late", priority=90)
        early = RecordingHandler(name="early", priority=5)
        consumer.register(EventType.DEBUG, late)
        consumer.register("*", early)

        event = Event(type=EventType.DEBUG)
        assert consumer.get_handlers_for_event(event) == [early, late]

    def test_unmatched_event_has_no_handlers(self):
        """Handlers only match their own event type."""
        consumer = EventConsumer(EventBus())
        consumer.register("new-mail", RecordingHandler())
        assert consumer.get_handlers_for_event(Event(type=EventType.DEBUG)) == []

    def test_load_handlers_from_config(self):
        """Handlers listed in config are imported and registered."""
        config = {
            "handlers": [
                {
                    "path": "quorra.events.handlers:NotificationHandler",
                    "events": ["new-mail"],
                    "priority": 7,
                },
                {"path": "not-a-valid-path"},
                {"path": "quorra.events.handlers:DoesNotExist"},
                {"path": "quorra.events.handlers:LoggingHandler", "enabled": False},
            ]
        }
        consumer = EventConsumer(EventBus(), config)
        consumer.load_handlers()

        assert list(consumer.handlers) == ["new-mail"]
        priority, handler = consumer.handlers["new-mail"][0]
        assert priority == 7
        assert isinstance(handler, NotificationHandler)


@pytest.mark.asyncio
class TestEventConsumerDispatch:
    """Test dispatching events to handlers."""

    async def test_failing_handler_is_isolated(self):
        """A handler error does not stop the remaining handlers."""
        consumer = EventConsumer(EventBus())
        recorder = RecordingHandler()
        consumer.register("*", FailingHandler())
        consumer.register("*", recorder)

        await consumer.dispatch(Event(type=EventType.DEBUG))

        assert recorder.log == [("recorder", "debug")]
        assert consumer.processed_count == 1

    async def test_background_drain(self):
        """start() consumes published events until stop()."""
        bus = EventBus()
        consumer = EventConsumer(bus)
        recorder = RecordingHandler()
        consumer.register("*", recorder)
        consumer.start()

        bus.publish(EventType.FILE_CREATED, {"path": "/a"})
        bus.publish(EventType.FILE_DELETED, {"path": "/a"})
        await asyncio.wait_for(consumer.drain(), timeout=1)
        await consumer.stop()

        assert recorder.log == [("recorder", "file-created"), ("recorder", "file-deleted")]
        assert bus.subscriber_count == 0

    async def test_two_consumers_both_receive(self):
        """Consumers are independent broadcast subscribers."""
        bus = EventBus()
        log = []
        consumers = []
        for name in ("indexer", "notifier"):
            consumer = EventConsumer(bus)
            consumer.register("*", RecordingHandler(name=name, log=log))
            consumer.start()
            consumers.append(consumer)

        bus.publish(EventType.NEW_MAIL, {"path": "/var/mail/x.txt"})
        for consumer in consumers:
            await asyncio.wait_for(consumer.drain(), timeout=1)
            await consumer.stop()

        assert sorted(log) == [("indexer", "new-mail"), ("notifier", "new-mail")]


@pytest.mark.asyncio
class TestBuiltinHandlers:
    """Test LoggingHandler and NotificationHandler."""

    async def test_logging_handler_json(self, tmp_path):
        """JSON log lines carry the event type and payload."""
        log_file = tmp_path / "events.log"
        handler = LoggingHandler({"log_file": str(log_file), "log_format": "json"})

        await handler.handle(Event(type=EventType.FILE_CREATED, payload={"path": "/a.txt"}))

        record = json.loads(log_file.read_text().strip())
        assert record["event"] == "file-created"
        assert record["payload"] == {"path": "/a.txt"}

    async def test_logging_handler_text_truncates(self, tmp_path):
        """Long values are shortened in text format."""
        log_file = tmp_path / "events.log"
        handler = LoggingHandler({"log_file": str(log_file)})

        await handler.handle(Event(type=EventType.DEBUG, payload={"data": "x" * 500}))

        line = log_file.read_text()
        assert "Event: debug" in line
        assert "..." in line
        assert "x" * 200 not in line

    async def test_notification_messages(self):
        """Notifications distinguish forced stops from completion."""
        handler = NotificationHandler()
        events = [
            Event(type=EventType.NEW_MAIL, payload={"path": "/var/mail/a", "user_notification": "Mail from Alan"}),
            Event(type=EventType.NEW_MAIL, payload={"path": "/var/mail/b", "user_notification": None}),
            Event(type=EventType.TASK_FINISHED, payload={"id": "t1", "outcome": "done", "iterations": 2}),
            Event(type=EventType.TASK_FINISHED, payload={"id": "t2", "outcome": "forced_stop", "iterations": 20}),
            Event(type=EventType.TASK_ABORTED, payload={"id": "t3", "reason": "killed"}),
            Event(type=EventType.FILE_CREATED, payload={"path": "/x"}),
        ]
        for event in events:
            if handler.should_run(event):
                await handler.handle(event)

        assert handler.pop_all() == [
            "Mail from Alan",
            "Process t1 finished.",
            "Process t2 stopped after 20 iterations.",
            "Process t3 aborted (killed).",
        ]
        assert handler.pop_all() == []
