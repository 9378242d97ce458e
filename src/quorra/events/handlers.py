"""Built-in event handlers."""

import json
import logging
from pathlib import Path
from typing import Any, Optional

from quorra.events.consumer import EventHandler
from quorra.events.models import Event, EventType

logger = logging.getLogger(__name__)


class LoggingHandler(EventHandler):
    """
    Handler that appends every event to a log file.

    Config options:
        log_file: Path to log file (default: .quorra/events.log)
        log_format: "text" or "json" (default: "text")
    """

    priority = 10

    def __init__(self, config: Optional[dict[str, Any]] = None):
        config = config or {}
        self.config = config
        self.log_file = config.get("log_file", ".quorra/events.log")
        self.log_format = config.get("log_format", "text")

        Path(self.log_file).parent.mkdir(parents=True, exist_ok=True)

    async def handle(self, event: Event) -> None:
        timestamp = event.timestamp.isoformat()

        if self.log_format == "json":
            line = json.dumps(
                {
                    "timestamp": timestamp,
                    "event": event.type.value,
                    "payload": self._sanitize(event.payload),
                }
            )
        else:
            line = f"[{timestamp}] Event: {event.type.value} | Data: {self._format(event.payload)}"

        with open(self.log_file, "a") as f:
            f.write(line + "\n")

    def _sanitize(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Make payload JSON-serializable."""
        sanitized = {}
        for key, value in payload.items():
            try:
                json.dumps(value)
                sanitized[key] = value
            except (TypeError, ValueError):
                sanitized[key] = str(value)
        return sanitized

    def _format(self, payload: dict[str, Any]) -> str:
        items = []
        for key, value in payload.items():
            value_str = str(value)
            if len(value_str) > 100:
                value_str = value_str[:97] + "..."
            items.append(f"{key}={value_str}")
        return ", ".join(items)


class ProcessLogHandler(EventHandler):
    """Writes task lifecycle transitions to the application log."""

    priority = 20

    def __init__(self, config: Optional[dict[str, Any]] = None):
        self.config = config or {}

    def should_run(self, event: Event) -> bool:
        return event.type in (
            EventType.TASK_SPAWNED,
            EventType.TASK_FINISHED,
            EventType.TASK_ABORTED,
        )

    async def handle(self, event: Event) -> None:
        payload = event.payload
        if event.type == EventType.TASK_SPAWNED:
            logger.info(f"[{payload.get('id')}] spawned: {payload.get('task')}")
        elif event.type == EventType.TASK_FINISHED:
            logger.info(
                f"[{payload.get('id')}] finished ({payload.get('outcome')}, "
                f"{payload.get('iterations')} iterations)"
            )
        else:
            logger.info(f"[{payload.get('id')}] aborted ({payload.get('reason')})")


class NotificationHandler(EventHandler):
    """
    Collects messages meant for the human.

    New mail with a user_notification and debug events end up in
    ``notifications``; the CLI prints and clears them between prompts.
    """

    priority = 50

    def __init__(self, config: Optional[dict[str, Any]] = None):
        self.config = config or {}
        self.max_pending = self.config.get("max_pending", 100)
        self.notifications: list[str] = []

    def should_run(self, event: Event) -> bool:
        return event.type in (
            EventType.NEW_MAIL,
            EventType.DEBUG,
            EventType.TASK_FINISHED,
            EventType.TASK_ABORTED,
        )

    async def handle(self, event: Event) -> None:
        payload = event.payload
        message = None
        if event.type == EventType.NEW_MAIL:
            message = payload.get("user_notification")
        elif event.type == EventType.DEBUG:
            message = f"debug: {payload.get('data')}"
        elif event.type == EventType.TASK_FINISHED:
            if payload.get("outcome") == "forced_stop":
                message = f"Process {payload.get('id')} stopped after {payload.get('iterations')} iterations."
            else:
                message = f"Process {payload.get('id')} finished."
        elif event.type == EventType.TASK_ABORTED:
            message = f"Process {payload.get('id')} aborted ({payload.get('reason')})."

        if message:
            self.notifications.append(message)
            del self.notifications[: -self.max_pending]

    def pop_all(self) -> list[str]:
        """Return and clear pending notifications."""
        pending, self.notifications = self.notifications, []
        return pending
