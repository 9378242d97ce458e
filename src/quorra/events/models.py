"""Event data models."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class EventType(str, Enum):
    """Lifecycle and domain event types."""

    TASK_SPAWNED = "task-spawned"
    TASK_FINISHED = "task-finished"
    TASK_ABORTED = "task-aborted"
    FILE_CREATED = "file-created"
    FILE_DELETED = "file-deleted"
    NEW_MAIL = "new-mail"
    DEBUG = "debug"


TERMINAL_TASK_EVENTS = (EventType.TASK_FINISHED, EventType.TASK_ABORTED)


class Event(BaseModel):
    """Immutable event record delivered to subscribers."""

    model_config = ConfigDict(frozen=True)

    type: EventType
    timestamp: datetime = Field(default_factory=datetime.now)
    payload: dict[str, Any] = Field(default_factory=dict)

    @property
    def task_id(self) -> Optional[str]:
        """Task id for process events, None for everything else."""
        return self.payload.get("id")


# Payload shapes. Publishers build these and pass model_dump() to the bus.


class FileCreated(BaseModel):
    path: str


class FileDeleted(BaseModel):
    path: str


class NewEmail(BaseModel):
    path: str
    user_notification: Optional[str] = None


class ProcessSpawned(BaseModel):
    id: str
    task: str


class ProcessFinished(BaseModel):
    id: str
    task: str
    outcome: str  # "done" or "forced_stop"
    iterations: int


class ProcessAborted(BaseModel):
    id: str
    task: str
    reason: str = "killed"  # "killed" or "failed"
    error: Optional[str] = None


class Debug(BaseModel):
    data: Any = None
