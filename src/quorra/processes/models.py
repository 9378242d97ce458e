"""Process data models."""

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

NO_PLAN = "NO_PLAN"  # PLAN document value before the first action
INITIAL_SCRATCHPAD = "Iteration 0"

GOAL = "GOAL"
SCRATCHPAD = "SCRATCHPAD"
PLAN = "PLAN"
DOCUMENT_NAMES = (GOAL, SCRATCHPAD, PLAN)


class LoopState(str, Enum):
    """Task loop state machine states."""

    INITIALIZING = "initializing"
    ITERATING = "iterating"
    COMPLETED = "completed"
    ABORTED = "aborted"
    FAILED = "failed"


class LoopOutcome(str, Enum):
    """How a task loop ended."""

    DONE = "done"  # reasoner declared the goal achieved
    FORCED_STOP = "forced_stop"  # iteration ceiling reached
    ABORTED = "aborted"  # killed
    FAILED = "failed"  # protocol error or unexpected exception


class KillOutcome(str, Enum):
    """Result of a kill request."""

    ABORTED = "aborted"
    ALREADY_ABORTED = "already_aborted"
    NOT_FOUND = "not_found"


@dataclass
class ProcessEntry:
    """Process table entry. Owned by the table."""

    id: str
    cwd: str
    description: str
    aborted: bool = False
    handle: Optional[asyncio.Task] = None
    created_at: datetime = field(default_factory=datetime.now)


class ProcessInfo(BaseModel):
    """Public snapshot of one process, as returned by ps()."""

    id: str
    cwd: str
    description: str


@dataclass
class TaskDocuments:
    """The three per-task documents."""

    goal: str
    scratchpad: str
    plan: str


@dataclass
class ToolCall:
    name: str
    arguments: dict


@dataclass
class ToolCallResult:
    name: str
    result: str


@dataclass
class ActionOutcome:
    """What one Action Step did."""

    calls: list[ToolCall] = field(default_factory=list)
    results: list[ToolCallResult] = field(default_factory=list)
    text: Optional[str] = None  # set when the model answered with text instead of a tool call

    @property
    def is_noop(self) -> bool:
        return not self.calls

    def describe_calls(self) -> str:
        return json.dumps([{"name": c.name, "arguments": c.arguments} for c in self.calls], indent=2)

    def describe_results(self) -> str:
        return json.dumps([{"name": r.name, "result": r.result} for r in self.results], indent=2)


class ReasoningResult(BaseModel):
    """Structured output of the Reasoning Step."""

    model_config = ConfigDict(strict=True)

    scratchpad_update: str
    next_plan: str
    is_complete: bool


@dataclass
class LoopResult:
    """Final report of a task loop."""

    task_id: str
    outcome: LoopOutcome
    iterations: int
    error: Optional[str] = None
