"""Autonomous task processes."""

from quorra.processes.loop import TaskLoop
from quorra.processes.manager import ProcessManager
from quorra.processes.models import KillOutcome, LoopOutcome, LoopResult, ProcessInfo, ReasoningResult
from quorra.processes.repair import parse_reasoning, repair_json
from quorra.processes.scratchpad import ScratchpadStore
from quorra.processes.steps import ActionStep, ReasoningStep
from quorra.processes.table import ProcessTable

__all__ = [
    "ActionStep",
    "KillOutcome",
    "LoopOutcome",
    "LoopResult",
    "ProcessInfo",
    "ProcessManager",
    "ProcessTable",
    "ReasoningResult",
    "ReasoningStep",
    "ScratchpadStore",
    "TaskLoop",
    "parse_reasoning",
    "repair_json",
]
