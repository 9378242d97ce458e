"""Process manager: spawn, kill and inspect autonomous tasks."""

import asyncio
import logging
import uuid
from collections import OrderedDict
from typing import Optional

from quorra.events.bus import EventBus
from quorra.llm.client import LLMClient
from quorra.processes.loop import TaskLoop
from quorra.processes.models import KillOutcome, LoopResult, ProcessInfo
from quorra.processes.scratchpad import ScratchpadStore
from quorra.processes.steps import ActionStep, ReasoningStep
from quorra.processes.table import ProcessTable
from quorra.storage.base import ObjectStore
from quorra.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


def describe_goal(goal: str, limit: int = 80) -> str:
    """Short one-line description of a goal for ps()."""
    first_line = goal.strip().splitlines()[0] if goal.strip() else ""
    if len(first_line) > limit:
        return first_line[: limit - 3] + "..."
    return first_line


class ProcessManager:
    """
    Owns the process table and runs each task loop as a detached asyncio task.

    spawn() returns as soon as the task is registered; the loop's completion
    is observable through wait(), the results map or the event bus. The
    results map keeps only the most recent `max_results` entries.
    """

    def __init__(
        self,
        config: dict,
        store: ObjectStore,
        bus: EventBus,
        llm_client: LLMClient,
        tool_registry: ToolRegistry,
        table: Optional[ProcessTable] = None,
    ) -> None:
        """
        Initialize process manager.

        Args:
            config: Processes configuration
            store: Backing object store for task documents
            bus: Event bus for lifecycle events
            llm_client: LLM client shared by all tasks
            tool_registry: Tools available to tasks
            table: Pre-built process table
        """
        self.config = config
        self.bus = bus
        self.max_iterations = config.get("max_iterations", 20)
        self.kill_wait_seconds = config.get("kill_wait_seconds", 30.0)
        self.max_results = config.get("max_results", 100)
        llm_timeout = config.get("llm_timeout_seconds")

        self.table = table or ProcessTable()
        self.scratchpad = ScratchpadStore(store, config.get("task_root", "/proc"))
        self.action_step = ActionStep(
            llm_client, tool_registry, tool_names=config.get("tools"), timeout=llm_timeout
        )
        self.reasoning_step = ReasoningStep(llm_client, timeout=llm_timeout)

        self.results: OrderedDict[str, LoopResult] = OrderedDict()
        self._handles: dict[str, asyncio.Task] = {}

        logger.info(f"ProcessManager initialized (max_iterations={self.max_iterations})")

    def _new_id(self) -> str:
        return uuid.uuid4().hex[:8]

    async def spawn(self, goal: str, cwd: str = "/", description: Optional[str] = None) -> str:
        """
        Start a new autonomous task.

        Args:
            goal: What the task must accomplish
            cwd: Directory the task's tool calls resolve against
            description: Label shown by ps(); derived from the goal if omitted

        Returns:
            The new task id
        """
        task_id = self._new_id()
        while await self.table.contains(task_id):
            task_id = self._new_id()

        loop = TaskLoop(
            task_id=task_id,
            goal=goal,
            cwd=cwd,
            description=description or describe_goal(goal),
            table=self.table,
            bus=self.bus,
            scratchpad=self.scratchpad,
            action_step=self.action_step,
            reasoning_step=self.reasoning_step,
            max_iterations=self.max_iterations,
        )
        await loop.initialize()

        handle = asyncio.create_task(self._run(loop), name=f"quorra-task-{task_id}")
        self._handles[task_id] = handle
        handle.add_done_callback(lambda _: self._handles.pop(task_id, None))
        await self.table.attach(task_id, handle)

        return task_id

    async def _run(self, loop: TaskLoop) -> LoopResult:
        result = await loop.run()
        self.results[loop.task_id] = result
        while len(self.results) > self.max_results:
            self.results.popitem(last=False)
        return result

    async def kill(self, task_id: str, wait: bool = False, timeout: Optional[float] = None) -> KillOutcome:
        """
        Abort a task.

        Flipping the flag never blocks. With wait=True the call also waits,
        at most `timeout` seconds, for the loop to actually exit.

        Args:
            task_id: Task to abort
            wait: Wait for the loop to terminate
            timeout: Wait bound (defaults to processes.kill_wait_seconds)

        Returns:
            KillOutcome
        """
        outcome = await self.table.abort(task_id)
        if outcome == KillOutcome.NOT_FOUND or not wait:
            return outcome

        handle = self._handles.get(task_id)
        if handle is None or handle.done():
            return outcome

        timeout = timeout if timeout is not None else self.kill_wait_seconds
        done, _ = await asyncio.wait({handle}, timeout=timeout)
        if not done:
            logger.warning(f"[{task_id}] Still running {timeout}s after kill")
        return outcome

    async def wait(self, task_id: str) -> Optional[LoopResult]:
        """Wait for a task's loop to exit and return its result."""
        handle = self._handles.get(task_id)
        if handle is not None:
            await asyncio.wait({handle})
            if not handle.cancelled() and handle.exception() is None:
                return handle.result()
        return self.results.get(task_id)

    async def wait_all(self) -> None:
        handles = list(self._handles.values())
        if handles:
            await asyncio.wait(handles)

    async def ps(self) -> list[ProcessInfo]:
        """Snapshot of running tasks."""
        return await self.table.snapshot()

    async def shutdown(self, timeout: float = 5.0) -> None:
        """Abort every task, then cancel loops that do not exit in time."""
        for info in await self.table.snapshot():
            await self.table.abort(info.id)

        handles = list(self._handles.values())
        if not handles:
            return

        _, pending = await asyncio.wait(handles, timeout=timeout)
        for handle in pending:
            handle.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        logger.info(f"ProcessManager shut down ({len(pending)} loop(s) cancelled)")
