"""Task loop: the Action -> Reasoning state machine for one task."""

import asyncio
import logging
from typing import Optional

from quorra.events.bus import EventBus
from quorra.events.models import EventType, ProcessAborted, ProcessFinished, ProcessSpawned
from quorra.processes.models import LoopOutcome, LoopResult, LoopState
from quorra.processes.scratchpad import ScratchpadStore
from quorra.processes.steps import ActionStep, ReasoningStep
from quorra.processes.table import ProcessTable

logger = logging.getLogger(__name__)


class TaskLoop:
    """
    Drives one task from INITIALIZING to a terminal state.

    The abort flag lives only in the process table and is re-read at the top
    of every pass, after the action step, and right before the reasoning
    result is persisted. Whatever the outcome, the task is removed from the
    table, its documents are deleted and exactly one terminal event is
    published.
    """

    def __init__(
        self,
        task_id: str,
        goal: str,
        cwd: str,
        description: str,
        table: ProcessTable,
        bus: EventBus,
        scratchpad: ScratchpadStore,
        action_step: ActionStep,
        reasoning_step: ReasoningStep,
        max_iterations: int = 20,
    ) -> None:
        self.task_id = task_id
        self.goal = goal
        self.cwd = cwd
        self.description = description
        self.table = table
        self.bus = bus
        self.scratchpad = scratchpad
        self.action_step = action_step
        self.reasoning_step = reasoning_step
        self.max_iterations = max_iterations

        self.state = LoopState.INITIALIZING
        self.iteration = 0

    async def initialize(self) -> None:
        """Seed documents, register the task and announce it."""
        await self.scratchpad.seed(self.task_id, self.goal)
        try:
            await self.table.register(self.task_id, self.cwd, self.description)
        except ValueError:
            await self.scratchpad.delete_triple(self.task_id)
            raise

        self.bus.publish(EventType.TASK_SPAWNED, ProcessSpawned(id=self.task_id, task=self.description))
        logger.info(f"[{self.task_id}] Spawned in {self.cwd}: {self.description}")
        self.state = LoopState.ITERATING

    async def _aborted(self) -> bool:
        return await self.table.is_aborted(self.task_id)

    async def run(self) -> LoopResult:
        """
        Iterate until completion, forced stop, abort or failure.

        Returns:
            LoopResult describing how the loop ended
        """
        outcome: Optional[LoopOutcome] = None
        error: Optional[str] = None

        try:
            outcome = await self._iterate()
        except asyncio.CancelledError:
            logger.info(f"[{self.task_id}] Loop cancelled")
            await self._finish(LoopOutcome.ABORTED, None)
            raise
        except Exception as e:
            outcome = LoopOutcome.FAILED
            error = f"{type(e).__name__}: {e}"
            logger.error(f"[{self.task_id}] Task failed at iteration {self.iteration}: {error}", exc_info=True)

        return await self._finish(outcome, error)

    async def _iterate(self) -> LoopOutcome:
        while True:
            if await self._aborted():
                return LoopOutcome.ABORTED

            self.iteration += 1
            if self.iteration > self.max_iterations:
                return LoopOutcome.FORCED_STOP

            logger.debug(f"[{self.task_id}] Iteration {self.iteration}/{self.max_iterations}")
            docs = await self.scratchpad.read_triple(self.task_id)

            action = await self.action_step.run(self.task_id, docs, self.cwd)
            if await self._aborted():
                return LoopOutcome.ABORTED

            reasoning = await self.reasoning_step.run(docs, action)
            if reasoning.is_complete:
                return LoopOutcome.DONE

            # a kill may have landed while the reasoner was thinking
            if await self._aborted():
                return LoopOutcome.ABORTED

            await self.scratchpad.write_triple(
                self.task_id,
                docs.goal,
                docs.scratchpad + "\n" + reasoning.scratchpad_update,
                reasoning.next_plan,
            )

    def _completed_iterations(self) -> int:
        return min(self.iteration, self.max_iterations)

    async def _finish(self, outcome: LoopOutcome, error: Optional[str]) -> LoopResult:
        """Remove, delete, then publish the terminal event."""
        await self.table.remove(self.task_id)
        try:
            await self.scratchpad.delete_triple(self.task_id)
        except Exception as e:
            logger.error(f"[{self.task_id}] Failed to delete task documents: {e}", exc_info=True)

        iterations = self._completed_iterations()

        if outcome in (LoopOutcome.DONE, LoopOutcome.FORCED_STOP):
            self.state = LoopState.COMPLETED
            self.bus.publish(
                EventType.TASK_FINISHED,
                ProcessFinished(
                    id=self.task_id,
                    task=self.description,
                    outcome=outcome.value,
                    iterations=iterations,
                ),
            )
            if outcome == LoopOutcome.DONE:
                logger.info(f"[{self.task_id}] Completed after {iterations} iteration(s)")
            else:
                logger.warning(
                    f"[{self.task_id}] Forced stop: iteration limit {self.max_iterations} reached "
                    f"without completion"
                )
        elif outcome == LoopOutcome.ABORTED:
            self.state = LoopState.ABORTED
            self.bus.publish(
                EventType.TASK_ABORTED,
                ProcessAborted(id=self.task_id, task=self.description, reason="killed"),
            )
            logger.info(f"[{self.task_id}] Aborted after {iterations} iteration(s)")
        else:
            self.state = LoopState.FAILED
            self.bus.publish(
                EventType.TASK_ABORTED,
                ProcessAborted(id=self.task_id, task=self.description, reason="failed", error=error),
            )

        return LoopResult(task_id=self.task_id, outcome=outcome, iterations=iterations, error=error)
