"""Unit tests for the TaskLoop state machine."""

import asyncio

import pytest

from conftest import ScriptedProvider, drain, reasoning_response, text_response, tool_response
from quorra.events.models import EventType
from quorra.llm.client import LLMClient
from quorra.processes.loop import TaskLoop
from quorra.processes.models import LoopOutcome, LoopState
from quorra.processes.scratchpad import ScratchpadStore
from quorra.processes.steps import ActionStep, ReasoningStep
from quorra.processes.table import ProcessTable
from quorra.tools.base import Tool, ToolContext, ToolDefinition, ToolResult


class RecordingScratchpad(ScratchpadStore):
    """ScratchpadStore that remembers every write_triple call."""

    def __init__(self, store):
        super().__init__(store)
        self.writes = []

    async def write_triple(self, task_id, goal, scratchpad, plan):
        self.writes.append((scratchpad, plan))
        await super().write_triple(task_id, goal, scratchpad, plan)


class KillSwitchTool(Tool):
    """Tool that kills its own task while executing."""

    def __init__(self, table):
        self.table = table
        self.definition = ToolDefinition(name="kill_switch", description="Aborts the calling task", parameters=[])

    async def execute(self, context: ToolContext, **kwargs) -> ToolResult:
        await self.table.abort(context.task_id)
        return ToolResult(success=True, data="pressed")


def build_loop(store, bus, registry, provider, max_iterations=20, table=None, scratchpad=None):
    llm = LLMClient({}, provider=provider)
    return TaskLoop(
        task_id="t1",
        goal="write hello.txt containing 'hi'",
        cwd="/",
        description="hello task",
        table=table if table is not None else ProcessTable(),
        bus=bus,
        scratchpad=scratchpad or ScratchpadStore(store),
        action_step=ActionStep(llm, registry),
        reasoning_step=ReasoningStep(llm),
        max_iterations=max_iterations,
    )


@pytest.mark.asyncio
class TestTaskLoopLifecycle:
    """Test initialization and terminal transitions."""

    async def test_initialize(self, store, bus, registry):
        """Initializing seeds documents, registers and publishes task-spawned."""
        events = bus.subscribe()
        loop = build_loop(store, bus, registry, ScriptedProvider())

        await loop.initialize()

        assert loop.state == LoopState.ITERATING
        assert await loop.table.contains("t1")
        assert sorted(store.keys()) == ["/proc/t1/GOAL", "/proc/t1/PLAN", "/proc/t1/SCRATCHPAD"]
        [event] = drain(events)
        assert event.type == EventType.TASK_SPAWNED
        assert event.payload == {"id": "t1", "task": "hello task"}

    async def test_duplicate_initialize_cleans_up(self, store, bus, registry):
        """A clashing id raises without leaving documents behind."""
        table = ProcessTable()
        await table.register("t1", "/", "other")
        loop = build_loop(store, bus, registry, ScriptedProvider(), table=table)

        with pytest.raises(ValueError):
            await loop.initialize()
        assert store.keys() == []

    async def test_reasoner_declared_completion(self, store, bus, registry):
        """is_complete ends the loop as DONE and cleans up."""
        provider = ScriptedProvider(
            action=tool_response("write_file", {"path": "hello.txt", "content": "hi"}),
            reasoning=reasoning_response("wrote hello.txt", "nothing", True),
        )
        loop = build_loop(store, bus, registry, provider)
        await loop.initialize()
        events = bus.subscribe()

        result = await loop.run()

        assert result.outcome == LoopOutcome.DONE
        assert result.iterations == 1
        assert loop.state == LoopState.COMPLETED
        assert store.keys() == ["/hello.txt"]
        assert not await loop.table.contains("t1")

        published = drain(events)
        assert [e.type for e in published] == [EventType.FILE_CREATED, EventType.TASK_FINISHED]
        assert published[-1].payload["outcome"] == "done"

    async def test_forced_stop(self, store, bus, registry):
        """The iteration cap ends the loop with a distinct outcome."""
        provider = ScriptedProvider(
            action=tool_response("list_dir", {"path": "/"}),
            reasoning=reasoning_response("nothing yet", "list again", False),
        )
        loop = build_loop(store, bus, registry, provider, max_iterations=3)
        await loop.initialize()
        events = bus.subscribe()

        result = await loop.run()

        assert result.outcome == LoopOutcome.FORCED_STOP
        assert result.iterations == 3
        assert len(provider.action_calls) == 3
        assert store.keys() == []
        [event] = drain(events)
        assert event.type == EventType.TASK_FINISHED
        assert event.payload["outcome"] == "forced_stop"
        assert event.payload["iterations"] == 3

    async def test_iterations_increase_by_one(self, store, bus, registry):
        """Every pass sees the previous counter plus one."""
        seen = []
        loop = None

        def reasoning(messages):
            seen.append(loop.iteration)
            return reasoning_response(f"step {loop.iteration}", "continue", False)

        provider = ScriptedProvider(action=tool_response("list_dir", {"path": "/"}), reasoning=reasoning)
        loop = build_loop(store, bus, registry, provider, max_iterations=5)
        await loop.initialize()

        await loop.run()

        assert seen == [1, 2, 3, 4, 5]

    async def test_scratchpad_is_append_only(self, store, bus, registry):
        """Each persisted scratchpad extends the previous one."""
        counter = iter(range(100))
        provider = ScriptedProvider(
            action=tool_response("list_dir", {"path": "/"}),
            reasoning=lambda messages: reasoning_response(f"note {next(counter)}", "continue", False),
        )
        scratchpad = RecordingScratchpad(store)
        loop = build_loop(store, bus, registry, provider, max_iterations=4, scratchpad=scratchpad)
        await loop.initialize()

        await loop.run()

        contents = [s for s, _ in scratchpad.writes]
        assert contents[0] == "Iteration 0"
        for before, after in zip(contents, contents[1:]):
            assert after.startswith(before)
            assert len(after) > len(before)
        assert contents[-1] == "Iteration 0\nnote 0\nnote 1\nnote 2\nnote 3"

    async def test_plan_is_replaced(self, store, bus, registry):
        """The next plan fully replaces the previous one."""
        plans = iter(["read a", "read b"])
        provider = ScriptedProvider(
            action=tool_response("list_dir", {"path": "/"}),
            reasoning=lambda messages: reasoning_response("x", next(plans, "done"), False),
        )
        scratchpad = RecordingScratchpad(store)
        loop = build_loop(store, bus, registry, provider, max_iterations=2, scratchpad=scratchpad)
        await loop.initialize()

        await loop.run()

        assert [p for _, p in scratchpad.writes] == ["NO_PLAN", "read a", "read b"]

    async def test_tool_error_is_not_fatal(self, store, bus, registry):
        """A failing tool feeds an error to the reasoner and the loop goes on."""
        provider = ScriptedProvider(
            action=[
                tool_response("read_file", {"path": "/missing.txt"}),
                tool_response("write_file", {"path": "/missing.txt", "content": "now here"}),
            ],
            reasoning=[
                reasoning_response("file missing", "create it", False),
                reasoning_response("created", "none", True),
            ],
        )
        loop = build_loop(store, bus, registry, provider)
        await loop.initialize()

        result = await loop.run()

        assert result.outcome == LoopOutcome.DONE
        assert result.iterations == 2
        first_reasoning = provider.reasoning_calls[0]["messages"][-1]["content"]
        assert "Error: File not found" in first_reasoning

    async def test_text_action_is_noop(self, store, bus, registry):
        """A text-only action does not fail the task."""
        provider = ScriptedProvider(
            action=text_response("hmm"),
            reasoning=reasoning_response("model answered in text", "call a tool", True),
        )
        loop = build_loop(store, bus, registry, provider)
        await loop.initialize()

        assert (await loop.run()).outcome == LoopOutcome.DONE


@pytest.mark.asyncio
class TestTaskLoopFailures:
    """Test protocol errors and timeouts."""

    async def test_unparseable_reasoning_fails_task(self, store, bus, registry):
        """Reasoner garbage fails the task with the abort-equivalent cleanup."""
        provider = ScriptedProvider(
            action=tool_response("list_dir", {"path": "/"}),
            reasoning=text_response("I am not JSON"),
        )
        loop = build_loop(store, bus, registry, provider)
        await loop.initialize()
        events = bus.subscribe()

        result = await loop.run()

        assert result.outcome == LoopOutcome.FAILED
        assert "ReasoningParseError" in result.error
        assert loop.state == LoopState.FAILED
        assert store.keys() == []
        assert not await loop.table.contains("t1")
        [event] = drain(events)
        assert event.type == EventType.TASK_ABORTED
        assert event.payload["reason"] == "failed"
        assert "ReasoningParseError" in event.payload["error"]

    async def test_missing_document_fails_task(self, store, bus, registry):
        """A vanished document is storage corruption."""
        provider = ScriptedProvider(action=tool_response("list_dir", {"path": "/"}))
        loop = build_loop(store, bus, registry, provider)
        await loop.initialize()
        await store.delete("/proc/t1/SCRATCHPAD")

        result = await loop.run()

        assert result.outcome == LoopOutcome.FAILED
        assert "MissingDocumentError" in result.error
        assert provider.action_calls == []

    async def test_llm_timeout_fails_task(self, store, bus, registry):
        """A provider call exceeding its timeout fails the task."""

        async def slow(messages):
            await asyncio.sleep(10)

        llm = LLMClient({"timeout_seconds": 0.01}, provider=ScriptedProvider(action=slow))
        loop = TaskLoop(
            task_id="t1",
            goal="g",
            cwd="/",
            description="d",
            table=ProcessTable(),
            bus=bus,
            scratchpad=ScratchpadStore(store),
            action_step=ActionStep(llm, registry),
            reasoning_step=ReasoningStep(llm),
        )
        await loop.initialize()

        result = await loop.run()

        assert result.outcome == LoopOutcome.FAILED
        assert "TimeoutError" in result.error


@pytest.mark.asyncio
class TestTaskLoopAbort:
    """Test cooperative cancellation."""

    async def test_abort_before_first_iteration(self, store, bus, registry):
        """A pre-set flag stops the loop before any model call."""
        provider = ScriptedProvider()
        loop = build_loop(store, bus, registry, provider)
        await loop.initialize()
        await loop.table.abort("t1")
        events = bus.subscribe()

        result = await loop.run()

        assert result.outcome == LoopOutcome.ABORTED
        assert result.iterations == 0
        assert provider.calls == []
        assert [e.type for e in drain(events)] == [EventType.TASK_ABORTED]

    async def test_no_write_after_abort_during_action(self, store, bus, registry):
        """A kill landing mid-action prevents reasoning and persistence."""
        table = ProcessTable()
        registry.register(KillSwitchTool(table))
        provider = ScriptedProvider(
            action=tool_response("kill_switch", {}),
            reasoning=reasoning_response("should never be used", "x", False),
        )
        scratchpad = RecordingScratchpad(store)
        loop = build_loop(store, bus, registry, provider, table=table, scratchpad=scratchpad)
        await loop.initialize()

        result = await loop.run()

        assert result.outcome == LoopOutcome.ABORTED
        assert provider.reasoning_calls == []
        # only the seed
        assert scratchpad.writes == [("Iteration 0", "NO_PLAN")]

    async def test_no_write_after_abort_during_reasoning(self, store, bus, registry):
        """A kill landing while the reasoner runs prevents persisting its result."""
        table = ProcessTable()

        async def reasoning(messages):
            await table.abort("t1")
            return reasoning_response("stale", "stale plan", False)

        provider = ScriptedProvider(action=tool_response("list_dir", {"path": "/"}), reasoning=reasoning)
        scratchpad = RecordingScratchpad(store)
        loop = build_loop(store, bus, registry, provider, table=table, scratchpad=scratchpad)
        await loop.initialize()

        result = await loop.run()

        assert result.outcome == LoopOutcome.ABORTED
        assert scratchpad.writes == [("Iteration 0", "NO_PLAN")]

    async def test_concurrent_kill_during_inflight_action(self, store, bus, registry):
        """Killing while the provider call is suspended leaves the documents untouched."""
        table = ProcessTable()
        started = asyncio.Event()
        release = asyncio.Event()

        async def action(messages):
            started.set()
            await release.wait()
            return tool_response("list_dir", {"path": "/"})

        provider = ScriptedProvider(action=action, reasoning=reasoning_response("x", "y", False))
        scratchpad = RecordingScratchpad(store)
        loop = build_loop(store, bus, registry, provider, table=table, scratchpad=scratchpad)
        await loop.initialize()

        runner = asyncio.create_task(loop.run())
        await asyncio.wait_for(started.wait(), timeout=1)
        before = {k: await store.get_text(k) for k in store.keys()}
        await table.abort("t1")
        assert {k: await store.get_text(k) for k in store.keys()} == before
        release.set()
        result = await asyncio.wait_for(runner, timeout=1)

        assert result.outcome == LoopOutcome.ABORTED
        assert scratchpad.writes == [("Iteration 0", "NO_PLAN")]
        assert store.keys() == []

    async def test_removed_entry_counts_as_abort(self, store, bus, registry):
        """A task missing from the table stops."""
        provider = ScriptedProvider()
        loop = build_loop(store, bus, registry, provider)
        await loop.initialize()
        await loop.table.remove("t1")

        assert (await loop.run()).outcome == LoopOutcome.ABORTED

    async def test_cancellation_cleans_up(self, store, bus, registry):
        """Cancelling the asyncio task publishes task-aborted and re-raises."""
        started = asyncio.Event()

        async def action(messages):
            started.set()
            await asyncio.sleep(10)

        loop = build_loop(store, bus, registry, ScriptedProvider(action=action))
        await loop.initialize()
        events = bus.subscribe()

        runner = asyncio.create_task(loop.run())
        await asyncio.wait_for(started.wait(), timeout=1)
        runner.cancel()
        with pytest.raises(asyncio.CancelledError):
            await runner

        assert store.keys() == []
        assert not await loop.table.contains("t1")
        assert [e.type for e in drain(events)] == [EventType.TASK_ABORTED]
