"""Action and Reasoning steps of the task loop."""

import logging
from typing import Optional

from quorra.errors import UnknownToolError
from quorra.llm.client import LLMClient, response_text, tool_uses
from quorra.processes.models import (
    NO_PLAN,
    ActionOutcome,
    ReasoningResult,
    TaskDocuments,
    ToolCall,
    ToolCallResult,
)
from quorra.processes.prompts import (
    ACTION_FIRST_STEP,
    ACTION_FOLLOW_PLAN,
    ACTION_SYSTEM_PROMPT,
    REASONING_INPUT,
    REASONING_SYSTEM_PROMPT,
)
from quorra.processes.repair import parse_reasoning
from quorra.tools.base import ToolContext
from quorra.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


class ActionStep:
    """Asks the model for exactly one tool call and runs it."""

    def __init__(
        self,
        llm: LLMClient,
        registry: ToolRegistry,
        tool_names: Optional[list[str]] = None,
        timeout: Optional[float] = None,
    ) -> None:
        """
        Args:
            llm: LLM client
            registry: Tools the task may use
            tool_names: Restrict the offered tools to these names
            timeout: Per-call provider timeout in seconds
        """
        self.llm = llm
        self.registry = registry
        self.tool_names = tool_names
        self.timeout = timeout

    def build_messages(self, docs: TaskDocuments, cwd: str) -> list[dict]:
        if docs.plan.strip() == NO_PLAN:
            prompt = ACTION_FIRST_STEP.format(cwd=cwd, goal=docs.goal, scratchpad=docs.scratchpad)
        else:
            prompt = ACTION_FOLLOW_PLAN.format(cwd=cwd, plan=docs.plan)
        return [
            {"role": "system", "content": ACTION_SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]

    async def run(self, task_id: str, docs: TaskDocuments, cwd: str) -> ActionOutcome:
        """
        Execute one action.

        Tool failures, including unknown tool names, are captured as result
        text. A text-only reply is a no-op.

        Args:
            task_id: Owning task id
            docs: Current documents
            cwd: Task working directory

        Returns:
            ActionOutcome with at most one call/result pair
        """
        response = await self.llm.chat(
            self.build_messages(docs, cwd),
            tools=self.registry.get_tool_schemas(self.tool_names),
            tool_choice={"type": "any"},
            timeout=self.timeout,
        )

        uses = tool_uses(response)
        if not uses:
            text = response_text(response)
            logger.warning(f"[{task_id}] Action step returned text instead of a tool call: {text[:200]!r}")
            return ActionOutcome(text=text)

        if len(uses) > 1:
            logger.warning(f"[{task_id}] Model requested {len(uses)} tools, only the first is executed")

        use = uses[0]
        call = ToolCall(name=use.name, arguments=use.input)
        logger.info(f"[{task_id}] Executing tool {use.name}")

        try:
            result = await self.registry.execute(
                use.name, use.input, ToolContext(cwd=cwd, task_id=task_id)
            )
            result_text = result.to_text()
        except UnknownToolError as e:
            logger.warning(f"[{task_id}] {e}")
            result_text = f"Error: {e}"

        return ActionOutcome(calls=[call], results=[ToolCallResult(name=use.name, result=result_text)])


class ReasoningStep:
    """Turns an action outcome into a scratchpad update, next plan and completion flag."""

    def __init__(self, llm: LLMClient, timeout: Optional[float] = None) -> None:
        self.llm = llm
        self.timeout = timeout

    def build_messages(self, docs: TaskDocuments, outcome: ActionOutcome) -> list[dict]:
        if outcome.is_noop:
            calls = "(no tool was called)"
            results = outcome.text or "(no output)"
        else:
            calls = outcome.describe_calls()
            results = outcome.describe_results()

        prompt = REASONING_INPUT.format(
            goal=docs.goal,
            scratchpad=docs.scratchpad,
            plan=docs.plan,
            calls=calls,
            results=results,
        )
        return [
            {"role": "system", "content": REASONING_SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]

    async def run(self, docs: TaskDocuments, outcome: ActionOutcome) -> ReasoningResult:
        """
        Raises:
            ReasoningParseError: If the reply cannot be repaired into a valid result
        """
        response = await self.llm.chat(self.build_messages(docs, outcome), timeout=self.timeout)
        return parse_reasoning(response_text(response))
