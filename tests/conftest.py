"""Shared fixtures: in-memory store, bus and a scripted LLM provider."""

import inspect
import json
from typing import Any, Optional

import pytest

from quorra.events.bus import EventBus, Subscription
from quorra.events.models import Event
from quorra.llm.client import LLMClient, LLMProvider, LLMResponse
from quorra.storage.memory import MemoryObjectStore
from quorra.system.filesystem import VirtualFileSystem
from quorra.tools.registry import ToolRegistry


def text_response(text: str) -> LLMResponse:
    return LLMResponse(content=[{"type": "text", "text": text}], stop_reason="end_turn")


def tool_response(name: str, args: dict, tool_id: str = "toolu_1") -> LLMResponse:
    return LLMResponse(
        content=[{"type": "tool_use", "id": tool_id, "name": name, "input": args}],
        stop_reason="tool_use",
    )


def reasoning_response(update: str = "step done", plan: str = "next step", complete: bool = False) -> LLMResponse:
    return text_response(
        json.dumps({"scratchpad_update": update, "next_plan": plan, "is_complete": complete})
    )


class ScriptedProvider(LLMProvider):
    """
    Fake provider replaying canned responses.

    Action-step calls (tool_choice set) are answered from ``action``,
    reasoning calls (no tools) from ``reasoning``, everything else from
    ``responses`` in order. ``action`` and ``reasoning`` may be a single
    response, a list (the last entry repeats) or a callable taking the
    messages and returning a response or awaitable.
    """

    def __init__(self, responses: Optional[list] = None, action: Any = None, reasoning: Any = None) -> None:
        self.responses = list(responses or [])
        self.action = action
        self.reasoning = reasoning
        self.calls: list[dict] = []

    @property
    def action_calls(self) -> list[dict]:
        return [c for c in self.calls if c["tool_choice"] is not None]

    @property
    def reasoning_calls(self) -> list[dict]:
        return [c for c in self.calls if not c["tools"]]

    async def _resolve(self, source: Any, messages: list[dict]) -> LLMResponse:
        if isinstance(source, list):
            source = source.pop(0) if len(source) > 1 else source[0]
        if callable(source):
            source = source(messages)
            if inspect.isawaitable(source):
                source = await source
        return source

    async def chat(
        self, messages: list[dict], tools: list[dict] | None = None, tool_choice: dict | None = None
    ) -> LLMResponse:
        self.calls.append({"messages": messages, "tools": tools, "tool_choice": tool_choice})

        if tool_choice is not None and self.action is not None:
            return await self._resolve(self.action, messages)
        if not tools and self.reasoning is not None:
            return await self._resolve(self.reasoning, messages)

        if not self.responses:
            raise AssertionError("ScriptedProvider ran out of responses")
        return await self._resolve(self.responses.pop(0), messages)


def drain(subscription: Subscription) -> list[Event]:
    """Collect every event queued on a subscription."""
    events = []
    while True:
        event = subscription.get_nowait()
        if event is None:
            return events
        events.append(event)
        subscription.ack()


@pytest.fixture
def store():
    return MemoryObjectStore()


@pytest.fixture
def bus():
    return EventBus({"max_queue_size": 1000})


@pytest.fixture
def filesystem(store, bus):
    return VirtualFileSystem(store, bus)


@pytest.fixture
def registry(filesystem):
    registry = ToolRegistry({"fetch_page": {"enabled": False}}, filesystem)
    registry.register_builtin_tools()
    return registry


@pytest.fixture
def provider():
    return ScriptedProvider()


@pytest.fixture
def llm_client(provider):
    return LLMClient({}, provider=provider)
