"""LLM client abstraction."""

from quorra.llm.client import LLMClient, LLMProvider, LLMResponse, ToolUse, response_text, tool_uses

__all__ = ["LLMClient", "LLMProvider", "LLMResponse", "ToolUse", "response_text", "tool_uses"]
