"""Tool system."""

from quorra.tools.base import Tool, ToolContext, ToolDefinition, ToolParameter, ToolResult
from quorra.tools.registry import ToolRegistry

__all__ = [
    "Tool",
    "ToolContext",
    "ToolDefinition",
    "ToolParameter",
    "ToolRegistry",
    "ToolResult",
]
