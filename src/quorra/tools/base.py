"""Base classes for the tool system."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from pydantic import BaseModel


class ToolParameter(BaseModel):
    """Tool parameter definition."""

    name: str
    type: str  # "string", "integer", "boolean", "object", "array"
    description: str
    required: bool = True
    default: Optional[Any] = None
    enum: Optional[list[Any]] = None


class ToolDefinition(BaseModel):
    """Tool metadata and configuration."""

    name: str
    description: str
    parameters: list[ToolParameter]
    timeout_seconds: int = 60
    category: Optional[str] = None


@dataclass
class ToolContext:
    """Execution context handed to every tool call."""

    cwd: str = "/"
    task_id: Optional[str] = None  # None when called from the conversational loop


@dataclass
class ToolResult:
    """Result from tool execution."""

    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None

    def to_text(self) -> str:
        """Render the result the way it is fed back to the model."""
        if self.success:
            return "" if self.data is None else str(self.data)
        return f"Error: {self.error}"


class Tool(ABC):
    """Base tool interface."""

    definition: ToolDefinition

    @abstractmethod
    async def execute(self, context: ToolContext, **kwargs: Any) -> ToolResult:
        """
        Execute the tool.

        Args:
            context: Caller context (cwd, task id)
            **kwargs: Tool parameters

        Returns:
            ToolResult with execution result
        """
        pass

