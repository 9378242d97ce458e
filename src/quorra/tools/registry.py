"""Tool registry for managing available tools."""

import logging
from typing import Any, Optional

from quorra.errors import UnknownToolError
from quorra.system.filesystem import VirtualFileSystem
from quorra.tools.base import Tool, ToolContext, ToolDefinition, ToolResult

logger = logging.getLogger(__name__)


class ToolRegistry:
    """Closed name -> tool mapping used to run model-selected actions."""

    def __init__(self, config: Optional[dict] = None, filesystem: Optional[VirtualFileSystem] = None) -> None:
        """
        Initialize tool registry.

        Args:
            config: Tool configuration
            filesystem: File system for the built-in file tools
        """
        self.config = config or {}
        self.filesystem = filesystem
        self.tools: dict[str, Tool] = {}

    def register_builtin_tools(self) -> None:
        """Register built-in tools enabled in configuration."""
        from quorra.tools.builtin.file_ops import FileDeleteTool, FileReadTool, FileWriteTool, ListDirTool
        from quorra.tools.builtin.web_fetch import FetchPageTool

        if self.filesystem is not None:
            for key, tool_class in (
                ("list_dir", ListDirTool),
                ("read_file", FileReadTool),
                ("write_file", FileWriteTool),
                ("delete_file", FileDeleteTool),
            ):
                tool_config = self.config.get(key, {})
                if tool_config.get("enabled", True):
                    self.register(tool_class(self.filesystem, tool_config))
        else:
            logger.warning("No file system configured, skipping file tools")

        fetch_config = self.config.get("fetch_page", {})
        if fetch_config.get("enabled", True):
            self.register(FetchPageTool(fetch_config, filesystem=self.filesystem))

        logger.info(f"Tool registry initialized with {len(self.tools)} tools")

    def register(self, tool: Tool) -> None:
        tool_name = tool.definition.name
        if tool_name in self.tools:
            logger.warning(f"Tool already registered, overwriting: {tool_name}")

        self.tools[tool_name] = tool
        logger.debug(f"Registered tool: {tool_name}")

    def unregister(self, name: str) -> None:
        if name in self.tools:
            del self.tools[name]
            logger.debug(f"Unregistered tool: {name}")

    def get(self, name: str) -> Optional[Tool]:
        return self.tools.get(name)

    def list_all(self) -> list[ToolDefinition]:
        return [tool.definition for tool in self.tools.values()]

    async def execute(
        self, name: str, args: Optional[dict[str, Any]] = None, context: Optional[ToolContext] = None
    ) -> ToolResult:
        """
        Execute a tool by name.

        Failures inside the tool, including bad arguments, come back as an
        unsuccessful ToolResult.

        Args:
            name: Tool name
            args: Tool arguments
            context: Caller context; defaults to cwd "/"

        Returns:
            ToolResult

        Raises:
            UnknownToolError: If no tool has this name
        """
        tool = self.tools.get(name)
        if tool is None:
            raise UnknownToolError(name)

        try:
            result = await tool.execute(context or ToolContext(), **(args or {}))
        except TypeError as e:
            logger.warning(f"Bad arguments for tool {name}: {e}")
            return ToolResult(success=False, error=f"Invalid arguments for {name}: {e}")
        except Exception as e:
            logger.error(f"Tool {name} raised: {e}", exc_info=True)
            return ToolResult(success=False, error=str(e))

        logger.info(f"Tool {name} -> success={result.success}")
        return result

    def get_tool_schemas(self, names: Optional[list[str]] = None) -> list[dict]:
        """
        Get tool schemas in Anthropic format.

        Args:
            names: Restrict to these tool names

        Returns:
            List of tool schema dicts
        """
        return [
            to_anthropic_schema(tool.definition)
            for name, tool in self.tools.items()
            if names is None or name in names
        ]


def to_anthropic_schema(definition: ToolDefinition) -> dict:
    """Convert a ToolDefinition to Anthropic tool schema format."""
    properties = {}
    required = []

    for param in definition.parameters:
        properties[param.name] = {
            "type": param.type,
            "description": param.description,
        }
        if param.enum:
            properties[param.name]["enum"] = param.enum
        if param.required:
            required.append(param.name)

    input_schema: dict[str, Any] = {
        "type": "object",
        "properties": properties,
    }
    if required:
        input_schema["required"] = required

    return {
        "name": definition.name,
        "description": definition.description,
        "input_schema": input_schema,
    }
