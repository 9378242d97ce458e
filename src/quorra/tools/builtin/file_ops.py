"""File operation tools backed by the virtual file system."""

import json
import logging

from quorra.system.filesystem import Owner, VirtualFileSystem, to_absolute
from quorra.tools.base import Tool, ToolContext, ToolDefinition, ToolParameter, ToolResult

logger = logging.getLogger(__name__)


def _path_parameter(description: str) -> ToolParameter:
    return ToolParameter(
        name="path",
        type="string",
        description=description,
        required=True,
    )


class ListDirTool(Tool):
    """Tool for listing a directory."""

    def __init__(self, filesystem: VirtualFileSystem, config: dict) -> None:
        self.filesystem = filesystem
        self.config = config

        self.definition = ToolDefinition(
            name="list_dir",
            description=(
                "Lists file system entries in the specified directory path. "
                "Returns a JSON array of entries, either files or directories."
            ),
            parameters=[_path_parameter("Directory path, absolute or relative to the working directory")],
            category="file",
        )

    async def execute(self, context: ToolContext, path: str = ".") -> ToolResult:
        try:
            abs_path = to_absolute(path, context.cwd)
            entries = await self.filesystem.list_dir(abs_path)
            listing = [
                {"type": e.type, "path": e.path, "size": e.size, "owner": e.owner}
                for e in entries
            ]
            return ToolResult(success=True, data=json.dumps(listing))
        except Exception as e:
            logger.error(f"Error listing {path}: {e}", exc_info=True)
            return ToolResult(success=False, error=f"List error: {e}")


class FileReadTool(Tool):
    """Tool for reading file contents."""

    def __init__(self, filesystem: VirtualFileSystem, config: dict) -> None:
        self.filesystem = filesystem
        self.config = config
        self.max_file_size_mb = config.get("max_file_size_mb", 10)

        self.definition = ToolDefinition(
            name="read_file",
            description="Read the contents of a file. Returns the file content as text.",
            parameters=[_path_parameter("Path to the file to read")],
            category="file",
        )

    async def execute(self, context: ToolContext, path: str) -> ToolResult:
        try:
            abs_path = to_absolute(path, context.cwd)
            entry = await self.filesystem.stat(abs_path)
            if entry is None:
                return ToolResult(success=False, error=f"File not found: {abs_path}")

            file_size_mb = (entry.size or 0) / (1024 * 1024)
            if file_size_mb > self.max_file_size_mb:
                return ToolResult(
                    success=False,
                    error=f"File too large: {file_size_mb:.2f}MB (max: {self.max_file_size_mb}MB)",
                )

            content = await self.filesystem.read(abs_path)
            if content is None:
                return ToolResult(success=False, error=f"File not found: {abs_path}")

            logger.info(f"Read file: {abs_path} ({len(content)} chars)")
            return ToolResult(success=True, data=content)

        except UnicodeDecodeError:
            return ToolResult(success=False, error=f"File is not valid UTF-8 text: {path}")
        except Exception as e:
            logger.error(f"Error reading file {path}: {e}", exc_info=True)
            return ToolResult(success=False, error=f"Read error: {e}")


class FileWriteTool(Tool):
    """Tool for writing file contents."""

    def __init__(self, filesystem: VirtualFileSystem, config: dict) -> None:
        self.filesystem = filesystem
        self.config = config

        self.definition = ToolDefinition(
            name="write_file",
            description="Write content to a file. Creates the file if it doesn't exist, overwrites if it does.",
            parameters=[
                _path_parameter("Path to the file to write"),
                ToolParameter(
                    name="content",
                    type="string",
                    description="Content to write to the file",
                    required=True,
                ),
            ],
            category="file",
        )

    async def execute(self, context: ToolContext, path: str, content: str) -> ToolResult:
        try:
            abs_path = to_absolute(path, context.cwd)
            await self.filesystem.write(abs_path, content, owner=Owner.QUORRA)
            return ToolResult(success=True, data=f"Successfully wrote {len(content)} characters to {abs_path}")
        except Exception as e:
            logger.error(f"Error writing file {path}: {e}", exc_info=True)
            return ToolResult(success=False, error=f"Write error: {e}")


class FileDeleteTool(Tool):
    """Tool for deleting files."""

    def __init__(self, filesystem: VirtualFileSystem, config: dict) -> None:
        self.filesystem = filesystem
        self.config = config

        self.definition = ToolDefinition(
            name="delete_file",
            description="Delete a file. Use with caution as this operation cannot be undone.",
            parameters=[_path_parameter("Path to the file to delete")],
            category="file",
        )

    async def execute(self, context: ToolContext, path: str) -> ToolResult:
        try:
            abs_path = to_absolute(path, context.cwd)
            deleted = await self.filesystem.unlink(abs_path)
            if not deleted:
                return ToolResult(success=False, error=f"File not found: {abs_path}")
            return ToolResult(success=True, data=f"Successfully deleted {abs_path}")
        except Exception as e:
            logger.error(f"Error deleting file {path}: {e}", exc_info=True)
            return ToolResult(success=False, error=f"Delete error: {e}")
