"""Built-in tools."""

from quorra.tools.builtin.file_ops import FileDeleteTool, FileReadTool, FileWriteTool, ListDirTool
from quorra.tools.builtin.web_fetch import FetchPageTool

__all__ = ["FetchPageTool", "FileDeleteTool", "FileReadTool", "FileWriteTool", "ListDirTool"]
