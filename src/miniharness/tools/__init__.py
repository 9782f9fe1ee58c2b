"""miniharness built-in tool system."""

from miniharness.tools.base import BaseTool
from miniharness.tools.files import ListDirTool, ReadFileTool, WriteFileTool
from miniharness.tools.manager import ToolRegistry
from miniharness.tools.registry import COORDINATOR_TOOLS, SUB_AGENT_TOOLS, build_registry
from miniharness.tools.shell import RunShellTool

__all__ = [
    "COORDINATOR_TOOLS",
    "SUB_AGENT_TOOLS",
    "BaseTool",
    "ListDirTool",
    "ReadFileTool",
    "RunShellTool",
    "ToolRegistry",
    "WriteFileTool",
    "build_registry",
]
