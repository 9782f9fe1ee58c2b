"""miniharness: coding agent with background sub-agents.

Usage:
    import miniharness

    async for msg in miniharness.run("Fix the bug"):
        match msg:
            case miniharness.TextMessage(text=t, is_partial=True):
                print(t, end="")
            case miniharness.Result(text=t):
                print(f"Done: {t}")
"""

from miniharness.core.engine import run
from miniharness.types.config import RunConfig
from miniharness.types.messages import (
    ContextUpdate,
    ErrorEvent,
    IterationStart,
    Message,
    ReasoningMessage,
    Result,
    SystemEvent,
    TextMessage,
    ToolCallStarted,
    ToolResult,
    ToolUse,
)
from miniharness.types.tools import ToolContext, ToolDef, ToolParam, ToolResultData

__version__ = "0.1.0"

__all__ = [
    # Core API
    "run",
    # Event types
    "ContextUpdate",
    "ErrorEvent",
    "IterationStart",
    "Message",
    "ReasoningMessage",
    "Result",
    "SystemEvent",
    "TextMessage",
    "ToolCallStarted",
    "ToolResult",
    "ToolUse",
    # Configuration
    "RunConfig",
    # Tool types
    "ToolContext",
    "ToolDef",
    "ToolParam",
    "ToolResultData",
]
