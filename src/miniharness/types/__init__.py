"""Type definitions for miniharness."""

from miniharness.types.agents import (
    BROADCAST,
    COORDINATOR_ID,
    AgentRecord,
    AgentResult,
    AgentStatus,
    MqMessage,
)
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
from miniharness.types.providers import (
    ChatMessage,
    ProviderAdapter,
    ProviderError,
    StreamEvent,
    StreamEventKind,
    StreamResult,
    StreamTimeoutError,
    ToolCall,
)
from miniharness.types.tools import Tool, ToolContext, ToolDef, ToolParam, ToolResultData

__all__ = [
    "BROADCAST",
    "COORDINATOR_ID",
    "AgentRecord",
    "AgentResult",
    "AgentStatus",
    "ChatMessage",
    "ContextUpdate",
    "ErrorEvent",
    "IterationStart",
    "Message",
    "MqMessage",
    "ProviderAdapter",
    "ProviderError",
    "ReasoningMessage",
    "Result",
    "RunConfig",
    "StreamEvent",
    "StreamEventKind",
    "StreamResult",
    "StreamTimeoutError",
    "SystemEvent",
    "TextMessage",
    "Tool",
    "ToolCall",
    "ToolCallStarted",
    "ToolContext",
    "ToolDef",
    "ToolParam",
    "ToolResult",
    "ToolResultData",
    "ToolUse",
]
