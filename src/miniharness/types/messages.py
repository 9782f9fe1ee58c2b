"""Event types yielded by the agent loop."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class IterationStart:
    """A new request/response round begins."""

    iteration: int


@dataclass(frozen=True, slots=True)
class TextMessage:
    """Visible text from the model.

    Partial messages are streamed chunks; the non-partial message carries the
    full visible text of the round.
    """

    text: str
    is_partial: bool = True


@dataclass(frozen=True, slots=True)
class ReasoningMessage:
    """Streaming reasoning chunk (dedicated channel or inline think block)."""

    text: str


@dataclass(frozen=True, slots=True)
class ToolCallStarted:
    """The decoder saw a new tool call index in the stream."""

    index: int
    id: str = ""
    name: str = ""


@dataclass(frozen=True, slots=True)
class ToolUse:
    """A tool is about to be executed."""

    id: str
    name: str
    args: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ToolResult:
    """Result of executing a tool."""

    tool_use_id: str
    content: str
    name: str = ""
    is_error: bool = False
    display: str | None = None


@dataclass(frozen=True, slots=True)
class ContextUpdate:
    """Token usage reported by the provider for the last round."""

    model: str
    tokens_used: int
    max_tokens: int


@dataclass(frozen=True, slots=True)
class ErrorEvent:
    """A loop-level failure: transport, stream timeout or iteration ceiling."""

    message: str
    kind: str = "transport"  # "transport", "timeout", "max_iterations"


@dataclass(frozen=True, slots=True)
class Result:
    """Final result when the agent loop completes."""

    text: str
    session_id: str
    turns: int = 0
    tool_calls: int = 0
    total_tokens: int = 0
    stop_reason: str = "end_turn"


@dataclass(frozen=True, slots=True)
class SystemEvent:
    """Lifecycle event (session start, heartbeat notice, etc.)."""

    type: str
    data: dict[str, Any] = field(default_factory=dict)


Message = (
    IterationStart
    | TextMessage
    | ReasoningMessage
    | ToolCallStarted
    | ToolUse
    | ToolResult
    | ContextUpdate
    | ErrorEvent
    | Result
    | SystemEvent
)
