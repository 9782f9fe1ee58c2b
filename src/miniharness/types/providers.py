"""Provider adapter protocol, chat history messages and stream event types."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from miniharness.types.tools import ToolDef


class StreamEventKind(Enum):
    """Closed set of events the protocol decoder can produce."""

    CONTENT = "content"
    REASONING = "reasoning"
    TOOL_CALL_START = "tool_call_start"
    TOOL_CALL_DELTA = "tool_call_delta"
    USAGE = "usage"
    FINISH = "finish"
    MESSAGE_END = "message_end"
    UNKNOWN = "unknown"


@dataclass(slots=True)
class ToolCall:
    """A model-requested tool invocation.

    ``arguments`` is the raw JSON document reassembled from the stream;
    it is never parsed by the decoder.
    """

    id: str = ""
    name: str = ""
    arguments: str = ""

    def to_wire(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


@dataclass(slots=True)
class StreamResult:
    """Everything assembled from one streamed model turn."""

    text: str = ""
    reasoning: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    usage: dict[str, int] | None = None
    finish_reason: str | None = None


@dataclass(frozen=True, slots=True)
class StreamEvent:
    """A single event decoded from a streaming provider response."""

    kind: StreamEventKind
    text: str | None = None
    index: int | None = None
    tool_call_id: str | None = None
    tool_name: str | None = None
    tool_args_json: str | None = None
    finish_reason: str | None = None
    usage: dict[str, int] | None = None
    result: StreamResult | None = None  # only on MESSAGE_END


@dataclass(slots=True)
class ChatMessage:
    """A message in the chat history.

    Roles are ``system``, ``user``, ``assistant`` and ``tool``. Assistant
    messages may carry ``tool_calls``; tool messages carry the
    ``tool_call_id`` of the invocation they answer.
    """

    role: str
    content: str | None = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_call_id: str | None = None

    def to_wire(self) -> dict[str, Any]:
        """Render in the OpenAI chat-completions message format."""
        data: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.role == "assistant" and self.tool_calls:
            data["tool_calls"] = [tc.to_wire() for tc in self.tool_calls]
        if self.role == "tool":
            data["tool_call_id"] = self.tool_call_id
        return data

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> ChatMessage:
        calls = [
            ToolCall(
                id=tc.get("id", ""),
                name=tc.get("function", {}).get("name", ""),
                arguments=tc.get("function", {}).get("arguments", ""),
            )
            for tc in data.get("tool_calls") or []
        ]
        return cls(
            role=data["role"],
            content=data.get("content"),
            tool_calls=calls,
            tool_call_id=data.get("tool_call_id"),
        )


class ProviderError(Exception):
    """The model endpoint failed (non-success status or connection error)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        body: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class StreamTimeoutError(ProviderError):
    """No data arrived on the stream within the read timeout."""


@runtime_checkable
class ProviderAdapter(Protocol):
    """Protocol that all provider adapters must implement."""

    def chat_completion_stream(
        self,
        messages: list[ChatMessage],
        tools: list[ToolDef],
        max_tokens: int,
    ) -> Any:
        """Stream a chat completion. Returns an async iterator of StreamEvent.

        The final event is always ``MESSAGE_END`` carrying the assembled
        :class:`StreamResult`.
        """
        ...

    @property
    def model_id(self) -> str:
        """The model identifier being used."""
        ...
