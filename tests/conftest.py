"""Test fixtures including MockProvider for deterministic testing."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from miniharness.providers.sse import SSEDecoder, decode_stream
from miniharness.types.config import RunConfig
from miniharness.types.providers import ChatMessage, ProviderError, StreamEvent
from miniharness.types.tools import ToolDef


def sse(*events: dict[str, Any] | str) -> bytes:
    """Render events as an SSE body (dicts are JSON-encoded; strings are raw payloads)."""
    lines = []
    for event in events:
        payload = event if isinstance(event, str) else json.dumps(event)
        lines.append(f"data: {payload}\n\n")
    return "".join(lines).encode("utf-8")


def chunk(delta: dict[str, Any], finish_reason: str | None = None) -> dict[str, Any]:
    """A Chat Completions streaming chunk."""
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion.chunk",
        "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
    }


def split_every(data: bytes, size: int) -> list[bytes]:
    return [data[i:i + size] for i in range(0, len(data), size)]


async def aiter_chunks(chunks: Iterable[bytes]) -> AsyncIterator[bytes]:
    for c in chunks:
        yield c


@dataclass
class MockTurn:
    """A scripted turn for MockProvider.

    ``tool_calls`` entries are ``{"id", "name", "args"}``; ``args`` may be a
    dict (JSON-encoded) or a raw string sent verbatim.
    """

    text: str = ""
    reasoning: str = ""
    tool_calls: list[dict[str, Any]] = field(default_factory=list)
    usage: dict[str, int] | None = field(
        default_factory=lambda: {"prompt_tokens": 100, "completion_tokens": 50, "total_tokens": 150},
    )

    def to_sse(self) -> bytes:
        events: list[dict[str, Any] | str] = []
        if self.reasoning:
            events.append(chunk({"reasoning_content": self.reasoning}))
        if self.text:
            events.append(chunk({"role": "assistant", "content": self.text}))
        for i, tc in enumerate(self.tool_calls):
            args = tc.get("args", {})
            raw = args if isinstance(args, str) else json.dumps(args)
            events.append(chunk({"tool_calls": [{
                "index": i,
                "id": tc["id"],
                "type": "function",
                "function": {"name": tc["name"], "arguments": ""},
            }]}))
            events.append(chunk({"tool_calls": [{"index": i, "function": {"arguments": raw}}]}))
        events.append(chunk({}, "tool_calls" if self.tool_calls else "stop"))
        if self.usage:
            events.append({"id": "chatcmpl-1", "choices": [], "usage": self.usage})
        events.append("[DONE]")
        return sse(*events)


class MockProvider:
    """A deterministic provider that streams scripted SSE through the real decoder.

    Usage:
        provider = MockProvider(turns=[
            MockTurn(tool_calls=[{"id": "c1", "name": "list_dir", "args": {}}]),
            MockTurn(text="The directory has two files."),
        ])

    ``requests`` records the history sent on every call.
    """

    def __init__(self, turns: list[MockTurn], model: str = "mock-model", chunk_size: int = 7):
        self._turns = list(turns)
        self._turn_index = 0
        self._model = model
        self._chunk_size = chunk_size
        self.requests: list[list[ChatMessage]] = []

    @property
    def model_id(self) -> str:
        return self._model

    async def chat_completion_stream(
        self,
        messages: list[ChatMessage],
        tools: list[ToolDef],
        max_tokens: int,
    ) -> AsyncIterator[StreamEvent]:
        self.requests.append(list(messages))
        if self._turn_index < len(self._turns):
            turn = self._turns[self._turn_index]
            self._turn_index += 1
        else:
            turn = MockTurn(usage=None)

        body = split_every(turn.to_sse(), self._chunk_size)
        async for event in decode_stream(aiter_chunks(body), SSEDecoder(think_tags=False)):
            yield event


class FailingMockProvider(MockProvider):
    """A mock provider that raises ProviderError on the first N calls."""

    def __init__(self, turns: list[MockTurn], fail_count: int = 1, model: str = "mock-model"):
        super().__init__(turns, model=model)
        self._fail_count = fail_count
        self._calls = 0

    async def chat_completion_stream(
        self,
        messages: list[ChatMessage],
        tools: list[ToolDef],
        max_tokens: int,
    ) -> AsyncIterator[StreamEvent]:
        self._calls += 1
        if self._calls <= self._fail_count:
            raise ProviderError("API error 500: upstream exploded", status_code=500)
        async for event in super().chat_completion_stream(messages, tools, max_tokens):
            yield event


@pytest.fixture
def tmp_project(tmp_path: Path) -> Path:
    """Create a temporary project directory with sample files."""
    (tmp_path / "README.md").write_text("# Test Project\n\nA test project.\n")
    (tmp_path / "main.py").write_text("def hello():\n    print('Hello, world!')\n\nhello()\n")
    src = tmp_path / "src"
    src.mkdir()
    (src / "utils.py").write_text("def add(a, b):\n    return a + b\n")
    return tmp_path


@pytest.fixture
def state_root(tmp_project: Path) -> Path:
    """Shared state directory inside the temporary project."""
    return tmp_project / ".mini-harness"


@pytest.fixture
def run_config(tmp_project: Path, state_root: Path) -> RunConfig:
    return RunConfig(cwd=str(tmp_project), root=str(state_root), max_iterations=10)


@pytest.fixture
def mock_provider() -> MockProvider:
    """A simple mock provider that responds with text."""
    return MockProvider(turns=[MockTurn(text="I can help with that.")])
