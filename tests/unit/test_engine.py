"""Tests for miniharness.core.engine: the public run() function and factories."""

from __future__ import annotations

import json
from pathlib import Path

import httpx
import pytest

import miniharness
from miniharness.core.config import resolve_config
from miniharness.core.engine import create_coordinator, create_sub_agent
from miniharness.providers.chat import ChatCompletionsProvider
from miniharness.tools.registry import COORDINATOR_TOOLS, SUB_AGENT_TOOLS
from miniharness.types.config import RunConfig
from miniharness.types.messages import ErrorEvent, Result, ToolResult
from tests.conftest import MockProvider, MockTurn


async def _run(prompt: str, **kwargs) -> list:
    return [msg async for msg in miniharness.run(prompt, **kwargs)]


class TestRun:
    @pytest.mark.asyncio
    async def test_simple_run(self, tmp_path: Path):
        provider = MockProvider(turns=[MockTurn(text="I can help with that!")])
        messages = await _run("Hello", cwd=str(tmp_path), _provider=provider)

        result = [m for m in messages if isinstance(m, Result)][0]
        assert result.text == "I can help with that!"
        assert result.session_id
        system = provider.requests[0][0]
        assert system.role == "system"
        assert str(tmp_path) in system.content

    @pytest.mark.asyncio
    async def test_run_with_tool(self, tmp_path: Path):
        (tmp_path / "readme.md").write_text("# My Project")
        provider = MockProvider(turns=[
            MockTurn(tool_calls=[{"id": "tu1", "name": "read_file", "args": {"path": "readme.md"}}]),
            MockTurn(text="The README contains a project heading."),
        ])

        messages = await _run("Read the README", cwd=str(tmp_path), _provider=provider)

        tool_results = [m for m in messages if isinstance(m, ToolResult)]
        assert tool_results[0].content == "# My Project"
        assert messages[-1].text == "The README contains a project heading."

    @pytest.mark.asyncio
    async def test_iteration_ceiling(self, tmp_path: Path):
        provider = MockProvider(turns=[
            MockTurn(tool_calls=[{"id": f"c{i}", "name": "list_dir", "args": {}}]) for i in range(5)
        ])
        messages = await _run("spin", cwd=str(tmp_path), max_iterations=3, _provider=provider)
        assert [m.kind for m in messages if isinstance(m, ErrorEvent)] == ["max_iterations"]
        assert messages[-1].turns == 3

    @pytest.mark.asyncio
    async def test_session_resume(self, tmp_path: Path):
        first = MockProvider(turns=[MockTurn(text="Noted: the answer is 42.")])
        await _run("Remember 42", cwd=str(tmp_path), session_id="resume123456", _provider=first)
        assert (tmp_path / ".mini-harness" / "sessions" / "resume123456.jsonl").exists()

        second = MockProvider(turns=[MockTurn(text="It was 42.")])
        messages = await _run("What was it?", cwd=str(tmp_path), session_id="resume123456", _provider=second)

        history = second.requests[0]
        assert [m.role for m in history] == ["system", "user", "assistant", "user"]
        assert history[1].content == "Remember 42"
        assert messages[-1].session_id == "resume123456"


class TestFactories:
    def test_coordinator_has_agent_tools(self, run_config):
        loop = create_coordinator(run_config, provider=MockProvider(turns=[]))
        names = {d.name for d in loop._tool_defs}
        assert names == set(COORDINATOR_TOOLS)
        assert loop.session.path is None

    def test_sub_agent_is_restricted(self, run_config):
        loop = create_sub_agent(run_config, "a004", provider=MockProvider(turns=[]))
        names = {d.name for d in loop._tool_defs}
        assert names == set(SUB_AGENT_TOOLS)
        assert "a004" in loop.session.messages[0].content

    def test_custom_system_prompt(self, tmp_path: Path):
        config = RunConfig(cwd=str(tmp_path), system_prompt="Only answer in haiku.")
        loop = create_coordinator(config, provider=MockProvider(turns=[]))
        assert loop.session.messages[0].content == "Only answer in haiku."


class TestDefaultDecoding:
    """Plain endpoints (no inline thinking) through the shipped config."""

    def _endpoint(self, *deltas: dict) -> httpx.AsyncClient:
        lines = [f"data: {json.dumps({'choices': [{'delta': d}]})}\n\n" for d in deltas]
        body = ("".join(lines) + "data: [DONE]\n\n").encode()

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=body, headers={"content-type": "text/event-stream"})

        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    @pytest.mark.asyncio
    async def test_plain_answer_is_recorded(self, tmp_path: Path):
        config = resolve_config(str(tmp_path))
        provider = ChatCompletionsProvider(
            base_url=config.base_url,
            model=config.model,
            think_tags=config.think_tags,
            think_starts_open=config.think_starts_open,
            client=self._endpoint({"content": "Hello "}, {"content": "there"}),
        )
        loop = create_coordinator(config, provider=provider)

        messages = [m async for m in loop.run("hi")]
        await provider.aclose()

        result = messages[-1]
        assert isinstance(result, Result)
        assert result.text == "Hello there"
        assert result.stop_reason == "end_turn"
        assistants = [m for m in loop.session.messages if m.role == "assistant"]
        assert len(assistants) == 1
        assert assistants[0].content == "Hello there"
