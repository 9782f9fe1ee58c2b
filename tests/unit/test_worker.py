"""Tests for the sub-agent worker (run in-process with a mock provider)."""

from __future__ import annotations

import pytest

from miniharness.agents.manager import AgentManager
from miniharness.agents.worker import event_entry, main, run_worker
from miniharness.core.engine import create_sub_agent
from miniharness.core.storage import utc_now
from miniharness.mq.queue import MessageQueue
from miniharness.types.agents import AgentRecord, AgentStatus
from miniharness.types.messages import (
    ErrorEvent,
    IterationStart,
    ReasoningMessage,
    Result,
    TextMessage,
    ToolResult,
    ToolUse,
)
from tests.conftest import FailingMockProvider, MockProvider, MockTurn


@pytest.fixture
def manager(state_root) -> AgentManager:
    manager = AgentManager(state_root)
    manager._write_meta(AgentRecord(id="a001", prompt="say hi", started_at=utc_now()))
    return manager


class TestEventEntry:
    def test_mapping(self):
        assert event_entry(ReasoningMessage("hmm")) == {"type": "reasoning", "content": "hmm"}
        assert event_entry(TextMessage("he")) == {"type": "content", "content": "he"}
        assert event_entry(TextMessage("hello", is_partial=False)) is None
        assert event_entry(ToolUse("c1", "list_dir", {"path": "."})) == {
            "type": "tool_call_start", "name": "list_dir", "args": {"path": "."},
        }
        assert event_entry(ToolResult("c1", "x" * 5000, name="read_file")) == {
            "type": "tool_call", "name": "read_file", "result": "x" * 2000,
        }
        assert event_entry(ToolResult("c1", '{"error": "no"}', name="read_file", is_error=True)) == {
            "type": "tool_error", "name": "read_file", "error": '{"error": "no"}',
        }
        assert event_entry(ErrorEvent("boom")) == {"type": "error", "content": "boom"}
        assert event_entry(Result(text="bye", session_id="s")) == {"type": "done", "content": "bye"}
        assert event_entry(Result(text="", session_id="s", stop_reason="error")) is None
        assert event_entry(IterationStart(1)) is None


class TestRunWorker:
    @pytest.mark.asyncio
    async def test_successful_run(self, run_config, manager, state_root):
        provider = MockProvider(turns=[
            MockTurn(tool_calls=[{"id": "c1", "name": "mq_send", "args": {"to": "main", "body": "hi main"}}]),
            MockTurn(text="All done.", usage={"prompt_tokens": 380, "completion_tokens": 40, "total_tokens": 420}),
        ])
        loop = create_sub_agent(run_config, "a001", provider=provider)

        result = await run_worker("a001", "say hi", "you are helping with greetings", manager, loop)

        assert result.status is AgentStatus.COMPLETED
        assert result.final_response == "All done."
        assert result.steps_count == 2
        # Each round already counts the whole prompt, so the last round is the footprint
        assert result.tokens_used == 420
        assert result.error is None

        first_user = provider.requests[0][1]
        assert first_user.content.startswith("[Context from parent agent]\nyou are helping")
        assert first_user.content.endswith("[Task]\nsay hi")

        view = manager.get_result("a001")
        assert view["meta"]["status"] == "completed"
        assert view["result"]["final_response"] == "All done."
        types = [e["type"] for e in view["output_log"]]
        assert types[0] == "tool_call_start"
        assert "tool_call" in types
        assert types[-1] == "done"

        (msg,) = MessageQueue(state_root).read_since("main")
        assert msg.sender == "a001"
        assert msg.body == "hi main"

    @pytest.mark.asyncio
    async def test_transport_failure_is_error(self, run_config, manager):
        provider = FailingMockProvider(turns=[], fail_count=1)
        loop = create_sub_agent(run_config, "a001", provider=provider)

        result = await run_worker("a001", "say hi", None, manager, loop)

        assert result.status is AgentStatus.ERROR
        assert "upstream exploded" in result.error
        assert manager.check("a001").status is AgentStatus.ERROR
        types = [e["type"] for e in manager.get_result("a001")["output_log"]]
        assert types == ["error"]

    @pytest.mark.asyncio
    async def test_iteration_ceiling_still_completes(self, run_config, manager):
        run_config.max_iterations = 1
        provider = MockProvider(turns=[
            MockTurn(text="Partial findings.", tool_calls=[{"id": "c1", "name": "list_dir", "args": {}}]),
            MockTurn(text="never reached"),
        ])
        loop = create_sub_agent(run_config, "a001", provider=provider)

        result = await run_worker("a001", "explore", None, manager, loop)

        assert result.status is AgentStatus.COMPLETED
        assert result.final_response == "Partial findings."

    def test_main_requires_agent_id(self, monkeypatch, capsys):
        monkeypatch.delenv("AGENT_ID", raising=False)
        assert main(["do", "things"]) == 1
        assert "AGENT_ID" in capsys.readouterr().err

    def test_main_rejects_malformed_agent_id(self, monkeypatch, capsys):
        monkeypatch.setenv("AGENT_ID", "../escape")
        assert main(["do", "things"]) == 1
        assert "must look like a001" in capsys.readouterr().err

    def test_main_requires_prompt(self, monkeypatch, capsys):
        monkeypatch.setenv("AGENT_ID", "a001")
        assert main([]) == 1
        assert "Usage" in capsys.readouterr().err
