"""Sub-agent process entry point.

Run as ``AGENT_ID=a001 python -m miniharness.agents.worker <prompt>``.  The
worker runs its own agent loop with the sub-agent tool set, logs every event
to ``output.jsonl`` and writes ``result.json`` before exiting.  Exit status is
0 on success and 1 on failure.
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from typing import Any

from miniharness.agents.manager import AGENT_CONTEXT_ENV, AGENT_ID_ENV, AgentManager, is_agent_id
from miniharness.agents.prompts import with_context
from miniharness.core.config import resolve_config
from miniharness.core.engine import SUB_AGENT_MAX_ITERATIONS, create_provider, create_sub_agent
from miniharness.core.loop import AgentLoop
from miniharness.core.storage import utc_now
from miniharness.types.agents import AgentResult, AgentStatus
from miniharness.types.messages import (
    ContextUpdate,
    ErrorEvent,
    IterationStart,
    Message,
    ReasoningMessage,
    Result,
    TextMessage,
    ToolResult,
    ToolUse,
)

logger = logging.getLogger(__name__)

_RESULT_PREVIEW_CHARS = 2000


def event_entry(msg: Message) -> dict[str, Any] | None:
    """Map a loop event to its ``output.jsonl`` record (None = not logged)."""
    match msg:
        case ReasoningMessage(text=text):
            return {"type": "reasoning", "content": text}
        case TextMessage(text=text, is_partial=True):
            return {"type": "content", "content": text}
        case ToolUse(name=name, args=args):
            return {"type": "tool_call_start", "name": name, "args": args}
        case ToolResult(name=name, content=content, is_error=True):
            return {"type": "tool_error", "name": name, "error": content}
        case ToolResult(name=name, content=content):
            return {"type": "tool_call", "name": name, "result": content[:_RESULT_PREVIEW_CHARS]}
        case ErrorEvent(message=message):
            return {"type": "error", "content": message}
        case Result(text=text, stop_reason="end_turn"):
            return {"type": "done", "content": text}
        case _:
            return None


def _final_response(loop: AgentLoop) -> str:
    for msg in reversed(loop.session.messages):
        if msg.role == "assistant" and msg.content:
            return msg.content
    return ""


async def run_worker(
    agent_id: str,
    prompt: str,
    context: str | None,
    manager: AgentManager,
    loop: AgentLoop,
) -> AgentResult:
    """Drive *loop* to completion and persist the outcome."""
    started_at = utc_now()
    steps = 0
    tokens = 0
    error: str | None = None

    try:
        async for msg in loop.run(with_context(prompt, context)):
            match msg:
                case IterationStart(iteration=iteration):
                    steps = iteration
                case ContextUpdate(tokens_used=used):
                    tokens = used
                case ErrorEvent(message=message, kind=kind) if kind != "max_iterations":
                    error = message
                case Result(stop_reason="error"):
                    error = error or "Agent loop failed"
            entry = event_entry(msg)
            if entry is not None:
                manager.append_event(agent_id, entry)
    except Exception as exc:
        logger.exception("Sub-agent %s crashed", agent_id)
        error = f"{type(exc).__name__}: {exc}"
        manager.append_event(agent_id, {"type": "error", "content": error})

    if error is None:
        result = AgentResult(
            agent_id=agent_id,
            status=AgentStatus.COMPLETED,
            final_response=_final_response(loop),
            steps_count=steps,
            tokens_used=tokens,
            started_at=started_at,
            finished_at=utc_now(),
        )
    else:
        result = AgentResult(
            agent_id=agent_id,
            status=AgentStatus.ERROR,
            error=error,
            steps_count=steps,
            tokens_used=tokens,
            started_at=started_at,
            finished_at=utc_now(),
        )
    manager.complete(result)
    return result


async def _amain(agent_id: str, prompt: str, context: str | None) -> AgentResult:
    config = resolve_config(max_iterations=SUB_AGENT_MAX_ITERATIONS)
    manager = AgentManager(config.root or ".", cwd=config.cwd)
    manager.agent_dir(agent_id).mkdir(parents=True, exist_ok=True)
    provider = create_provider(config)
    try:
        loop = create_sub_agent(config, agent_id, provider=provider)
        return await run_worker(agent_id, prompt, context, manager, loop)
    finally:
        await provider.aclose()


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    agent_id = os.environ.get(AGENT_ID_ENV)
    if not agent_id:
        print(f"{AGENT_ID_ENV} env var is required", file=sys.stderr)
        return 1
    if not is_agent_id(agent_id):
        print(f"{AGENT_ID_ENV} must look like a001, got {agent_id!r}", file=sys.stderr)
        return 1
    prompt = " ".join(args)
    if not prompt:
        print(
            f"Usage: {AGENT_ID_ENV}=a001 python -m miniharness.agents.worker <prompt>",
            file=sys.stderr,
        )
        return 1

    logging.basicConfig(level=logging.WARNING)
    result = asyncio.run(_amain(agent_id, prompt, os.environ.get(AGENT_CONTEXT_ENV)))
    return 0 if result.status is AgentStatus.COMPLETED else 1


if __name__ == "__main__":
    sys.exit(main())
