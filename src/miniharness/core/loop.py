"""The core agent loop: orchestrates provider + tools."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

from miniharness.core.session import Session
from miniharness.observability.metrics import (
    record_context_utilization,
    record_tokens,
    record_tool_call,
)
from miniharness.tools.base import error_payload
from miniharness.tools.manager import ToolRegistry
from miniharness.types.agents import COORDINATOR_ID
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
    StreamEventKind,
    StreamResult,
    StreamTimeoutError,
    ToolCall,
)
from miniharness.types.tools import ToolContext, ToolResultData

logger = logging.getLogger(__name__)


class AgentLoop:
    """The core agent loop.

    Orchestrates: prompt -> model -> tool calls -> model -> ... -> final response.

    ``run()`` is an async generator; iterating it is the only way to observe
    the conversation.  It never raises for transport failures, stream
    timeouts or the iteration ceiling: those end the run with an
    :class:`ErrorEvent` followed by a :class:`Result`.
    """

    def __init__(
        self,
        provider: ProviderAdapter,
        registry: ToolRegistry,
        config: RunConfig,
        session: Session,
        *,
        agent_id: str = COORDINATOR_ID,
    ) -> None:
        self._provider = provider
        self._registry = registry
        self._config = config
        self._session = session
        self._agent_id = agent_id
        self._cwd = Path(config.cwd or ".").resolve()
        self._tool_defs = registry.get_definitions()

    @property
    def session(self) -> Session:
        return self._session

    async def run(self, user_message: str) -> AsyncIterator[Message]:
        """Run the agent loop for a prompt. Yields Message events."""
        yield SystemEvent(type="session_start", data={"session_id": self._session.session_id})

        tool_call_count = 0
        for call in self._unanswered_calls():
            logger.info("Answering dangling tool call %s (%s)", call.id, call.name)
            tool_call_count += 1
            async for msg in self._dispatch(call):
                yield msg

        self._session.add_message(ChatMessage(role="user", content=user_message))

        iteration = 0
        total_tokens = 0
        final_text = ""
        stop_reason = "end_turn"
        max_iterations = self._config.max_iterations

        while True:
            if iteration >= max_iterations:
                yield ErrorEvent(
                    message=f"Max iterations ({max_iterations}) reached",
                    kind="max_iterations",
                )
                stop_reason = "max_iterations"
                break
            iteration += 1
            yield IterationStart(iteration=iteration)

            result: StreamResult | None = None
            try:
                async for event in self._provider.chat_completion_stream(
                    messages=self._session.messages,
                    tools=self._tool_defs,
                    max_tokens=self._config.max_tokens,
                ):
                    match event.kind:
                        case StreamEventKind.CONTENT:
                            yield TextMessage(text=event.text or "", is_partial=True)
                        case StreamEventKind.REASONING:
                            yield ReasoningMessage(text=event.text or "")
                        case StreamEventKind.TOOL_CALL_START:
                            yield ToolCallStarted(
                                index=event.index or 0,
                                id=event.tool_call_id or "",
                                name=event.tool_name or "",
                            )
                        case StreamEventKind.MESSAGE_END:
                            result = event.result
                        case (
                            StreamEventKind.TOOL_CALL_DELTA
                            | StreamEventKind.USAGE
                            | StreamEventKind.FINISH
                            | StreamEventKind.UNKNOWN
                        ):
                            pass
            except StreamTimeoutError as exc:
                logger.warning("Stream timeout: %s", exc)
                yield ErrorEvent(message=str(exc), kind="timeout")
                stop_reason = "error"
                break
            except ProviderError as exc:
                logger.warning("Provider error: %s", exc)
                yield ErrorEvent(message=str(exc), kind="transport")
                stop_reason = "error"
                break

            if result is None:
                yield ErrorEvent(message="Stream ended without a final message", kind="transport")
                stop_reason = "error"
                break

            turn_tokens = self._account_usage(result)
            total_tokens += turn_tokens
            self._session.record_turn(tokens=turn_tokens)
            if result.usage:
                yield ContextUpdate(
                    model=self._provider.model_id,
                    tokens_used=turn_tokens,
                    max_tokens=self._config.context_window,
                )

            if result.text:
                yield TextMessage(text=result.text, is_partial=False)
                final_text = result.text

            if not result.tool_calls:
                if result.text:
                    self._session.add_message(
                        ChatMessage(role="assistant", content=result.text),
                    )
                stop_reason = "end_turn"
                break

            for n, call in enumerate(result.tool_calls):
                if not call.id:
                    call.id = f"call_{iteration}_{n}"
            self._session.add_message(ChatMessage(
                role="assistant",
                content=result.text or None,
                tool_calls=list(result.tool_calls),
            ))
            stop_reason = "tool_use"

            for call in result.tool_calls:
                tool_call_count += 1
                async for msg in self._dispatch(call):
                    yield msg

        yield Result(
            text=final_text,
            session_id=self._session.session_id,
            turns=iteration,
            tool_calls=tool_call_count,
            total_tokens=total_tokens,
            stop_reason=stop_reason,
        )

    # ------------------------------------------------------------------
    # Tool dispatch
    # ------------------------------------------------------------------

    async def _dispatch(self, call: ToolCall) -> AsyncIterator[Message]:
        """Execute one tool call and append exactly one ``tool`` message."""
        args = _parse_arguments(call.arguments)
        if args is None:
            result = ToolResultData(
                content=error_payload(f"Failed to parse arguments: {call.arguments}"),
                is_error=True,
            )
        else:
            yield ToolUse(id=call.id, name=call.name, args=args)
            ctx = ToolContext(
                cwd=self._cwd,
                agent_id=self._agent_id,
                session_id=self._session.session_id,
            )
            result = await self._registry.execute(call.name, args, ctx)

        record_tool_call(call.name, is_error=result.is_error, agent=self._agent_id)
        self._session.add_message(
            ChatMessage(role="tool", content=result.content, tool_call_id=call.id),
        )
        yield ToolResult(
            tool_use_id=call.id,
            content=result.content,
            name=call.name,
            is_error=result.is_error,
            display=result.display,
        )

    def _unanswered_calls(self) -> list[ToolCall]:
        """Tool calls of the last assistant message that have no ``tool`` reply."""
        messages = self._session.messages
        for i in range(len(messages) - 1, -1, -1):
            msg = messages[i]
            if msg.role == "tool":
                continue
            if msg.role == "assistant" and msg.tool_calls:
                answered = {m.tool_call_id for m in messages[i + 1:]}
                return [c for c in msg.tool_calls if c.id not in answered]
            return []
        return []

    # ------------------------------------------------------------------
    # Accounting
    # ------------------------------------------------------------------

    def _account_usage(self, result: StreamResult) -> int:
        usage = result.usage
        if not usage:
            return 0
        input_tokens = usage.get("input_tokens", 0)
        output_tokens = usage.get("output_tokens", 0)
        total = usage.get("total_tokens") or input_tokens + output_tokens
        model = self._provider.model_id
        record_tokens(input_tokens, output_tokens, agent=self._agent_id, model=model)
        if self._config.context_window > 0:
            record_context_utilization(
                100.0 * total / self._config.context_window, agent=self._agent_id, model=model,
            )
        return total


def _parse_arguments(raw: str) -> dict[str, Any] | None:
    """Parse accumulated tool arguments; empty means no arguments."""
    if not raw or not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None
