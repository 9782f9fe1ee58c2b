"""Incremental server-sent-event decoder for streaming model responses.

The decoder is transport-agnostic: feed it raw bytes in whatever chunk sizes
the network delivers and it yields :class:`StreamEvent` objects.  Two wire
dialects are understood, distinguished per event:

- Chat Completions chunks (``choices[0].delta`` with ``content``,
  ``reasoning_content`` and ``tool_calls``), and
- Responses-API events, which carry a ``type`` discriminator such as
  ``response.output_text.delta``.

Tool-call fragments are accumulated by their stream-local index and returned
in first-seen order once the stream ends.  Arguments are never parsed here.

Some backends interleave ``<think>...</think>`` blocks inside the plain
content channel.  :class:`ThinkScanner` splits those out into reasoning
chunks, even when a marker is cut in half by a chunk boundary.
"""

from __future__ import annotations

import asyncio
import codecs
import json
import logging
from collections.abc import AsyncIterable, AsyncIterator
from typing import Any

from miniharness.types.providers import (
    ProviderError,
    StreamEvent,
    StreamEventKind,
    StreamResult,
    StreamTimeoutError,
    ToolCall,
)

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"
THINK_OPEN = "<think>"
THINK_CLOSE = "</think>"
DEFAULT_READ_TIMEOUT = 300.0


def _partial_suffix(text: str, marker: str) -> int:
    """Length of the longest suffix of *text* that is a proper prefix of *marker*."""
    for n in range(min(len(text), len(marker) - 1), 0, -1):
        if text.endswith(marker[:n]):
            return n
    return 0


class ThinkScanner:
    """Two-state scanner routing content text to reasoning or visible output.

    ``feed`` returns ``(is_reasoning, text)`` segments.  Text that might be
    the start of a marker is held back until the next chunk settles it.
    Markers themselves are never emitted.
    """

    def __init__(
        self,
        open_tag: str = THINK_OPEN,
        close_tag: str = THINK_CLOSE,
        *,
        starts_open: bool = True,
    ) -> None:
        self._open = open_tag
        self._close = close_tag
        self._in_reasoning = starts_open
        self._pending = ""
        self._saw_marker = False

    @property
    def in_reasoning(self) -> bool:
        return self._in_reasoning

    @property
    def saw_marker(self) -> bool:
        """Whether either marker has appeared in the stream so far."""
        return self._saw_marker

    def feed(self, text: str) -> list[tuple[bool, str]]:
        self._pending += text
        segments: list[tuple[bool, str]] = []

        while True:
            open_at = self._pending.find(self._open)
            close_at = self._pending.find(self._close)
            hits = [(i, tag) for i, tag in ((open_at, self._open), (close_at, self._close)) if i >= 0]
            if not hits:
                break
            idx, tag = min(hits)
            if idx:
                segments.append((self._in_reasoning, self._pending[:idx]))
            self._pending = self._pending[idx + len(tag):]
            self._in_reasoning = tag == self._open
            self._saw_marker = True

        keep = max(
            _partial_suffix(self._pending, self._open),
            _partial_suffix(self._pending, self._close),
        )
        ready = self._pending[: len(self._pending) - keep]
        if ready:
            segments.append((self._in_reasoning, ready))
        self._pending = self._pending[len(ready):]
        return segments

    def flush(self) -> list[tuple[bool, str]]:
        """Emit whatever is held back; called once at end of stream."""
        if not self._pending:
            return []
        out = [(self._in_reasoning, self._pending)]
        self._pending = ""
        return out


def _normalize_usage(raw: Any) -> dict[str, int] | None:
    if not isinstance(raw, dict):
        return None
    input_tokens = raw.get("prompt_tokens", raw.get("input_tokens", 0)) or 0
    output_tokens = raw.get("completion_tokens", raw.get("output_tokens", 0)) or 0
    total = raw.get("total_tokens") or (input_tokens + output_tokens)
    return {
        "input_tokens": int(input_tokens),
        "output_tokens": int(output_tokens),
        "total_tokens": int(total),
    }


class SSEDecoder:
    """Sans-IO decoder: bytes in, :class:`StreamEvent` objects out.

    Usage::

        decoder = SSEDecoder()
        for chunk in chunks:
            for event in decoder.feed(chunk):
                ...
        events = decoder.close()   # last one is MESSAGE_END
        result = decoder.result()
    """

    def __init__(self, *, think_tags: bool = True, think_starts_open: bool = True) -> None:
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._calls: dict[int, ToolCall] = {}
        self._order: list[int] = []
        self._text: list[str] = []
        # (from_content, text); content-derived pieces can be reclaimed on close
        self._reasoning: list[tuple[bool, str]] = []
        self._usage: dict[str, int] | None = None
        self._finish_reason: str | None = None
        self._think = ThinkScanner(starts_open=think_starts_open) if think_tags else None
        self._closed = False

    # ------------------------------------------------------------------
    # Feeding
    # ------------------------------------------------------------------

    def feed(self, data: bytes | str) -> list[StreamEvent]:
        """Consume one transport chunk and return the events it completes."""
        if self._closed:
            raise RuntimeError("SSEDecoder.feed() called after close()")
        self._buffer += self._utf8.decode(data) if isinstance(data, bytes) else data
        *lines, self._buffer = self._buffer.split("\n")
        events: list[StreamEvent] = []
        for line in lines:
            events.extend(self._handle_line(line))
        return events

    def close(self) -> list[StreamEvent]:
        """Finish the stream: flush buffers and emit ``MESSAGE_END``."""
        if self._closed:
            return []
        self._buffer += self._utf8.decode(b"", final=True)
        events: list[StreamEvent] = []
        if self._buffer:
            events.extend(self._handle_line(self._buffer))
            self._buffer = ""
        if self._think is not None:
            events.extend(self._route(self._think.flush(), from_content=True))
            if not self._think.saw_marker:
                events.extend(self._reclaim_content())
        self._closed = True
        events.append(StreamEvent(kind=StreamEventKind.MESSAGE_END, result=self.result()))
        return events

    def result(self) -> StreamResult:
        return StreamResult(
            text="".join(self._text),
            reasoning="".join(text for _, text in self._reasoning),
            tool_calls=[self._calls[i] for i in self._order],
            usage=self._usage,
            finish_reason=self._finish_reason,
        )

    # ------------------------------------------------------------------
    # Line handling
    # ------------------------------------------------------------------

    def _handle_line(self, line: str) -> list[StreamEvent]:
        line = line.rstrip("\r")
        if not line.startswith(DATA_PREFIX):
            return []
        payload = line[len(DATA_PREFIX):].lstrip(" ")
        if not payload or payload == DONE_SENTINEL:
            return []
        try:
            event = json.loads(payload)
        except json.JSONDecodeError:
            logger.debug("Skipping unparseable SSE line: %.200s", payload)
            return []
        if not isinstance(event, dict):
            return []

        events: list[StreamEvent] = []
        for part in self._classify(event):
            events.extend(self._apply(part))
        return events

    def _classify(self, event: dict[str, Any]) -> list[StreamEvent]:
        """Translate one wire event into raw (unaccumulated) parts."""
        kind = event.get("type")
        if isinstance(kind, str):
            return self._classify_responses(kind, event)
        return self._classify_chat(event)

    def _classify_chat(self, event: dict[str, Any]) -> list[StreamEvent]:
        if "error" in event and not event.get("choices"):
            raise ProviderError(f"Stream error: {event['error']}", body=json.dumps(event))

        parts: list[StreamEvent] = []
        choices = event.get("choices") or []
        choice = choices[0] if choices and isinstance(choices[0], dict) else None

        if choice is not None:
            delta = choice.get("delta") or {}
            reasoning = delta.get("reasoning_content") or delta.get("reasoning")
            if isinstance(reasoning, str) and reasoning:
                parts.append(StreamEvent(kind=StreamEventKind.REASONING, text=reasoning))
            content = delta.get("content")
            if isinstance(content, str) and content:
                parts.append(StreamEvent(kind=StreamEventKind.CONTENT, text=content))
            for tc in delta.get("tool_calls") or []:
                fn = tc.get("function") or {}
                parts.append(StreamEvent(
                    kind=StreamEventKind.TOOL_CALL_DELTA,
                    index=tc.get("index", 0),
                    tool_call_id=tc.get("id"),
                    tool_name=fn.get("name"),
                    tool_args_json=fn.get("arguments"),
                ))
            if choice.get("finish_reason"):
                parts.append(StreamEvent(
                    kind=StreamEventKind.FINISH, finish_reason=choice["finish_reason"],
                ))

        usage = _normalize_usage(event.get("usage"))
        if usage is not None:
            parts.append(StreamEvent(kind=StreamEventKind.USAGE, usage=usage))

        if choice is None and usage is None:
            parts.append(StreamEvent(kind=StreamEventKind.UNKNOWN))
        return parts

    def _classify_responses(self, kind: str, event: dict[str, Any]) -> list[StreamEvent]:
        match kind:
            case "response.output_text.delta":
                return [StreamEvent(kind=StreamEventKind.CONTENT, text=event.get("delta", ""))]
            case "response.reasoning_text.delta" | "response.reasoning_summary_text.delta":
                return [StreamEvent(kind=StreamEventKind.REASONING, text=event.get("delta", ""))]
            case "response.output_item.added":
                item = event.get("item") or {}
                if item.get("type") != "function_call":
                    return []
                return [StreamEvent(
                    kind=StreamEventKind.TOOL_CALL_DELTA,
                    index=event.get("output_index", 0),
                    tool_call_id=item.get("call_id") or item.get("id"),
                    tool_name=item.get("name"),
                    tool_args_json=item.get("arguments") or None,
                )]
            case "response.function_call_arguments.delta":
                return [StreamEvent(
                    kind=StreamEventKind.TOOL_CALL_DELTA,
                    index=event.get("output_index", 0),
                    tool_args_json=event.get("delta", ""),
                )]
            case "response.function_call_arguments.done":
                # Only fills in arguments that never arrived as deltas.
                index = event.get("output_index", 0)
                existing = self._calls.get(index)
                if existing is not None and existing.arguments:
                    return []
                return [StreamEvent(
                    kind=StreamEventKind.TOOL_CALL_DELTA,
                    index=index,
                    tool_args_json=event.get("arguments", ""),
                )]
            case "response.completed" | "response.incomplete":
                response = event.get("response") or {}
                parts: list[StreamEvent] = []
                usage = _normalize_usage(response.get("usage"))
                if usage is not None:
                    parts.append(StreamEvent(kind=StreamEventKind.USAGE, usage=usage))
                if kind == "response.incomplete":
                    reason = "length"
                else:
                    reason = "tool_calls" if self._calls else "stop"
                parts.append(StreamEvent(kind=StreamEventKind.FINISH, finish_reason=reason))
                return parts
            case "response.failed" | "error":
                raise ProviderError(f"Stream error: {kind}", body=json.dumps(event))
            case _:
                return [StreamEvent(kind=StreamEventKind.UNKNOWN, text=kind)]

    # ------------------------------------------------------------------
    # Accumulation
    # ------------------------------------------------------------------

    def _apply(self, part: StreamEvent) -> list[StreamEvent]:
        match part.kind:
            case StreamEventKind.CONTENT:
                text = part.text or ""
                if self._think is None:
                    return self._route([(False, text)])
                return self._route(self._think.feed(text), from_content=True)

            case StreamEventKind.REASONING:
                return self._route([(True, part.text or "")])

            case StreamEventKind.TOOL_CALL_DELTA:
                index = part.index if part.index is not None else 0
                events: list[StreamEvent] = []
                call = self._calls.get(index)
                is_new = call is None
                if call is None:
                    call = ToolCall()
                    self._calls[index] = call
                    self._order.append(index)
                if part.tool_call_id:
                    call.id = part.tool_call_id
                if part.tool_name:
                    call.name = part.tool_name
                if part.tool_args_json is not None:
                    call.arguments += part.tool_args_json
                if is_new:
                    events.append(StreamEvent(
                        kind=StreamEventKind.TOOL_CALL_START,
                        index=index,
                        tool_call_id=call.id,
                        tool_name=call.name,
                    ))
                events.append(part)
                return events

            case StreamEventKind.USAGE:
                self._usage = part.usage
                return [part]

            case StreamEventKind.FINISH:
                self._finish_reason = part.finish_reason
                if part.finish_reason == "length":
                    logger.warning("Model hit max_tokens limit; output may be truncated")
                return [part]

            case StreamEventKind.UNKNOWN:
                logger.debug("Ignoring unknown stream event %r", part.text)
                return []

            case StreamEventKind.TOOL_CALL_START | StreamEventKind.MESSAGE_END:
                return []

    def _route(
        self, segments: list[tuple[bool, str]], *, from_content: bool = False,
    ) -> list[StreamEvent]:
        events: list[StreamEvent] = []
        for is_reasoning, text in segments:
            if not text:
                continue
            if is_reasoning:
                self._reasoning.append((from_content, text))
                events.append(StreamEvent(kind=StreamEventKind.REASONING, text=text))
            else:
                self._text.append(text)
                events.append(StreamEvent(kind=StreamEventKind.CONTENT, text=text))
        return events

    def _reclaim_content(self) -> list[StreamEvent]:
        """Treat content held as reasoning as visible text.

        A stream that starts inside reasoning but never sends a marker is a
        backend without inline thinking at all.
        """
        reclaimed = "".join(text for from_content, text in self._reasoning if from_content)
        if not reclaimed:
            return []
        self._reasoning = [(False, text) for from_content, text in self._reasoning if not from_content]
        self._text.insert(0, reclaimed)
        return [StreamEvent(kind=StreamEventKind.CONTENT, text=reclaimed)]


async def decode_stream(
    chunks: AsyncIterable[bytes],
    decoder: SSEDecoder | None = None,
    *,
    read_timeout: float = DEFAULT_READ_TIMEOUT,
) -> AsyncIterator[StreamEvent]:
    """Decode an async byte stream, enforcing a per-read timeout.

    Raises :class:`StreamTimeoutError` if no chunk arrives within
    *read_timeout* seconds.  The final event is ``MESSAGE_END``.
    """
    decoder = decoder or SSEDecoder()
    iterator = aiter(chunks)
    while True:
        try:
            async with asyncio.timeout(read_timeout):
                chunk = await anext(iterator)
        except StopAsyncIteration:
            break
        except TimeoutError as exc:
            raise StreamTimeoutError(
                f"Stream read timed out after {read_timeout:g}s",
            ) from exc
        for event in decoder.feed(chunk):
            yield event
    for event in decoder.close():
        yield event


async def decode_all(
    chunks: AsyncIterable[bytes],
    *,
    read_timeout: float = DEFAULT_READ_TIMEOUT,
    think_tags: bool = True,
    think_starts_open: bool = True,
) -> StreamResult:
    """Drain *chunks* and return the assembled :class:`StreamResult`."""
    decoder = SSEDecoder(think_tags=think_tags, think_starts_open=think_starts_open)
    async for _event in decode_stream(chunks, decoder, read_timeout=read_timeout):
        pass
    return decoder.result()
