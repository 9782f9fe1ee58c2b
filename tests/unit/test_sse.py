"""Tests for miniharness.providers.sse: the streaming protocol decoder."""

from __future__ import annotations

import asyncio

import pytest

from miniharness.providers.sse import SSEDecoder, ThinkScanner, decode_all, decode_stream
from miniharness.types.providers import (
    ProviderError,
    StreamEventKind,
    StreamTimeoutError,
    ToolCall,
)
from tests.conftest import aiter_chunks, chunk, split_every, sse


def _decode(chunks: list[bytes], **kwargs) -> tuple[SSEDecoder, list]:
    decoder = SSEDecoder(**kwargs)
    events = []
    for c in chunks:
        events.extend(decoder.feed(c))
    events.extend(decoder.close())
    return decoder, events


def _tool_delta(index: int, *, id: str | None = None, name: str | None = None, args: str | None = None):
    fn = {}
    if name is not None:
        fn["name"] = name
    if args is not None:
        fn["arguments"] = args
    tc = {"index": index, "function": fn}
    if id is not None:
        tc["id"] = id
    return chunk({"tool_calls": [tc]})


MIXED_BODY = sse(
    chunk({"role": "assistant", "content": "Let me "}),
    chunk({"content": "look — café ☕."}),
    _tool_delta(0, id="call_a", name="list_dir", args=""),
    _tool_delta(0, args='{"path"'),
    _tool_delta(1, id="call_b", name="read_file", args='{"path": '),
    _tool_delta(0, args=': "src"}'),
    _tool_delta(1, args='"README.md"}'),
    chunk({}, "tool_calls"),
    {"id": "x", "choices": [], "usage": {"prompt_tokens": 12, "completion_tokens": 8, "total_tokens": 20}},
    "[DONE]",
)


class TestChunkBoundaries:
    def test_whole_stream(self):
        decoder, events = _decode([MIXED_BODY], think_tags=False)
        result = decoder.result()
        assert result.text == "Let me look — café ☕."
        assert result.tool_calls == [
            ToolCall(id="call_a", name="list_dir", arguments='{"path": "src"}'),
            ToolCall(id="call_b", name="read_file", arguments='{"path": "README.md"}'),
        ]
        assert result.finish_reason == "tool_calls"
        assert result.usage == {"input_tokens": 12, "output_tokens": 8, "total_tokens": 20}
        assert events[-1].kind is StreamEventKind.MESSAGE_END
        assert events[-1].result == result

    @pytest.mark.parametrize("size", [1, 2, 3, 5, 8, 13, 64, 1000])
    def test_split_invariance(self, size: int):
        whole, _ = _decode([MIXED_BODY], think_tags=False)
        split, _ = _decode(split_every(MIXED_BODY, size), think_tags=False)
        assert split.result().text == whole.result().text
        assert split.result().tool_calls == whole.result().tool_calls

    def test_multibyte_split_is_not_corrupted(self):
        body = sse(chunk({"content": "naïve 日本語 ✓"}))
        decoder, _ = _decode(split_every(body, 1), think_tags=False)
        assert decoder.result().text == "naïve 日本語 ✓"

    def test_crlf_line_endings(self):
        body = MIXED_BODY.replace(b"\n", b"\r\n")
        decoder, _ = _decode(split_every(body, 4), think_tags=False)
        assert decoder.result().text == "Let me look — café ☕."
        assert len(decoder.result().tool_calls) == 2

    def test_trailing_line_without_newline_is_decoded(self):
        body = b'data: {"choices": [{"delta": {"content": "tail"}}]}'
        decoder, _ = _decode([body], think_tags=False)
        assert decoder.result().text == "tail"


class TestToolCallAccumulation:
    def test_order_is_first_appearance(self):
        body = sse(
            _tool_delta(3, id="c3", name="run_shell", args='{"command": '),
            _tool_delta(0, id="c0", name="list_dir", args="{}"),
            _tool_delta(3, args='"ls"}'),
        )
        decoder, _ = _decode([body], think_tags=False)
        calls = decoder.result().tool_calls
        assert [c.id for c in calls] == ["c3", "c0"]
        assert calls[0].arguments == '{"command": "ls"}'

    def test_interleaved_fragments_concatenate_per_index(self):
        fragments = {0: ["{", '"a"', ": 1", "}"], 1: ["{", '"b": ', "2}"], 2: ["[]"]}
        order = [(1, 0), (0, 0), (2, 0), (0, 1), (1, 1), (0, 2), (1, 2), (0, 3)]
        events = [_tool_delta(i, id=f"c{i}", name=f"t{i}") for i in (1, 0, 2)]
        events += [_tool_delta(i, args=fragments[i][n]) for i, n in order]
        decoder, _ = _decode(split_every(sse(*events), 3), think_tags=False)
        calls = decoder.result().tool_calls
        assert [c.id for c in calls] == ["c1", "c0", "c2"]
        assert {c.id: c.arguments for c in calls} == {
            "c0": '{"a": 1}', "c1": '{"b": 2}', "c2": "[]",
        }

    def test_later_non_empty_id_and_name_win(self):
        body = sse(
            _tool_delta(0, id="", name=""),
            _tool_delta(0, id="call_9", name="read_file"),
            _tool_delta(0, id="", args="{}"),
        )
        decoder, _ = _decode([body], think_tags=False)
        assert decoder.result().tool_calls == [ToolCall("call_9", "read_file", "{}")]

    def test_start_event_emitted_once_per_index(self):
        decoder, events = _decode([MIXED_BODY], think_tags=False)
        starts = [e for e in events if e.kind is StreamEventKind.TOOL_CALL_START]
        assert [e.index for e in starts] == [0, 1]
        assert starts[0].tool_name == "list_dir"


class TestLineHandling:
    def test_malformed_and_foreign_lines_are_skipped(self):
        body = (
            b": keep-alive comment\n"
            b"event: ping\n"
            b"data: {not json\n\n"
            b'data: {"choices": [{"delta": {"content": "ok"}}]}\n\n'
            b"data: [DONE]\n\n"
        )
        decoder, _ = _decode([body], think_tags=False)
        assert decoder.result().text == "ok"

    def test_unknown_events_are_ignored(self):
        body = sse({"object": "something.else"}, {"type": "response.created"},
                   chunk({"content": "hi"}))
        decoder, events = _decode([body], think_tags=False)
        assert decoder.result().text == "hi"
        assert all(e.kind is not StreamEventKind.UNKNOWN for e in events)

    def test_error_payload_raises(self):
        body = sse({"error": {"message": "model crashed"}})
        decoder = SSEDecoder()
        with pytest.raises(ProviderError, match="model crashed"):
            decoder.feed(body)

    def test_reasoning_channel(self):
        body = sse(chunk({"reasoning_content": "hmm"}), chunk({"content": "done"}))
        decoder, events = _decode([body], think_tags=False)
        assert decoder.result().reasoning == "hmm"
        assert decoder.result().text == "done"
        kinds = [e.kind for e in events]
        assert kinds.index(StreamEventKind.REASONING) < kinds.index(StreamEventKind.CONTENT)

    def test_feed_after_close_raises(self):
        decoder = SSEDecoder()
        decoder.close()
        with pytest.raises(RuntimeError):
            decoder.feed(b"data: {}\n")


class TestResponsesDialect:
    def test_function_call_and_text(self):
        body = sse(
            {"type": "response.created", "response": {}},
            {"type": "response.reasoning_text.delta", "delta": "plan"},
            {"type": "response.output_text.delta", "delta": "Checking."},
            {"type": "response.output_item.added", "output_index": 1,
             "item": {"type": "function_call", "call_id": "fc_1", "name": "list_dir", "arguments": ""}},
            {"type": "response.function_call_arguments.delta", "output_index": 1, "delta": '{"path":'},
            {"type": "response.function_call_arguments.delta", "output_index": 1, "delta": ' "."}'},
            {"type": "response.function_call_arguments.done", "output_index": 1, "arguments": '{"path": "."}'},
            {"type": "response.completed",
             "response": {"usage": {"input_tokens": 5, "output_tokens": 7, "total_tokens": 12}}},
        )
        decoder, _ = _decode(split_every(body, 9), think_tags=False)
        result = decoder.result()
        assert result.text == "Checking."
        assert result.reasoning == "plan"
        assert result.tool_calls == [ToolCall("fc_1", "list_dir", '{"path": "."}')]
        assert result.usage == {"input_tokens": 5, "output_tokens": 7, "total_tokens": 12}
        assert result.finish_reason == "tool_calls"

    def test_arguments_done_fills_missing_deltas(self):
        body = sse(
            {"type": "response.output_item.added", "output_index": 0,
             "item": {"type": "function_call", "call_id": "fc_2", "name": "mq_read"}},
            {"type": "response.function_call_arguments.done", "output_index": 0, "arguments": "{}"},
        )
        decoder, _ = _decode([body], think_tags=False)
        assert decoder.result().tool_calls == [ToolCall("fc_2", "mq_read", "{}")]

    def test_failed_response_raises(self):
        with pytest.raises(ProviderError):
            SSEDecoder().feed(sse({"type": "response.failed", "response": {}}))


class TestThinkScanner:
    VISIBLE_FIRST = "<think>abc</think>hello <think>x</think>world"

    def _run(self, pieces: list[str], starts_open: bool) -> tuple[str, str]:
        scanner = ThinkScanner(starts_open=starts_open)
        segments = []
        for p in pieces:
            segments.extend(scanner.feed(p))
        segments.extend(scanner.flush())
        reasoning = "".join(t for r, t in segments if r)
        visible = "".join(t for r, t in segments if not r)
        return reasoning, visible

    def test_every_single_split_point(self):
        text = self.VISIBLE_FIRST
        for i in range(len(text) + 1):
            reasoning, visible = self._run([text[:i], text[i:]], starts_open=False)
            assert reasoning == "abcx", i
            assert visible == "hello world", i

    def test_every_character_separately(self):
        reasoning, visible = self._run(list(self.VISIBLE_FIRST), starts_open=False)
        assert (reasoning, visible) == ("abcx", "hello world")

    def test_starts_inside_reasoning(self):
        text = "already thinking</think>answer"
        for i in range(len(text) + 1):
            assert self._run([text[:i], text[i:]], starts_open=True) == (
                "already thinking", "answer",
            )

    def test_unfinished_marker_prefix_is_flushed_as_text(self):
        assert self._run(["a < b <thi"], starts_open=False) == ("", "a < b <thi")

    def test_decoder_routes_inline_think_blocks(self):
        body = sse(chunk({"content": "<thi"}), chunk({"content": "nk>secret</th"}),
                   chunk({"content": "ink>public"}))
        decoder, events = _decode(split_every(body, 5), think_starts_open=False)
        assert decoder.result().reasoning == "secret"
        assert decoder.result().text == "public"
        reasoning_events = [e.text for e in events if e.kind is StreamEventKind.REASONING]
        assert "".join(reasoning_events) == "secret"

    def test_default_starts_in_reasoning(self):
        body = sse(chunk({"content": "pondering</think>Hi!"}))
        decoder, _ = _decode([body])
        assert decoder.result().reasoning == "pondering"
        assert decoder.result().text == "Hi!"

    def test_plain_content_without_markers_is_visible(self):
        body = sse(chunk({"content": "Hello "}), chunk({"content": "there"}), "[DONE]")
        for size in (1, 4, len(body)):
            decoder, events = _decode(split_every(body, size))
            result = decoder.result()
            assert result.text == "Hello there", size
            assert result.reasoning == "", size
            content = [e.text for e in events if e.kind is StreamEventKind.CONTENT]
            assert "".join(content) == "Hello there", size

    def test_reasoning_channel_survives_reclaim(self):
        body = sse(chunk({"reasoning_content": "hmm"}), chunk({"content": "Answer"}))
        decoder, _ = _decode([body])
        assert decoder.result().reasoning == "hmm"
        assert decoder.result().text == "Answer"

    def test_plain_content_keeps_tool_call_text(self):
        body = sse(chunk({"content": "Checking."}), _tool_delta(0, id="c1", name="list_dir", args="{}"))
        result = _decode([body])[0].result()
        assert result.text == "Checking."
        assert [c.name for c in result.tool_calls] == ["list_dir"]


class TestAsyncDecoding:
    @pytest.mark.asyncio
    async def test_decode_all(self):
        result = await decode_all(aiter_chunks(split_every(MIXED_BODY, 11)), think_tags=False)
        assert result.text == "Let me look — café ☕."
        assert len(result.tool_calls) == 2

    @pytest.mark.asyncio
    async def test_stalled_stream_times_out(self):
        async def stalled():
            yield sse(chunk({"content": "partial"}))
            await asyncio.sleep(10)
            yield b""

        with pytest.raises(StreamTimeoutError):
            async for _ in decode_stream(stalled(), read_timeout=0.05):
                pass

    @pytest.mark.asyncio
    async def test_last_event_is_message_end(self):
        events = [e async for e in decode_stream(aiter_chunks([MIXED_BODY]), SSEDecoder(think_tags=False))]
        assert events[-1].kind is StreamEventKind.MESSAGE_END
        assert events[-1].result is not None
