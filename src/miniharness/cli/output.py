"""Basic text output for non-interactive mode."""

from __future__ import annotations

import sys

from miniharness.types.messages import (
    ErrorEvent,
    Message,
    ReasoningMessage,
    Result,
    SystemEvent,
    TextMessage,
    ToolResult,
    ToolUse,
)


def print_message(msg: Message) -> None:
    """Print an event to stdout/stderr in basic text mode."""
    match msg:
        case TextMessage(text=t, is_partial=True):
            sys.stdout.write(t)
            sys.stdout.flush()
        case TextMessage(is_partial=False):
            sys.stdout.write("\n")
        case ReasoningMessage():
            pass  # Reasoning is only shown in rich mode
        case ToolUse(name=name, args=args):
            tool_display = f"\n[Tool: {name}]"
            if name == "run_shell" and "command" in args:
                tool_display += f" $ {args['command']}"
            elif name in ("read_file", "write_file", "list_dir") and "path" in args:
                tool_display += f" {args['path']}"
            elif name == "spawn_agent" and "prompt" in args:
                tool_display += f" {str(args['prompt'])[:60]}"
            print(tool_display, file=sys.stderr)
        case ToolResult(content=content, is_error=is_error):
            if is_error:
                print(f"[Error] {content[:200]}", file=sys.stderr)
            elif len(content) > 200:
                print(f"[Result] {content[:200]}...", file=sys.stderr)
        case ErrorEvent(message=message, kind=kind):
            print(f"\n[{kind}] {message}", file=sys.stderr)
        case Result(session_id=sid, turns=turns, tool_calls=tc, total_tokens=tokens):
            print(file=sys.stderr)
            parts = [f"Session: {sid}", f"Rounds: {turns}", f"Tools: {tc}"]
            if tokens:
                parts.append(f"Tokens: {tokens:,}")
            print(" | ".join(parts), file=sys.stderr)
        case SystemEvent(type="heartbeat", data=data):
            print(f"\n{data.get('text', '')}", file=sys.stderr)
        case SystemEvent(type="mq_message", data=data):
            print(f"[mq] {data.get('from')} -> {data.get('to')}: {data.get('body')}", file=sys.stderr)
        case _:
            pass  # Suppress lifecycle events in basic output
