"""Rich-powered terminal output."""

from __future__ import annotations

import json
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

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

# ── Palette ──────────────────────────────────────────────────────────────────

TOOL_ICONS: dict[str, str] = {
    "run_shell": "█",         # █  shell commands
    "read_file": "▸",         # ▸  file access
    "write_file": "▸",
    "list_dir": "○",          # ○  listing
    "spawn_agent": "◆",       # ◆  sub-agents
    "check_agents": "◆",
    "get_agent_result": "◆",
    "mq_send": "✉",           # ✉  messaging
    "mq_read": "✉",
}
DEFAULT_ICON = "▸"

STYLE_TOOL_NAME = "bold #a78bfa"
STYLE_TOOL_DETAIL = "#7c7c8a"
STYLE_TOOL_SHELL_CMD = "bold #e2e8f0"
STYLE_REASONING = "dim italic #7c7c8a"
STYLE_ERROR_LABEL = "bold #f87171"
STYLE_ERROR_BODY = "#f87171"
STYLE_RESULT_DIM = "dim #7c7c8a"
STYLE_RESULT_LABEL = "bold #94a3b8"
STYLE_RESULT_VALUE = "#e2e8f0"
STYLE_HEARTBEAT = "#60a5fa"
STYLE_CONTEXT = "dim #94a3b8"


class RichPrinter:
    """Rich-based event printer for terminal output."""

    def __init__(self, console: Console | None = None, *, show_reasoning: bool = True) -> None:
        self._console = console or Console(stderr=True)
        self._stdout = Console()  # For assistant text output
        self._show_reasoning = show_reasoning
        self._partial_buffer = ""
        self._in_reasoning = False

    def print_message(self, msg: Message) -> None:
        """Print an event with Rich formatting."""
        match msg:
            case ReasoningMessage(text=t):
                if self._show_reasoning:
                    self._in_reasoning = True
                    self._console.print(Text(t, style=STYLE_REASONING), end="")

            case TextMessage(text=t, is_partial=True):
                self._end_reasoning()
                self._partial_buffer += t
                self._stdout.print(t, end="", highlight=False, markup=False)

            case TextMessage(is_partial=False):
                self._end_reasoning()
                if self._partial_buffer:
                    self._stdout.print()
                    self._partial_buffer = ""

            case ToolCallStarted() | IterationStart():
                pass

            case ToolUse(name=name, args=args):
                self._end_reasoning()
                self._print_tool_use(name, args)

            case ToolResult(content=content, is_error=is_error, display=display):
                self._print_tool_result(content, is_error, display)

            case ContextUpdate(tokens_used=used, max_tokens=limit):
                if limit:
                    self._console.print(Text(
                        f"  context {used:,}/{limit:,} ({100 * used / limit:.1f}%)",
                        style=STYLE_CONTEXT,
                    ))

            case ErrorEvent(message=message, kind=kind):
                self._end_reasoning()
                label = Text(f"  ✗ {kind}: ", style=STYLE_ERROR_LABEL)
                label.append(message, style=STYLE_ERROR_BODY)
                self._console.print(label)

            case Result() as r:
                self._end_reasoning()
                self._print_result(r)

            case SystemEvent(type="heartbeat", data=data):
                self._console.print(Text(f"\n{data.get('text', '')}", style=STYLE_HEARTBEAT))

            case SystemEvent(type="mq_message", data=data):
                self._console.print(Text(
                    f"  ✉ {data.get('from')} → {data.get('to')}: {data.get('body', '')[:120]}",
                    style=STYLE_TOOL_DETAIL,
                ))

            case SystemEvent():
                pass

    def _end_reasoning(self) -> None:
        if self._in_reasoning:
            self._console.print()
            self._in_reasoning = False

    # ── Tool Use ─────────────────────────────────────────────────────────────

    def _print_tool_use(self, name: str, args: dict[str, Any]) -> None:
        icon = TOOL_ICONS.get(name, DEFAULT_ICON)
        line = Text()
        line.append(f"  {icon} ", style=STYLE_TOOL_NAME)
        line.append(name, style=STYLE_TOOL_NAME)

        detail = self._tool_detail(name, args)
        if detail:
            line.append("  ", style="default")
            style = STYLE_TOOL_SHELL_CMD if name == "run_shell" else STYLE_TOOL_DETAIL
            line.append(detail, style=style)

        self._console.print(line)

    @staticmethod
    def _tool_detail(name: str, args: dict[str, Any]) -> str:
        if name == "run_shell" and "command" in args:
            cmd = str(args["command"])
            return f"$ {cmd}" if len(cmd) <= 120 else f"$ {cmd[:117]}..."
        if name in ("read_file", "write_file", "list_dir"):
            return str(args.get("path", "."))
        if name == "spawn_agent":
            prompt = str(args.get("prompt", ""))
            return prompt[:60] + ("…" if len(prompt) > 60 else "")
        if name == "get_agent_result":
            return str(args.get("agent_id", ""))
        if name == "mq_send":
            return f"→ {args.get('to', '')}"
        if name in ("read_task", "update_task"):
            return str(args.get("id", ""))
        if name == "move_task":
            return f"{args.get('id', '')} → {args.get('to', '')}"
        if name == "create_task":
            return str(args.get("title", ""))
        return ""

    # ── Tool Result ──────────────────────────────────────────────────────────

    def _print_tool_result(self, content: str, is_error: bool, display: str | None) -> None:
        """Errors are prominent, success is quiet."""
        show = display or content
        if is_error:
            try:
                show = json.loads(show).get("error", show)
            except (ValueError, AttributeError):
                pass
            label = Text("    ✗ ", style=STYLE_ERROR_LABEL)
            label.append(str(show)[:300], style=STYLE_ERROR_BODY)
            self._console.print(label)
        elif len(show) > 300:
            self._console.print(Text(f"    {show[:300]}…", style=STYLE_RESULT_DIM))

    # ── Final Result ─────────────────────────────────────────────────────────

    def _print_result(self, result: Result) -> None:
        self._console.print()

        tbl = Table(
            show_header=False,
            show_edge=False,
            show_lines=False,
            padding=(0, 1),
            expand=False,
        )
        tbl.add_column(style=STYLE_RESULT_LABEL, justify="right", no_wrap=True)
        tbl.add_column(style=STYLE_RESULT_VALUE, no_wrap=True)

        tbl.add_row("Session", str(result.session_id))
        tbl.add_row("Rounds", str(result.turns))
        tbl.add_row("Tool calls", str(result.tool_calls))
        if result.total_tokens:
            tbl.add_row("Tokens", f"{result.total_tokens:,}")
        if result.stop_reason not in ("end_turn", "tool_use"):
            tbl.add_row("Stopped", Text(result.stop_reason, style=STYLE_ERROR_BODY))

        self._console.print(Panel(tbl, border_style="#3f3f50", expand=False, padding=(0, 1)))
