"""Metrics recording: counters and histograms with a no-op fallback."""

from __future__ import annotations

from typing import Any

try:
    from opentelemetry import metrics

    _HAS_OTEL = True
except ImportError:
    _HAS_OTEL = False

# Lazily-created instruments
_meter: Any = None
_token_counter: Any = None
_tool_call_counter: Any = None
_context_utilization_histogram: Any = None
_spawn_counter: Any = None


def _ensure_instruments() -> None:
    """Create meter and instruments on first use."""
    global _meter, _token_counter, _tool_call_counter
    global _context_utilization_histogram, _spawn_counter

    if not _HAS_OTEL or _meter is not None:
        return

    _meter = metrics.get_meter("miniharness")
    _token_counter = _meter.create_counter(
        "miniharness.tokens",
        description="Total tokens consumed",
        unit="tokens",
    )
    _tool_call_counter = _meter.create_counter(
        "miniharness.tool_calls",
        description="Total tool calls executed",
    )
    _context_utilization_histogram = _meter.create_histogram(
        "miniharness.context_utilization",
        description="Context window utilization percentage",
        unit="percent",
    )
    _spawn_counter = _meter.create_counter(
        "miniharness.agents_spawned",
        description="Sub-agent processes started",
    )


def record_tokens(
    input_tokens: int = 0,
    output_tokens: int = 0,
    *,
    agent: str = "",
    model: str = "",
) -> None:
    """Record token usage."""
    if not _HAS_OTEL:
        return
    _ensure_instruments()
    attrs = {"agent": agent, "model": model}
    _token_counter.add(input_tokens, {"direction": "input", **attrs})
    _token_counter.add(output_tokens, {"direction": "output", **attrs})


def record_tool_call(tool_name: str, *, is_error: bool = False, agent: str = "") -> None:
    """Record a tool call execution."""
    if not _HAS_OTEL:
        return
    _ensure_instruments()
    _tool_call_counter.add(
        1, {"tool": tool_name, "error": str(is_error).lower(), "agent": agent},
    )


def record_context_utilization(
    utilization_pct: float, *, agent: str = "", model: str = "",
) -> None:
    """Record context window utilization percentage (0-100)."""
    if not _HAS_OTEL:
        return
    _ensure_instruments()
    _context_utilization_histogram.record(utilization_pct, {"agent": agent, "model": model})


def record_agent_spawn() -> None:
    if not _HAS_OTEL:
        return
    _ensure_instruments()
    _spawn_counter.add(1)


def reset_instruments() -> None:
    """Reset module-level instruments between tests."""
    global _meter, _token_counter, _tool_call_counter
    global _context_utilization_histogram, _spawn_counter
    _meter = None
    _token_counter = None
    _tool_call_counter = None
    _context_utilization_histogram = None
    _spawn_counter = None
