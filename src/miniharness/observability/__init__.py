"""OpenTelemetry-based metrics for miniharness."""

from miniharness.observability.metrics import (
    record_agent_spawn,
    record_context_utilization,
    record_tokens,
    record_tool_call,
)

__all__ = [
    "record_agent_spawn",
    "record_context_utilization",
    "record_tokens",
    "record_tool_call",
]
