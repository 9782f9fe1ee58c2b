"""Message queue tools: mq_send and mq_read.

Both tools are bound to the identity of the session that owns them, so the
sender stamped on outgoing messages is configuration, not global state.
"""

from __future__ import annotations

from typing import Any

from miniharness.mq.queue import MessageQueue
from miniharness.tools.base import BaseTool
from miniharness.types.tools import ToolContext, ToolDef, ToolParam, ToolResultData


class MqSendTool(BaseTool):
    """Sends a message to one agent or to everyone."""

    def __init__(self, queue: MessageQueue, agent_id: str) -> None:
        self._queue = queue
        self._agent_id = agent_id

    @property
    def definition(self) -> ToolDef:
        return ToolDef(
            name="mq_send",
            description=(
                "Send a message to another agent via the message queue. Use \"main\" to "
                "message the main agent, an agent ID like \"a001\" for a sub-agent, or "
                "\"broadcast\" for all agents."
            ),
            parameters=(
                ToolParam(
                    name="to",
                    type="string",
                    description='Recipient agent ID ("main", "a001", etc.) or "broadcast"',
                ),
                ToolParam(name="body", type="string", description="Message content"),
            ),
        )

    async def execute(self, args: dict[str, Any], ctx: ToolContext) -> ToolResultData:
        to = args.get("to")
        body = args.get("body")
        if not to or not isinstance(to, str):
            return self._error("to is required")
        if not isinstance(body, str):
            return self._error("body is required")

        msg = self._queue.send(self._agent_id, to, body)
        return self._json({"sent": True, "id": msg.id, "from": msg.sender, "to": msg.to})


class MqReadTool(BaseTool):
    """Reads messages addressed to this agent or broadcast."""

    def __init__(self, queue: MessageQueue, agent_id: str) -> None:
        self._queue = queue
        self._agent_id = agent_id

    @property
    def definition(self) -> ToolDef:
        return ToolDef(
            name="mq_read",
            description=(
                "Read messages from the message queue addressed to you or broadcast. "
                "Optionally filter by timestamp."
            ),
            parameters=(
                ToolParam(
                    name="since",
                    type="string",
                    description="ISO timestamp; only return messages after this time (optional)",
                    required=False,
                ),
            ),
        )

    async def execute(self, args: dict[str, Any], ctx: ToolContext) -> ToolResultData:
        since = args.get("since") or None
        messages = self._queue.read_since(self._agent_id, since)
        return self._json([m.to_dict() for m in messages])
