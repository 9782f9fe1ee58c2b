"""Sub-agent tools: spawn_agent, check_agents, get_agent_result.

Only the coordinator gets these; sub-agents cannot spawn further agents.
"""

from __future__ import annotations

from typing import Any

from miniharness.agents.manager import AgentManager, is_agent_id
from miniharness.tools.base import BaseTool
from miniharness.types.tools import ToolContext, ToolDef, ToolParam, ToolResultData

_PREVIEW_CHARS = 100


class SpawnAgentTool(BaseTool):
    def __init__(self, manager: AgentManager) -> None:
        self._manager = manager

    @property
    def definition(self) -> ToolDef:
        return ToolDef(
            name="spawn_agent",
            description=(
                "Spawn a sub-agent to work on a task in the background. The sub-agent "
                "runs as a separate process with its own tools (file ops, shell, "
                "messaging). Returns immediately with the agent ID."
            ),
            parameters=(
                ToolParam(
                    name="prompt",
                    type="string",
                    description="The task for the sub-agent to perform",
                ),
                ToolParam(
                    name="context",
                    type="string",
                    description="Optional background context handed to the sub-agent",
                    required=False,
                ),
            ),
        )

    async def execute(self, args: dict[str, Any], ctx: ToolContext) -> ToolResultData:
        prompt = args.get("prompt")
        if not prompt or not isinstance(prompt, str):
            return self._error("prompt is required")
        context = args.get("context") or None

        try:
            record = await self._manager.spawn(prompt, context)
        except OSError as exc:
            return self._error(f"Failed to spawn agent: {exc}")
        return self._json({
            "agent_id": record.id,
            "status": "spawned",
            "prompt_preview": prompt[:_PREVIEW_CHARS],
        })


class CheckAgentsTool(BaseTool):
    def __init__(self, manager: AgentManager) -> None:
        self._manager = manager

    @property
    def definition(self) -> ToolDef:
        return ToolDef(
            name="check_agents",
            description="List all sub-agents with their current status",
        )

    async def execute(self, args: dict[str, Any], ctx: ToolContext) -> ToolResultData:
        return self._json(self._manager.summaries())


class GetAgentResultTool(BaseTool):
    def __init__(self, manager: AgentManager) -> None:
        self._manager = manager

    @property
    def definition(self) -> ToolDef:
        return ToolDef(
            name="get_agent_result",
            description=(
                "Get the full result of a sub-agent: metadata, final result (if "
                "finished) and its output log"
            ),
            parameters=(
                ToolParam(name="agent_id", type="string", description='Agent ID, e.g. "a001"'),
            ),
        )

    async def execute(self, args: dict[str, Any], ctx: ToolContext) -> ToolResultData:
        agent_id = str(args.get("agent_id", ""))
        if not is_agent_id(agent_id):
            return self._error(f"Invalid agent id: {agent_id!r}")
        view = self._manager.get_result(agent_id)
        if view is None:
            return self._error(f"Agent not found: {agent_id}")
        return self._json(view)


def agent_tools(manager: AgentManager) -> list[BaseTool]:
    return [SpawnAgentTool(manager), CheckAgentsTool(manager), GetAgentResultTool(manager)]
