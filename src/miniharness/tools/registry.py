"""Per-session tool sets.

Sub-agents get file, shell, messaging and task tools.  The coordinator gets
the same set plus the sub-agent tools.  Identity is bound into the messaging
tools here, so two sessions in one process never share a sender id.
"""

from __future__ import annotations

from pathlib import Path

from miniharness.agents.manager import AgentManager
from miniharness.mq.queue import MessageQueue
from miniharness.tools.agents import agent_tools
from miniharness.tools.files import ListDirTool, ReadFileTool, WriteFileTool
from miniharness.tools.manager import ToolRegistry
from miniharness.tools.mq import MqReadTool, MqSendTool
from miniharness.tools.shell import RunShellTool
from miniharness.tools.tasks import TaskBoard, task_tools

SUB_AGENT_TOOLS: tuple[str, ...] = (
    "read_file",
    "write_file",
    "list_dir",
    "run_shell",
    "mq_send",
    "mq_read",
    "create_task",
    "list_tasks",
    "read_task",
    "update_task",
    "move_task",
)
COORDINATOR_TOOLS: tuple[str, ...] = SUB_AGENT_TOOLS + (
    "spawn_agent",
    "check_agents",
    "get_agent_result",
)


def build_registry(
    root: str | Path,
    agent_id: str,
    agent_manager: AgentManager | None = None,
) -> ToolRegistry:
    """Build the tool set for one session.

    Passing an *agent_manager* yields the coordinator set; omitting it
    yields the sub-agent set.
    """
    root = Path(root)
    queue = MessageQueue(root)
    registry = ToolRegistry()
    for tool in (ReadFileTool(), WriteFileTool(), ListDirTool(), RunShellTool()):
        registry.register(tool)
    registry.register(MqSendTool(queue, agent_id))
    registry.register(MqReadTool(queue, agent_id))
    for tool in task_tools(TaskBoard(root)):
        registry.register(tool)
    if agent_manager is not None:
        for tool in agent_tools(agent_manager):
            registry.register(tool)
    return registry
