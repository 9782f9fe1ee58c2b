"""CLI subcommands for inspecting shared state (agents, mq, tasks, config)."""

from __future__ import annotations

import json
from pathlib import Path

import click

from miniharness.types.config import DEFAULT_STATE_DIR


def _root(ctx: click.Context) -> Path:
    from miniharness.core.config import resolve_config

    obj = ctx.find_root().obj or {}
    config = resolve_config(obj.get("cwd"), root=obj.get("root"))
    return Path(config.root or DEFAULT_STATE_DIR)


@click.group()
def agents_cmd() -> None:
    """Inspect sub-agents."""


@agents_cmd.command("list")
@click.pass_context
def agents_list(ctx: click.Context) -> None:
    """List sub-agents and their status."""
    from miniharness.agents.manager import AgentManager

    summaries = AgentManager(_root(ctx)).summaries()
    if not summaries:
        click.echo("No agents.")
        return
    for entry in summaries:
        click.echo(
            f"{entry['id']:<6} {entry['status']:<10} {entry['started_at']:<28} "
            f"{entry['prompt_preview'][:60]}"
        )


@agents_cmd.command("show")
@click.argument("agent_id")
@click.pass_context
def agents_show(ctx: click.Context, agent_id: str) -> None:
    """Show an agent's metadata, result and output log."""
    from miniharness.agents.manager import AgentManager

    view = AgentManager(_root(ctx)).get_result(agent_id)
    if view is None:
        click.echo(f"Agent not found: {agent_id}", err=True)
        raise SystemExit(1)
    click.echo(json.dumps(view, indent=2))


@click.group()
def mq_cmd() -> None:
    """Read and write the message queue."""


@mq_cmd.command("send")
@click.argument("to")
@click.argument("body")
@click.option("--sender", "--from", "sender", default="main", help="Sender agent ID")
@click.pass_context
def mq_send(ctx: click.Context, to: str, body: str, sender: str) -> None:
    """Send BODY to agent TO (or "broadcast")."""
    from miniharness.mq.queue import MessageQueue

    msg = MessageQueue(_root(ctx)).send(sender, to, body)
    click.echo(f"sent {msg.id}")


@mq_cmd.command("read")
@click.option("--for", "recipient", default=None, help="Only messages for this agent ID")
@click.option("--since", default=None, help="ISO timestamp watermark")
@click.pass_context
def mq_read(ctx: click.Context, recipient: str | None, since: str | None) -> None:
    """Print messages from the queue."""
    from miniharness.mq.queue import MessageQueue

    queue = MessageQueue(_root(ctx))
    messages = queue.read_since(recipient, since) if recipient else queue.read_all(since)
    for msg in messages:
        click.echo(f"{msg.id} {msg.timestamp} {msg.sender} -> {msg.to}: {msg.body}")


@click.group()
def tasks_cmd() -> None:
    """Inspect the task board."""


@tasks_cmd.command("list")
@click.option("--status", type=click.Choice(["todo", "doing", "done"]), default=None)
@click.pass_context
def tasks_list(ctx: click.Context, status: str | None) -> None:
    """List tasks."""
    from miniharness.tools.tasks import TaskBoard

    records = TaskBoard(_root(ctx)).list_tasks(status)
    if not records:
        click.echo("No tasks.")
        return
    for record in records:
        click.echo(f"{record.id}  {record.status:<6} {record.title}")


@click.group()
def config_cmd() -> None:
    """Show configuration."""


@config_cmd.command("list")
def config_list() -> None:
    """Show the resolved configuration."""
    from dataclasses import asdict

    from miniharness.core.config import resolve_config

    for key, value in sorted(asdict(resolve_config()).items()):
        if key == "system_prompt":
            continue
        if key == "api_key" and value:
            value = value[:8] + "..."
        click.echo(f"  {key}: {value}")
