"""CLI entry point for miniharness."""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import Callable

import click

from miniharness.cli.output import print_message
from miniharness.types.messages import Message


class MiniHarnessGroup(click.Group):
    """Custom group that treats unknown args as the prompt.

    When the first arg is NOT a subcommand, we separate Click options from
    positional prompt words and let Click parse the options normally.
    """

    # Options that take a value argument
    _VALUE_OPTS = {
        "-m", "--model", "-s", "--session", "--max-iterations", "--max-tokens",
        "--cwd", "--root", "--api-key", "--base-url",
    }
    # Boolean flags (no value argument)
    _FLAG_OPTS = {"-v", "--verbose", "--rich", "--no-rich"}

    def parse_args(self, ctx: click.Context, args: list[str]) -> list[str]:
        if args and args[0] in self.commands:
            return super().parse_args(ctx, args)

        click_args: list[str] = []
        prompt_words: list[str] = []
        i = 0
        while i < len(args):
            arg = args[i]
            if arg in self._VALUE_OPTS and i + 1 < len(args):
                click_args.extend([arg, args[i + 1]])
                i += 2
            elif arg in self._FLAG_OPTS or arg in ("--help", "-h"):
                click_args.append(arg)
                i += 1
            elif arg.startswith("-") and "=" in arg:
                click_args.append(arg)
                i += 1
            elif not prompt_words and arg in self.commands:
                # Global options followed by a subcommand
                return super().parse_args(ctx, click_args + args[i:])
            else:
                prompt_words.append(arg)
                i += 1

        ctx.ensure_object(dict)
        ctx.obj["prompt_args"] = prompt_words
        return super().parse_args(ctx, click_args)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _output_fn(use_rich: bool) -> Callable[[Message], None]:
    if use_rich:
        from miniharness.ui.terminal import RichPrinter

        return RichPrinter().print_message
    return print_message


@click.group(cls=MiniHarnessGroup, invoke_without_command=True)
@click.option("--model", "-m", default=None, help="Model ID")
@click.option("--base-url", default=None, help="Chat-completions base URL")
@click.option("--api-key", default=None, help="Bearer token for the endpoint")
@click.option("--session", "-s", default=None, help="Resume session ID")
@click.option("--max-iterations", default=None, type=int, help="Maximum model rounds")
@click.option("--max-tokens", default=None, type=int, help="Max tokens per response")
@click.option("--cwd", default=None, help="Working directory")
@click.option("--root", default=None, help="Shared state directory")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.option("--rich/--no-rich", default=None, help="Rich terminal output (default: auto)")
@click.pass_context
def cli(
    ctx: click.Context,
    model: str | None,
    base_url: str | None,
    api_key: str | None,
    session: str | None,
    max_iterations: int | None,
    max_tokens: int | None,
    cwd: str | None,
    root: str | None,
    verbose: bool,
    rich: bool | None,
) -> None:
    """miniharness -- coding agent with background sub-agents.

    \b
    Usage:
      miniharness "Fix the bug in auth.py"     (one-shot)
      miniharness chat                          (interactive, with heartbeat)
      miniharness agents list
      miniharness mq read --for main
      miniharness tasks list
    """
    _configure_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj.update({
        "model": model,
        "base_url": base_url,
        "api_key": api_key,
        "session": session,
        "max_iterations": max_iterations,
        "max_tokens": max_tokens,
        "cwd": cwd,
        "root": root,
        "rich": rich,
    })
    if ctx.invoked_subcommand is not None:
        return

    prompt_args = ctx.obj.get("prompt_args", [])
    if prompt_args:
        prompt_text = " ".join(prompt_args)
    elif not sys.stdin.isatty():
        prompt_text = sys.stdin.read().strip()
    else:
        ctx.invoke(chat_cmd)
        return
    if not prompt_text:
        click.echo("Error: empty prompt", err=True)
        sys.exit(1)

    use_rich = rich if rich is not None else sys.stderr.isatty()
    asyncio.run(_run_agent(prompt_text, ctx.obj, _output_fn(use_rich)))


async def _run_agent(
    prompt: str,
    opts: dict,
    output_fn: Callable[[Message], None],
) -> None:
    """Run a one-shot prompt and print output."""
    from miniharness.core.engine import ONE_SHOT_MAX_ITERATIONS, run

    async for msg in run(
        prompt,
        model=opts.get("model"),
        base_url=opts.get("base_url"),
        api_key=opts.get("api_key"),
        max_iterations=opts.get("max_iterations") or ONE_SHOT_MAX_ITERATIONS,
        max_tokens=opts.get("max_tokens"),
        cwd=opts.get("cwd"),
        session_id=opts.get("session"),
        root=opts.get("root"),
    ):
        output_fn(msg)


@click.command("chat")
@click.pass_context
def chat_cmd(ctx: click.Context) -> None:
    """Interactive main agent with sub-agent heartbeat."""
    from miniharness.cli.repl import Repl
    from miniharness.core.config import resolve_config

    opts = ctx.find_root().obj or {}
    config = resolve_config(
        opts.get("cwd"),
        model=opts.get("model"),
        base_url=opts.get("base_url"),
        api_key=opts.get("api_key"),
        max_iterations=opts.get("max_iterations"),
        max_tokens=opts.get("max_tokens"),
        root=opts.get("root"),
        persist_session=True,
    )
    rich = opts.get("rich")
    use_rich = rich if rich is not None else sys.stderr.isatty()
    repl = Repl(config, output_fn=_output_fn(use_rich), session_id=opts.get("session"))
    asyncio.run(repl.run())


def _register_subcommands() -> None:
    """Register CLI subcommands."""
    from miniharness.cli.commands import agents_cmd, config_cmd, mq_cmd, tasks_cmd

    cli.add_command(chat_cmd, "chat")
    cli.add_command(agents_cmd, "agents")
    cli.add_command(mq_cmd, "mq")
    cli.add_command(tasks_cmd, "tasks")
    cli.add_command(config_cmd, "config")


_register_subcommands()


def main() -> None:
    """Entry point."""
    cli()


if __name__ == "__main__":
    main()
