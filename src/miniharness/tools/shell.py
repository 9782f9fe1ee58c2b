"""run_shell tool: executes shell commands asynchronously."""

from __future__ import annotations

import asyncio
from typing import Any

from miniharness.tools.base import BaseTool
from miniharness.types.tools import ToolContext, ToolDef, ToolParam, ToolResultData

_DEFAULT_TIMEOUT_MS = 120_000
_MAX_TIMEOUT_MS = 600_000
_MAX_OUTPUT_CHARS = 30_000

_DEFINITION = ToolDef(
    name="run_shell",
    description=(
        "Execute a shell command and return stdout/stderr. "
        "The command runs in the session working directory. "
        "Timeout is in milliseconds (default 120 000, max 600 000)."
    ),
    parameters=(
        ToolParam(
            name="command",
            type="string",
            description="Shell command to execute",
        ),
        ToolParam(
            name="timeout",
            type="integer",
            description=(
                "Timeout in milliseconds before the process is killed. "
                f"Default {_DEFAULT_TIMEOUT_MS}, max {_MAX_TIMEOUT_MS}."
            ),
            required=False,
        ),
    ),
)


def _truncate(output: str) -> str:
    if len(output) <= _MAX_OUTPUT_CHARS:
        return output
    omitted = len(output) - _MAX_OUTPUT_CHARS
    return output[:_MAX_OUTPUT_CHARS] + f"\n[...{omitted} characters truncated]"


class RunShellTool(BaseTool):
    """Runs ``sh -c <command>`` and reports stdout, stderr and exit code."""

    @property
    def definition(self) -> ToolDef:
        return _DEFINITION

    async def execute(self, args: dict[str, Any], ctx: ToolContext) -> ToolResultData:
        command: str = args.get("command", "")
        if not command:
            return self._error("command is required")

        raw_timeout = args.get("timeout") or _DEFAULT_TIMEOUT_MS
        try:
            timeout_ms = int(raw_timeout)
        except (TypeError, ValueError):
            timeout_ms = _DEFAULT_TIMEOUT_MS
        timeout_ms = max(1, min(timeout_ms, _MAX_TIMEOUT_MS))

        try:
            proc = await asyncio.create_subprocess_shell(
                command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(ctx.cwd),
            )
        except OSError as exc:
            return self._error(f"Failed to start process: {exc}")

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                proc.communicate(), timeout=timeout_ms / 1000.0,
            )
        except TimeoutError:
            try:
                proc.kill()
                await proc.wait()
            except ProcessLookupError:
                pass
            return self._error(f"Command timed out after {timeout_ms} ms and was killed: {command}")

        return self._json({
            "stdout": _truncate(stdout_bytes.decode("utf-8", errors="replace")),
            "stderr": _truncate(stderr_bytes.decode("utf-8", errors="replace")),
            "exitCode": proc.returncode if proc.returncode is not None else 0,
        })
