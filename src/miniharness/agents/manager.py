"""Sub-agent lifecycle manager.

Each sub-agent is a separate OS process running
:mod:`miniharness.agents.worker`.  All state lives on disk under
``<root>/agents/<id>/``:

- ``meta.json``    the :class:`AgentRecord`, rewritten on each status change
- ``output.jsonl`` append-only log of the worker's loop events
- ``result.json``  the :class:`AgentResult`, written once at the end

Status queries always read from disk so a restarted coordinator sees the
same view.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

from miniharness.core.storage import (
    allocate_dir,
    append_jsonl,
    read_json,
    read_jsonl,
    utc_now,
    write_json,
)
from miniharness.observability.metrics import record_agent_spawn
from miniharness.types.agents import AgentRecord, AgentResult, AgentStatus

logger = logging.getLogger(__name__)

AGENT_ID_ENV = "AGENT_ID"
AGENT_CONTEXT_ENV = "AGENT_CONTEXT"
ROOT_ENV = "MINIHARNESS_ROOT"

_ID_PREFIX = "a"
_ID_WIDTH = 3
_ID_RE = re.compile(rf"{_ID_PREFIX}[0-9]+")
_PREVIEW_CHARS = 100


def is_agent_id(value: str) -> bool:
    return _ID_RE.fullmatch(value) is not None


def default_worker_command(prompt: str) -> list[str]:
    """argv for a sub-agent process."""
    return [sys.executable, "-m", "miniharness.agents.worker", prompt]


class AgentManager:
    """Spawns sub-agent processes and exposes their persisted state.

    Parameters
    ----------
    root:
        Shared state directory (``.mini-harness``).
    cwd:
        Working directory for spawned processes.
    command:
        Builds the argv for a prompt; defaults to the worker module.
    """

    def __init__(
        self,
        root: str | Path,
        *,
        cwd: str | Path | None = None,
        command: Callable[[str], list[str]] | None = None,
    ) -> None:
        self._root = Path(root)
        self._dir = self._root / "agents"
        self._cwd = str(Path(cwd).resolve()) if cwd else os.getcwd()
        self._command = command or default_worker_command
        self._watchers: dict[str, asyncio.Task[int]] = {}

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def agent_dir(self, agent_id: str) -> Path:
        if not is_agent_id(agent_id):
            raise ValueError(f"Invalid agent id: {agent_id!r}")
        return self._dir / agent_id

    def _meta_path(self, agent_id: str) -> Path:
        return self.agent_dir(agent_id) / "meta.json"

    def _result_path(self, agent_id: str) -> Path:
        return self.agent_dir(agent_id) / "result.json"

    def _output_path(self, agent_id: str) -> Path:
        return self.agent_dir(agent_id) / "output.jsonl"

    # ------------------------------------------------------------------
    # Spawning
    # ------------------------------------------------------------------

    async def spawn(self, prompt: str, context: str | None = None) -> AgentRecord:
        """Start a sub-agent and return as soon as the process exists."""
        agent_id, _ = allocate_dir(self._dir, _ID_PREFIX, _ID_WIDTH)
        record = AgentRecord(
            id=agent_id,
            prompt=prompt,
            status=AgentStatus.RUNNING,
            started_at=utc_now(),
            context=context,
        )
        self._write_meta(record)

        env = {**os.environ, AGENT_ID_ENV: agent_id, ROOT_ENV: str(self._root.resolve())}
        if context:
            env[AGENT_CONTEXT_ENV] = context
        else:
            env.pop(AGENT_CONTEXT_ENV, None)

        try:
            proc = await asyncio.create_subprocess_exec(
                *self._command(prompt),
                env=env,
                cwd=self._cwd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError:
            record.status = AgentStatus.ERROR
            record.finished_at = utc_now()
            self._write_meta(record)
            raise

        record = self._update_meta(agent_id, pid=proc.pid) or record
        self._watchers[agent_id] = asyncio.create_task(self._watch(agent_id, proc))
        record_agent_spawn()
        logger.info("Spawned sub-agent %s (pid %s)", agent_id, proc.pid)
        return record

    async def _watch(self, agent_id: str, proc: asyncio.subprocess.Process) -> int:
        """Wait for exit and fill in terminal status if the worker did not."""
        code = await proc.wait()
        observed = AgentStatus.COMPLETED if code == 0 else AgentStatus.ERROR
        try:
            record = self.check(agent_id)
            if record is None:
                return code
            if record.status is AgentStatus.RUNNING:
                record.status = observed
                record.finished_at = utc_now()
                self._write_meta(record)
            elif record.status is not observed:
                # Which side wins is left open on purpose: the self-reported
                # status stands and the disagreement is only logged.
                logger.warning(
                    "Sub-agent %s reported %s but exited with code %d",
                    agent_id, record.status.value, code,
                )
        except OSError as exc:
            logger.warning("Could not record exit of sub-agent %s: %s", agent_id, exc)
        logger.info("Sub-agent %s exited with code %d", agent_id, code)
        return code

    async def wait(self, agent_id: str) -> AgentRecord | None:
        """Wait for a sub-agent spawned by this manager to exit."""
        watcher = self._watchers.get(agent_id)
        if watcher is not None:
            await asyncio.shield(watcher)
        return self.check(agent_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def check(self, agent_id: str) -> AgentRecord | None:
        """Current persisted record, or None if missing/unreadable."""
        if not is_agent_id(agent_id):
            return None
        data = read_json(self._meta_path(agent_id))
        if not isinstance(data, dict):
            return None
        try:
            return AgentRecord.from_dict(data)
        except (KeyError, ValueError):
            logger.debug("Malformed meta for agent %s", agent_id)
            return None

    def list_all(self) -> list[AgentRecord]:
        if not self._dir.is_dir():
            return []
        records: list[AgentRecord] = []
        for path in sorted(self._dir.iterdir()):
            if not path.is_dir():
                continue
            record = self.check(path.name)
            if record is not None:
                records.append(record)
        return records

    def summaries(self) -> list[dict[str, Any]]:
        """Compact status view of every agent (for ``check_agents``)."""
        out: list[dict[str, Any]] = []
        for record in self.list_all():
            entry: dict[str, Any] = {
                "id": record.id,
                "status": record.status.value,
                "prompt_preview": record.prompt[:_PREVIEW_CHARS],
                "started_at": record.started_at,
            }
            if record.finished_at:
                entry["finished_at"] = record.finished_at
            out.append(entry)
        return out

    def get_result(self, agent_id: str) -> dict[str, Any] | None:
        """Merged view of meta, final result and the replayable output log."""
        record = self.check(agent_id)
        if record is None:
            return None
        result = read_json(self._result_path(agent_id))
        return {
            "meta": record.to_dict(),
            "result": result if isinstance(result, dict) else None,
            "output_log": read_jsonl(self._output_path(agent_id)),
        }

    # ------------------------------------------------------------------
    # Worker-side writes
    # ------------------------------------------------------------------

    def append_event(self, agent_id: str, entry: dict[str, Any]) -> None:
        append_jsonl(self._output_path(agent_id), entry)

    def complete(self, result: AgentResult) -> None:
        """Persist the final result (once) and the record's terminal fields."""
        path = self._result_path(result.agent_id)
        try:
            with open(path, "x", encoding="utf-8") as f:
                f.write(json.dumps(result.to_dict(), indent=2))
        except FileExistsError:
            logger.warning("Result for %s already written; keeping the first", result.agent_id)
            return
        try:
            self._update_meta(
                result.agent_id, status=result.status, finished_at=result.finished_at,
            )
        except OSError as exc:
            logger.warning("Could not update meta for %s: %s", result.agent_id, exc)

    # ------------------------------------------------------------------
    # Meta persistence
    # ------------------------------------------------------------------

    def _write_meta(self, record: AgentRecord) -> None:
        self.agent_dir(record.id).mkdir(parents=True, exist_ok=True)
        write_json(self._meta_path(record.id), record.to_dict())

    def _update_meta(self, agent_id: str, **fields: Any) -> AgentRecord | None:
        record = self.check(agent_id)
        if record is None:
            return None
        for name, value in fields.items():
            setattr(record, name, value)
        self._write_meta(record)
        return record
