"""Task board tools: a todo/doing/done pipeline of markdown files.

Tasks live in ``<root>/tasks/<status>/NNN-slug.md``.  Acceptance criteria are
checkbox lines (``- [ ] ...`` / ``- [x] ...``).  A task can only reach
``done`` once every criterion is checked.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from miniharness.core.storage import utc_now
from miniharness.tools.base import BaseTool
from miniharness.types.tools import ToolContext, ToolDef, ToolParam, ToolResultData

STATUSES: tuple[str, ...] = ("todo", "doing", "done")

_UNCHECKED_RE = re.compile(r"^\s*[-*+] \[ \] ?(.*)$", re.MULTILINE)
_SLUG_RE = re.compile(r"[^a-z0-9]+")
_ID_WIDTH = 3


class TaskError(Exception):
    """A task operation was rejected."""

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.details = details


@dataclass(frozen=True, slots=True)
class TaskRecord:
    id: str
    status: str
    filename: str
    path: Path

    @property
    def title(self) -> str:
        return self.filename[len(self.id) + 1:].removesuffix(".md").replace("-", " ")


def slugify(title: str) -> str:
    return _SLUG_RE.sub("-", title.lower()).strip("-")


def unchecked_criteria(content: str) -> list[str]:
    """Return the text of every unchecked checkbox line."""
    return [m.group(1).strip() for m in _UNCHECKED_RE.finditer(content)]


class TaskBoard:
    """The on-disk task pipeline."""

    def __init__(self, root: str | Path) -> None:
        self._dir = Path(root) / "tasks"

    def _ensure_dirs(self) -> None:
        for status in STATUSES:
            (self._dir / status).mkdir(parents=True, exist_ok=True)

    @staticmethod
    def _normalize_id(task_id: str | int) -> str:
        text = str(task_id).strip()
        return text.zfill(_ID_WIDTH) if text.isdigit() else text

    def _records(self, statuses: tuple[str, ...] = STATUSES) -> list[TaskRecord]:
        self._ensure_dirs()
        records: list[TaskRecord] = []
        for status in statuses:
            for path in sorted((self._dir / status).glob("*.md")):
                task_id = path.name.split("-", 1)[0]
                records.append(TaskRecord(task_id, status, path.name, path))
        return records

    def find(self, task_id: str | int) -> TaskRecord | None:
        wanted = self._normalize_id(task_id)
        for record in self._records():
            if record.id == wanted:
                return record
        return None

    def _require(self, task_id: str | int) -> TaskRecord:
        record = self.find(task_id)
        if record is None:
            raise TaskError(f"Task not found: {task_id}")
        return record

    def create(self, title: str, description: str, criteria: list[str]) -> TaskRecord:
        content = "\n".join([
            f"# {title}",
            "",
            "## Description",
            description,
            "",
            "## Acceptance Criteria",
            *(f"- [ ] {c}" for c in criteria),
            "",
        ])
        slug = slugify(title) or "task"
        while True:
            highest = max((int(r.id) for r in self._records() if r.id.isdigit()), default=0)
            task_id = f"{highest + 1:0{_ID_WIDTH}d}"
            path = self._dir / "todo" / f"{task_id}-{slug}.md"
            try:
                with open(path, "x", encoding="utf-8") as f:
                    f.write(content)
            except FileExistsError:
                continue
            return TaskRecord(task_id, "todo", path.name, path)

    def list_tasks(self, status: str | None = None) -> list[TaskRecord]:
        statuses = (status,) if status in STATUSES else STATUSES
        return self._records(statuses)

    def read(self, task_id: str | int) -> tuple[TaskRecord, str]:
        record = self._require(task_id)
        return record, record.path.read_text(encoding="utf-8")

    def update(self, task_id: str | int, content: str) -> TaskRecord:
        record = self._require(task_id)
        if record.status == "done":
            unchecked = unchecked_criteria(content)
            if unchecked:
                raise TaskError(
                    "Cannot leave unchecked criteria on a done task", unchecked=unchecked,
                )
        record.path.write_text(content, encoding="utf-8")
        return record

    def move(self, task_id: str | int, to: str) -> tuple[TaskRecord, TaskRecord]:
        """Move a task to *to*; returns ``(old, new)`` records.

        Raises :class:`TaskError` when the target is invalid or, for ``done``,
        while any criterion is unchecked.
        """
        if to not in STATUSES:
            raise TaskError(f"Invalid status: {to}", valid=list(STATUSES))
        record = self._require(task_id)
        if record.status == to:
            raise TaskError(f"Task is already in {to}")

        content = record.path.read_text(encoding="utf-8")
        if to == "done":
            unchecked = unchecked_criteria(content)
            if unchecked:
                raise TaskError(
                    "Cannot move to done: unchecked criteria remain", unchecked=unchecked,
                )
            content = content.rstrip() + f"\n\n## Completed\n{utc_now()}\n"

        new_path = self._dir / to / record.filename
        new_path.write_text(content, encoding="utf-8")
        record.path.unlink()
        return record, TaskRecord(record.id, to, record.filename, new_path)


# ----------------------------------------------------------------------
# Tools
# ----------------------------------------------------------------------

_ID_PARAM = ToolParam(name="id", type="string", description='Task ID, e.g. "001"')


class _TaskTool(BaseTool):
    def __init__(self, board: TaskBoard) -> None:
        self._board = board

    async def execute(self, args: dict[str, Any], ctx: ToolContext) -> ToolResultData:
        try:
            return self._run(args)
        except TaskError as exc:
            return self._error(str(exc), **exc.details)

    def _run(self, args: dict[str, Any]) -> ToolResultData:
        raise NotImplementedError


class CreateTaskTool(_TaskTool):
    @property
    def definition(self) -> ToolDef:
        return ToolDef(
            name="create_task",
            description=(
                "Create a new task in the todo folder with a title, description, "
                "and acceptance criteria"
            ),
            parameters=(
                ToolParam(name="title", type="string", description="Task title"),
                ToolParam(name="description", type="string", description="Task description"),
                ToolParam(
                    name="criteria",
                    type="array",
                    description="List of acceptance criteria",
                    items={"type": "string"},
                ),
            ),
        )

    def _run(self, args: dict[str, Any]) -> ToolResultData:
        title = args.get("title")
        if not title:
            return self._error("title is required")
        criteria = [str(c) for c in args.get("criteria") or []]
        record = self._board.create(title, args.get("description", ""), criteria)
        return self._json({"id": record.id, "filename": record.filename, "path": str(record.path)})


class ListTasksTool(_TaskTool):
    @property
    def definition(self) -> ToolDef:
        return ToolDef(
            name="list_tasks",
            description='List tasks, optionally filtered by status ("todo", "doing", "done")',
            parameters=(
                ToolParam(
                    name="status",
                    type="string",
                    description="Filter by status (omit for all)",
                    required=False,
                    enum=STATUSES,
                ),
            ),
        )

    def _run(self, args: dict[str, Any]) -> ToolResultData:
        return self._json([
            {"id": r.id, "title": r.title, "status": r.status, "filename": r.filename}
            for r in self._board.list_tasks(args.get("status"))
        ])


class ReadTaskTool(_TaskTool):
    @property
    def definition(self) -> ToolDef:
        return ToolDef(
            name="read_task",
            description="Read a task's full contents and current status by its ID",
            parameters=(_ID_PARAM,),
        )

    def _run(self, args: dict[str, Any]) -> ToolResultData:
        record, content = self._board.read(args.get("id", ""))
        return self._json({"id": record.id, "status": record.status, "content": content})


class UpdateTaskTool(_TaskTool):
    @property
    def definition(self) -> ToolDef:
        return ToolDef(
            name="update_task",
            description="Overwrite a task's markdown content (e.g. to check off acceptance criteria)",
            parameters=(
                _ID_PARAM,
                ToolParam(
                    name="content",
                    type="string",
                    description="Full new markdown content for the task",
                ),
            ),
        )

    def _run(self, args: dict[str, Any]) -> ToolResultData:
        content = args.get("content")
        if not isinstance(content, str):
            return self._error("content is required")
        record = self._board.update(args.get("id", ""), content)
        return self._json({"success": True, "id": record.id, "path": str(record.path)})


class MoveTaskTool(_TaskTool):
    @property
    def definition(self) -> ToolDef:
        return ToolDef(
            name="move_task",
            description=(
                'Move a task between statuses (todo, doing, done). Moving to "done" '
                "requires all acceptance criteria to be checked off."
            ),
            parameters=(
                _ID_PARAM,
                ToolParam(name="to", type="string", description="Target status", enum=STATUSES),
            ),
        )

    def _run(self, args: dict[str, Any]) -> ToolResultData:
        old, new = self._board.move(args.get("id", ""), args.get("to", ""))
        return self._json({"id": new.id, "from": old.status, "to": new.status, "filename": new.filename})


def task_tools(board: TaskBoard) -> list[BaseTool]:
    return [
        CreateTaskTool(board),
        ListTasksTool(board),
        ReadTaskTool(board),
        UpdateTaskTool(board),
        MoveTaskTool(board),
    ]
