"""Filesystem tools: read_file, write_file, list_dir."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from miniharness.tools.base import BaseTool
from miniharness.types.tools import ToolContext, ToolDef, ToolParam, ToolResultData

_MAX_READ_CHARS = 200_000


def _resolve(raw_path: str, ctx: ToolContext) -> Path:
    path = Path(raw_path)
    if not path.is_absolute():
        path = ctx.cwd / path
    return path


class ReadFileTool(BaseTool):
    """Returns a file's raw text."""

    @property
    def definition(self) -> ToolDef:
        return ToolDef(
            name="read_file",
            description="Read the contents of a file at the given path",
            parameters=(
                ToolParam(
                    name="path",
                    type="string",
                    description="Absolute or relative file path",
                ),
            ),
        )

    async def execute(self, args: dict[str, Any], ctx: ToolContext) -> ToolResultData:
        raw_path: str = args.get("path", "")
        if not raw_path:
            return self._error("path is required")

        path = _resolve(raw_path, ctx)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return self._error(f"File not found: {raw_path}")
        except IsADirectoryError:
            return self._error(f"Path is a directory, not a file: {raw_path}")
        except UnicodeDecodeError:
            return self._error(f"Cannot read file as text: {raw_path}")

        if len(text) > _MAX_READ_CHARS:
            omitted = len(text) - _MAX_READ_CHARS
            text = text[:_MAX_READ_CHARS] + f"\n[...{omitted} characters truncated]"
        return self._ok(text)


class WriteFileTool(BaseTool):
    """Creates or overwrites a file; parent directories are created."""

    @property
    def definition(self) -> ToolDef:
        return ToolDef(
            name="write_file",
            description="Write content to a file, creating it if it doesn't exist",
            parameters=(
                ToolParam(
                    name="path",
                    type="string",
                    description="Absolute or relative file path",
                ),
                ToolParam(
                    name="content",
                    type="string",
                    description="Content to write to the file",
                ),
            ),
        )

    async def execute(self, args: dict[str, Any], ctx: ToolContext) -> ToolResultData:
        raw_path: str = args.get("path", "")
        if not raw_path:
            return self._error("path is required")
        content = args.get("content", "")
        if not isinstance(content, str):
            return self._error("content must be a string")

        path = _resolve(raw_path, ctx)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return self._json({"success": True, "path": raw_path})


class ListDirTool(BaseTool):
    """Lists the entries of a directory."""

    @property
    def definition(self) -> ToolDef:
        return ToolDef(
            name="list_dir",
            description="List files and directories at the given path",
            parameters=(
                ToolParam(
                    name="path",
                    type="string",
                    description="Directory path to list (defaults to current directory)",
                    required=False,
                ),
            ),
        )

    async def execute(self, args: dict[str, Any], ctx: ToolContext) -> ToolResultData:
        raw_path = args.get("path") or "."
        path = _resolve(raw_path, ctx)
        if not path.exists():
            return self._error(f"Directory not found: {raw_path}")
        if not path.is_dir():
            return self._error(f"Not a directory: {raw_path}")

        items = [
            {"name": entry.name, "type": "directory" if entry.is_dir() else "file"}
            for entry in sorted(path.iterdir(), key=lambda p: p.name)
        ]
        return self._json(items)
