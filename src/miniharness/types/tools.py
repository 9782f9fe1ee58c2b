"""Tool schemas, results and the capability protocol."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol, runtime_checkable


@dataclass(frozen=True, slots=True)
class ToolParam:
    """One named argument in a tool's JSON schema."""

    name: str
    type: str  # JSON schema type name
    description: str
    required: bool = True
    enum: tuple[str, ...] | None = None
    items: dict[str, Any] | None = None  # element schema when type == "array"


@dataclass(frozen=True, slots=True)
class ToolDef:
    """What the model sees of a tool.

    An empty ``parameters`` tuple advertises a no-argument tool.
    """

    name: str
    description: str
    parameters: tuple[ToolParam, ...] = ()


@dataclass(slots=True)
class ToolResultData:
    content: str
    is_error: bool = False
    display: str | None = None  # short UI summary; the model always gets content


@dataclass(slots=True)
class ToolContext:
    """Per-call context: where relative paths resolve and who is calling."""

    cwd: Path
    agent_id: str = "main"
    session_id: str = ""


@runtime_checkable
class Tool(Protocol):
    """Anything the registry can dispatch to."""

    @property
    def definition(self) -> ToolDef: ...

    async def execute(self, args: dict[str, Any], ctx: ToolContext) -> ToolResultData: ...
