"""Base tool class with shared logic."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any

from miniharness.types.tools import ToolContext, ToolDef, ToolResultData


def error_payload(message: str, **extra: Any) -> str:
    """Serialise a structured error result."""
    return json.dumps({"error": message, **extra})


class BaseTool(ABC):
    """Base class for all tools.

    Results are strings handed back to the model verbatim; structured
    results and errors are JSON documents.
    """

    @property
    @abstractmethod
    def definition(self) -> ToolDef:
        ...

    @abstractmethod
    async def execute(self, args: dict[str, Any], ctx: ToolContext) -> ToolResultData:
        ...

    def _error(self, msg: str, **extra: Any) -> ToolResultData:
        return ToolResultData(content=error_payload(msg, **extra), is_error=True)

    def _ok(self, content: str, display: str | None = None) -> ToolResultData:
        return ToolResultData(content=content, display=display)

    def _json(self, data: Any) -> ToolResultData:
        return ToolResultData(content=json.dumps(data))
