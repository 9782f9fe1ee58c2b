"""ToolRegistry: name-to-capability lookup and uniform error shaping."""

from __future__ import annotations

import logging
from typing import Any

from miniharness.tools.base import error_payload
from miniharness.types.tools import Tool, ToolContext, ToolDef, ToolResultData

logger = logging.getLogger(__name__)


class ToolRegistry:
    """Registers tools and dispatches execution requests.

    Usage::

        registry = ToolRegistry()
        registry.register(ReadFileTool())
        result = await registry.execute("read_file", {"path": "foo.py"}, ctx)

    ``execute`` never raises: unknown names and failures inside a tool come
    back as ``ToolResultData(is_error=True)`` with a JSON ``{"error": ...}``
    payload.
    """

    def __init__(self) -> None:
        self._registry: dict[str, Tool] = {}

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, tool: Tool) -> None:
        """Add a tool to the registry under its definition name."""
        if not isinstance(tool, Tool):
            raise TypeError(f"{type(tool).__name__} does not implement the Tool protocol")
        self._registry[tool.definition.name] = tool

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, name: str) -> Tool | None:
        """Return the tool with the given name, or None."""
        return self._registry.get(name)

    def get_definitions(self) -> list[ToolDef]:
        """Return all registered tool definitions (for the request schema)."""
        return [tool.definition for tool in self._registry.values()]

    @property
    def names(self) -> list[str]:
        return list(self._registry)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def execute(
        self,
        name: str,
        args: dict[str, Any],
        ctx: ToolContext,
    ) -> ToolResultData:
        """Dispatch a tool call by name."""
        tool = self._registry.get(name)
        if tool is None:
            return ToolResultData(
                content=error_payload(
                    f"Unknown tool: {name}", available=sorted(self._registry),
                ),
                is_error=True,
            )

        try:
            return await tool.execute(args, ctx)
        except Exception as exc:  # noqa: BLE001
            logger.debug("Tool %s raised", name, exc_info=True)
            return ToolResultData(
                content=error_payload(f"{type(exc).__name__}: {exc}", tool=name),
                is_error=True,
            )

    # ------------------------------------------------------------------
    # Dunder helpers
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._registry)

    def __contains__(self, name: object) -> bool:
        return name in self._registry

    def __repr__(self) -> str:
        return f"ToolRegistry(tools={sorted(self._registry)})"
