"""Tool registry supplied to a run."""

from __future__ import annotations

import logging
from typing import Any, Iterable

from open_relay.tools.base import Tool
from open_relay.tools.names import ToolNameMap

_logger = logging.getLogger(__name__)


class ToolRegistry:
    """Registry of tools keyed by their original (caller-facing) name.

    The wire name of each tool is assigned on registration through a
    ``ToolNameMap``, so request schemas and incoming tool calls agree.
    """

    def __init__(self, tools: Iterable[Tool] | None = None) -> None:
        self._tools: dict[str, Tool] = {}
        self.names = ToolNameMap()
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        """Register a tool instance.  Re-registering a name replaces it."""
        if tool.name in self._tools:
            _logger.info("Replacing tool %s", tool.name)
        self._tools[tool.name] = tool
        self.names.add(tool.name)

    def resolve(self, wire_name: str) -> Tool | None:
        """Look up a tool by the name the model called it with."""
        original = self.names.original(wire_name)
        if original is not None:
            return self._tools.get(original)
        return self._tools.get(wire_name)

    def original_name(self, wire_name: str) -> str:
        return self.names.original(wire_name) or wire_name

    def wire_schemas(self) -> list[dict[str, Any]]:
        """OpenAI function-calling schemas under sanitized names."""
        return [
            t.to_openai_schema(self.names.wire(t.name))
            for t in self._tools.values()
        ]

    def __len__(self) -> int:
        return len(self._tools)

    def __bool__(self) -> bool:
        return bool(self._tools)
