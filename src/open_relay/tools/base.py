"""Tool abstraction consumed by the orchestrator."""

from __future__ import annotations

import inspect
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable

from open_relay.tools.schema import clean_parameters


@dataclass
class ModelResult:
    """Split of a tool result into what the model sees and what is cached.

    ``minimal`` goes into the transcript.  When ``payload`` and
    ``preview_key`` are both set, the payload is stored in the run's
    ``PayloadCache`` under that key.
    """

    minimal: Any
    payload: Any = None
    preview_key: str | None = None


class Tool(ABC):
    """Base class for tools.

    Subclasses set ``name``, ``description`` and ``parameters`` (a JSON
    schema object) and implement ``run()``, which may be sync or async.
    """

    name: str
    description: str = ""
    parameters: dict[str, Any] = {"type": "object", "properties": {}}

    @abstractmethod
    def run(self, args: dict[str, Any], meta: dict[str, Any]) -> Any:
        """Execute the tool.  May return an awaitable."""

    def to_model_result(self, raw: Any) -> ModelResult | None:
        """Optional projection of *raw* for the transcript."""
        return None

    async def invoke(self, args: dict[str, Any], meta: dict[str, Any]) -> Any:
        result = self.run(args, meta)
        if inspect.isawaitable(result):
            result = await result
        return result

    def to_openai_schema(self, wire_name: str | None = None) -> dict[str, Any]:
        """OpenAI function-calling schema, using *wire_name* if given."""
        return {
            "type": "function",
            "function": {
                "name": wire_name or self.name,
                "description": self.description,
                "parameters": clean_parameters(self.parameters),
            },
        }


class FunctionTool(Tool):
    """Wrap a plain (sync or async) callable as a tool.

    Usage::

        async def search(args, meta):
            ...

        registry.register(FunctionTool("web.search", search, "Search the web", schema))
    """

    def __init__(
        self,
        name: str,
        handler: Callable[[dict[str, Any], dict[str, Any]], Any],
        description: str = "",
        parameters: dict[str, Any] | None = None,
        projector: Callable[[Any], ModelResult | None] | None = None,
    ) -> None:
        self.name = name
        self.description = description
        self.parameters = parameters or {"type": "object", "properties": {}}
        self._handler = handler
        self._projector = projector

    def run(self, args: dict[str, Any], meta: dict[str, Any]) -> Any:
        return self._handler(args, meta)

    def to_model_result(self, raw: Any) -> ModelResult | None:
        if self._projector is None:
            return None
        return self._projector(raw)
