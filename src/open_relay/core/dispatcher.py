"""Tool dispatcher: runs one step's tool calls and records their results.

Calls run sequentially in discovery order.  Every call id receives exactly
one result message, whether the tool succeeded, failed, was unknown or the
run was cancelled first.
"""

from __future__ import annotations

import inspect
import json
import logging
from typing import Any, Callable

from open_relay.core.transcript import ConversationTranscript
from open_relay.events.bus import EventBus
from open_relay.providers.profile import TOOL_ROLE
from open_relay.tools.base import ModelResult
from open_relay.tools.payload_cache import PayloadCache
from open_relay.tools.registry import ToolRegistry
from open_relay.types import AgentEvent, EventType, ToolCallEntry

_logger = logging.getLogger(__name__)

CANCELLED_RESULT = json.dumps({"error": "Cancelled"})


def parse_arguments(raw: str) -> dict[str, Any]:
    """Decode tool-call arguments; anything but a JSON object becomes ``{}``."""
    if not raw:
        return {}
    try:
        args = json.loads(raw)
    except json.JSONDecodeError:
        _logger.debug("Malformed tool arguments, using {}: %.200s", raw)
        return {}
    return args if isinstance(args, dict) else {}


def _serialize(result: Any) -> str:
    if isinstance(result, str):
        return result
    try:
        return json.dumps(result)
    except (TypeError, ValueError):
        return json.dumps(str(result))


class ToolDispatcher:
    """Executes tool calls against a registry and writes results back.

    Parameters
    ----------
    registry:
        Tools available to this run, looked up by wire name.
    event_bus:
        Receives ``tool.started`` / ``tool.ended`` / ``tool.error``.
    result_role:
        ``"tool"`` or ``"user"``; fixed for the whole run.
    payload_cache:
        Destination for full payloads split off by ``to_model_result``.
    meta:
        Run metadata passed to every handler.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        event_bus: EventBus | None = None,
        result_role: str = TOOL_ROLE,
        payload_cache: PayloadCache | None = None,
        meta: dict[str, Any] | None = None,
    ) -> None:
        self._registry = registry
        self._event_bus = event_bus
        self._role = result_role
        self._payload_cache = payload_cache if payload_cache is not None else PayloadCache()
        self._meta = dict(meta or {})

    @property
    def payload_cache(self) -> PayloadCache:
        return self._payload_cache

    async def dispatch(
        self,
        calls: list[ToolCallEntry],
        transcript: ConversationTranscript,
        is_cancelled: Callable[[], bool] | None = None,
    ) -> int:
        """Run *calls* and append one result per call id.

        Returns the number of calls actually executed.  Never raises for
        tool failures.
        """
        executed = 0
        for tc in calls:
            name = self._registry.original_name(tc.name)
            if is_cancelled is not None and is_cancelled():
                transcript.add_tool_result(tc.id, name, CANCELLED_RESULT, self._role)
                continue
            content = await self._run_one(tc, name)
            transcript.add_tool_result(tc.id, name, content, self._role)
            executed += 1
        return executed

    async def _run_one(self, tc: ToolCallEntry, name: str) -> str:
        args = parse_arguments(tc.arguments)
        await self._emit(EventType.TOOL_STARTED, {
            "call_id": tc.id,
            "name": name,
            "arguments": args,
        })

        tool = self._registry.resolve(tc.name)
        if tool is None:
            error = f"Tool not found: {name}"
            _logger.info(error)
            await self._emit(EventType.TOOL_ERROR, {
                "call_id": tc.id, "name": name, "error": error,
            })
            return json.dumps({"error": error})

        try:
            raw = await tool.invoke(args, {**self._meta, "call_id": tc.id})
        except Exception as e:
            error = str(e) or type(e).__name__
            _logger.info("Tool %s failed: %s", name, error)
            await self._emit(EventType.TOOL_ERROR, {
                "call_id": tc.id, "name": name, "error": error,
            })
            return json.dumps({"error": error})

        result = await self._project(tool, raw)
        await self._emit(EventType.TOOL_ENDED, {
            "call_id": tc.id, "name": name, "result": result,
        })
        return _serialize(result)

    async def _project(self, tool: Any, raw: Any) -> Any:
        """Apply the tool's ``to_model_result``; fall back to *raw* on failure."""
        try:
            projected = tool.to_model_result(raw)
            if inspect.isawaitable(projected):
                projected = await projected
        except Exception:
            _logger.debug("to_model_result failed for %s", tool.name, exc_info=True)
            return raw
        if not isinstance(projected, ModelResult):
            return raw
        if projected.payload is not None and projected.preview_key:
            self._payload_cache.put(projected.preview_key, projected.payload)
        return raw if projected.minimal is None else projected.minimal

    async def _emit(self, event_type: EventType, data: dict[str, Any]) -> None:
        if self._event_bus:
            await self._event_bus.emit(AgentEvent(type=event_type, data=data))
