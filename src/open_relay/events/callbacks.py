"""Plain-callable adapter over the EventBus.

Callers that just want ``on_text(chunk)`` style hooks can fill in a
``RunCallbacks`` and attach it to the bus instead of subscribing to raw
``AgentEvent`` objects.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import Any, Callable

from open_relay.events.bus import EventBus
from open_relay.types import AgentEvent, EventType


@dataclass
class RunCallbacks:
    on_text: Callable[[str], Any] | None = None
    on_reasoning: Callable[[str], Any] | None = None
    on_tool_start: Callable[[str, str, dict[str, Any]], Any] | None = None
    on_tool_end: Callable[[str, str, Any], Any] | None = None
    on_tool_error: Callable[[str, str, str], Any] | None = None
    on_token_usage: Callable[[Any], Any] | None = None
    on_rate_limit_wait: Callable[[int, int, str], Any] | None = None
    on_done: Callable[[str, str], Any] | None = None
    on_error: Callable[[str], Any] | None = None

    def attach(self, bus: EventBus) -> Callable[[], None]:
        """Subscribe every configured callback to its event type.

        Returns a callable that detaches all of them again.
        """
        routes: list[tuple[EventType, Callable[..., Any] | None, Callable[[dict], tuple]]] = [
            (EventType.LLM_TEXT, self.on_text, lambda d: (d["text"],)),
            (EventType.LLM_REASONING, self.on_reasoning, lambda d: (d["reasoning"],)),
            (
                EventType.TOOL_STARTED,
                self.on_tool_start,
                lambda d: (d["call_id"], d["name"], d["arguments"]),
            ),
            (
                EventType.TOOL_ENDED,
                self.on_tool_end,
                lambda d: (d["call_id"], d["name"], d["result"]),
            ),
            (
                EventType.TOOL_ERROR,
                self.on_tool_error,
                lambda d: (d["call_id"], d["name"], d["error"]),
            ),
            (EventType.LLM_USAGE, self.on_token_usage, lambda d: (d["usage"],)),
            (
                EventType.LLM_RATE_LIMIT_WAIT,
                self.on_rate_limit_wait,
                lambda d: (d["attempt"], d["wait_ms"], d["reason"]),
            ),
            (EventType.AGENT_DONE, self.on_done, lambda d: (d["text"], d["reasoning"])),
            (EventType.AGENT_ERROR, self.on_error, lambda d: (d["error"],)),
        ]
        removers = [
            bus.subscribe(event_type, _adapt(fn, unpack))
            for event_type, fn, unpack in routes
            if fn is not None
        ]

        def detach() -> None:
            for remove in removers:
                remove()

        return detach


def _adapt(
    fn: Callable[..., Any],
    unpack: Callable[[dict], tuple],
) -> Callable[[AgentEvent], Any]:
    async def _handler(event: AgentEvent) -> None:
        result = fn(*unpack(event.data))
        if inspect.isawaitable(result):
            await result

    _handler.__name__ = getattr(fn, "__name__", "callback")
    return _handler
