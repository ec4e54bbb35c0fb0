"""Async pub/sub EventBus that carries orchestrator notifications to callers."""

from __future__ import annotations

import inspect
import logging
from typing import Any, Callable

from open_relay.types import AgentEvent, EventType

_logger = logging.getLogger(__name__)

# Subscribing with this key receives every event type
WILDCARD = "*"

Handler = Callable[[AgentEvent], Any]


class EventBus:
    """Ordered async pub/sub for one or more runs.

    Handlers may be sync or async.  ``emit()`` runs matching handlers one
    at a time in subscription order and returns only after the last one,
    so every observer sees events in the order the orchestrator produced
    them.  A handler that raises is logged and skipped.
    """

    def __init__(self) -> None:
        self._subscriptions: list[tuple[str, Handler]] = []

    def subscribe(self, event_type: EventType | str, handler: Handler) -> Callable[[], None]:
        """Register *handler* for *event_type* (or ``"*"``).

        Returns a callable that removes this subscription; calling it more
        than once is harmless.
        """
        entry = (_key(event_type), handler)
        self._subscriptions.append(entry)

        def unsubscribe() -> None:
            for i, existing in enumerate(self._subscriptions):
                if existing is entry:
                    del self._subscriptions[i]
                    return

        return unsubscribe

    async def emit(self, event: AgentEvent) -> None:
        key = event.type.value
        # Snapshot: handlers may unsubscribe while the event is delivered.
        for sub_key, handler in list(self._subscriptions):
            if sub_key == key or sub_key == WILDCARD:
                await _deliver(handler, event)


def _key(event_type: EventType | str) -> str:
    if isinstance(event_type, EventType):
        return event_type.value
    return str(event_type)


async def _deliver(handler: Handler, event: AgentEvent) -> None:
    try:
        result = handler(event)
        if inspect.isawaitable(result):
            await result
    except Exception:
        _logger.exception(
            "Event handler %s failed on %s",
            getattr(handler, "__name__", handler),
            event.type.value,
        )
