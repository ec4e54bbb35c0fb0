"""Tests for the EventBus and RunCallbacks adapter."""

import asyncio

import pytest

from open_relay.events import EventBus, RunCallbacks
from open_relay.types import AgentEvent, EventType, TokenUsage


@pytest.fixture
def bus():
    return EventBus()


class TestDelivery:
    async def test_sync_and_async_handlers(self, bus: EventBus):
        received = []

        async def handler(event: AgentEvent):
            received.append(("async", event.type))

        bus.subscribe(EventType.AGENT_STARTED, handler)
        bus.subscribe(EventType.AGENT_STARTED, lambda e: received.append(("sync", e.type)))
        await bus.emit(AgentEvent(type=EventType.AGENT_STARTED))

        assert received == [
            ("async", EventType.AGENT_STARTED),
            ("sync", EventType.AGENT_STARTED),
        ]

    async def test_only_matching_type_or_wildcard(self, bus: EventBus):
        typed, everything = [], []
        bus.subscribe(EventType.TOOL_ENDED, lambda e: typed.append(e.type))
        bus.subscribe("*", lambda e: everything.append(e.type))

        await bus.emit(AgentEvent(type=EventType.TOOL_STARTED))
        await bus.emit(AgentEvent(type=EventType.TOOL_ENDED))

        assert typed == [EventType.TOOL_ENDED]
        assert everything == [EventType.TOOL_STARTED, EventType.TOOL_ENDED]

    async def test_handlers_run_in_subscription_order(self, bus: EventBus):
        order = []
        bus.subscribe("*", lambda e: order.append("wildcard"))
        bus.subscribe(EventType.LLM_TEXT, lambda e: order.append("typed"))

        await bus.emit(AgentEvent(type=EventType.LLM_TEXT))
        assert order == ["wildcard", "typed"]

    async def test_slow_handler_does_not_reorder_events(self, bus: EventBus):
        seen = []

        async def slow(event: AgentEvent):
            # The first event takes longer than the second.
            await asyncio.sleep(0.01 if event.data["n"] == 0 else 0)
            seen.append(event.data["n"])

        bus.subscribe(EventType.LLM_TEXT, slow)
        for n in range(3):
            await bus.emit(AgentEvent(EventType.LLM_TEXT, {"n": n}))

        assert seen == [0, 1, 2]

    async def test_emit_returns_after_handlers_finish(self, bus: EventBus):
        finished = asyncio.Event()

        async def handler(event: AgentEvent):
            await asyncio.sleep(0)
            finished.set()

        bus.subscribe(EventType.AGENT_DONE, handler)
        await bus.emit(AgentEvent(EventType.AGENT_DONE))
        assert finished.is_set()


class TestUnsubscribe:
    async def test_returned_callable_removes_handler(self, bus: EventBus):
        received = []
        remove = bus.subscribe(EventType.LLM_TEXT, received.append)
        remove()
        remove()

        await bus.emit(AgentEvent(type=EventType.LLM_TEXT))
        assert received == []

    async def test_same_handler_subscribed_twice_removed_once(self, bus: EventBus):
        received = []
        remove_first = bus.subscribe(EventType.LLM_TEXT, received.append)
        bus.subscribe(EventType.LLM_TEXT, received.append)
        remove_first()

        await bus.emit(AgentEvent(type=EventType.LLM_TEXT))
        assert len(received) == 1

    async def test_handler_may_unsubscribe_during_emit(self, bus: EventBus):
        received = []
        remove = None

        def once(event: AgentEvent):
            received.append(event.type)
            remove()

        remove = bus.subscribe(EventType.LLM_TEXT, once)
        await bus.emit(AgentEvent(type=EventType.LLM_TEXT))
        await bus.emit(AgentEvent(type=EventType.LLM_TEXT))

        assert received == [EventType.LLM_TEXT]


class TestErrorIsolation:
    async def test_failing_handler_does_not_block_others(self, bus: EventBus, caplog):
        received = []

        def broken(event):
            raise RuntimeError("handler bug")

        bus.subscribe(EventType.LLM_TEXT, broken)
        bus.subscribe(EventType.LLM_TEXT, received.append)

        await bus.emit(AgentEvent(type=EventType.LLM_TEXT))
        assert len(received) == 1
        assert "broken" in caplog.text


class TestRunCallbacks:
    async def test_routes_event_data_to_callables(self, bus: EventBus):
        calls = []

        async def on_done(text, reasoning):
            calls.append(("done", text, reasoning))

        RunCallbacks(
            on_text=lambda t: calls.append(("text", t)),
            on_tool_start=lambda i, n, a: calls.append(("start", i, n, a)),
            on_rate_limit_wait=lambda a, w, r: calls.append(("wait", a, w, r)),
            on_token_usage=lambda u: calls.append(("usage", u.total_tokens)),
            on_done=on_done,
        ).attach(bus)

        await bus.emit(AgentEvent(EventType.LLM_TEXT, {"text": "hi"}))
        await bus.emit(AgentEvent(
            EventType.TOOL_STARTED, {"call_id": "c1", "name": "t", "arguments": {}},
        ))
        await bus.emit(AgentEvent(
            EventType.LLM_RATE_LIMIT_WAIT, {"attempt": 1, "wait_ms": 1000, "reason": "r"},
        ))
        await bus.emit(AgentEvent(EventType.LLM_USAGE, {"usage": TokenUsage(total_tokens=9)}))
        await bus.emit(AgentEvent(
            EventType.AGENT_DONE,
            {"text": "a", "reasoning": "b", "steps": 1, "cancelled": False},
        ))

        assert calls == [
            ("text", "hi"),
            ("start", "c1", "t", {}),
            ("wait", 1, 1000, "r"),
            ("usage", 9),
            ("done", "a", "b"),
        ]

    async def test_unset_callbacks_ignore_their_events(self, bus: EventBus):
        texts = []
        RunCallbacks(on_text=texts.append).attach(bus)

        await bus.emit(AgentEvent(EventType.AGENT_ERROR, {"error": "x"}))
        await bus.emit(AgentEvent(EventType.LLM_TEXT, {"text": "t"}))
        assert texts == ["t"]

    async def test_detach_stops_delivery(self, bus: EventBus):
        texts, errors = [], []
        detach = RunCallbacks(on_text=texts.append, on_error=errors.append).attach(bus)

        await bus.emit(AgentEvent(EventType.LLM_TEXT, {"text": "before"}))
        detach()
        await bus.emit(AgentEvent(EventType.LLM_TEXT, {"text": "after"}))
        await bus.emit(AgentEvent(EventType.AGENT_ERROR, {"error": "x"}))

        assert texts == ["before"]
        assert errors == []
