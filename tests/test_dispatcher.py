"""Tests for ToolDispatcher."""

from __future__ import annotations

import json

import pytest

from open_relay.core.dispatcher import ToolDispatcher, parse_arguments
from open_relay.core.transcript import ConversationTranscript
from open_relay.events.bus import EventBus
from open_relay.tools import FunctionTool, ModelResult, PayloadCache, ToolRegistry
from open_relay.types import EventType, StepResult, ToolCallEntry


def _call(id: str, name: str, arguments: str = "{}") -> ToolCallEntry:
    return ToolCallEntry(id=id, name=name, arguments=arguments)


def _transcript_with(calls: list[ToolCallEntry]) -> ConversationTranscript:
    transcript = ConversationTranscript(system="sys")
    transcript.add_user("go")
    transcript.add_assistant_tool_calls(StepResult(tool_calls=calls))
    return transcript


class RecordingBus(EventBus):
    def __init__(self) -> None:
        super().__init__()
        self.history: list = []
        self.subscribe("*", self.history.append)


def _fail(args, meta):
    raise RuntimeError("disk on fire")


@pytest.fixture
def bus() -> RecordingBus:
    return RecordingBus()


@pytest.fixture
def registry() -> ToolRegistry:
    return ToolRegistry([
        FunctionTool("add", lambda a, m: a.get("x", 0) + a.get("y", 0)),
        FunctionTool("fail", _fail),
        FunctionTool("web.search", lambda a, m: {"hits": [a.get("q")]}),
    ])


class TestParseArguments:
    @pytest.mark.parametrize("raw, expected", [
        ('{"a": 1}', {"a": 1}),
        ("", {}),
        ("{not json", {}),
        ("[1, 2]", {}),
        ('"str"', {}),
    ])
    def test_parse(self, raw, expected):
        assert parse_arguments(raw) == expected


class TestDispatch:
    async def test_one_result_per_call_in_order(self, registry, bus):
        calls = [
            _call("c1", "add", '{"x": 2, "y": 3}'),
            _call("c2", "fail"),
            _call("c3", "nope"),
            _call("c4", "add", "{broken"),
        ]
        transcript = _transcript_with(calls)
        dispatcher = ToolDispatcher(registry, bus)

        executed = await dispatcher.dispatch(calls, transcript)

        results = transcript.messages[-4:]
        assert [m["tool_call_id"] for m in results] == ["c1", "c2", "c3", "c4"]
        assert [m["role"] for m in results] == ["tool"] * 4
        assert results[0]["content"] == "5"
        assert json.loads(results[1]["content"]) == {"error": "disk on fire"}
        assert json.loads(results[2]["content"]) == {"error": "Tool not found: nope"}
        assert results[3]["content"] == "0"
        assert executed == 4
        assert transcript.pending_tool_calls == []

    async def test_events(self, registry, bus):
        calls = [_call("c1", "web_search", '{"q": "cats"}'), _call("c2", "fail"), _call("c3", "ghost")]
        dispatcher = ToolDispatcher(registry, bus)

        await dispatcher.dispatch(calls, _transcript_with(calls))

        events = [(e.type, e.data) for e in bus.history]
        assert events[0] == (
            EventType.TOOL_STARTED,
            {"call_id": "c1", "name": "web.search", "arguments": {"q": "cats"}},
        )
        assert events[1] == (
            EventType.TOOL_ENDED,
            {"call_id": "c1", "name": "web.search", "result": {"hits": ["cats"]}},
        )
        assert events[2][0] == EventType.TOOL_STARTED
        assert events[3] == (
            EventType.TOOL_ERROR,
            {"call_id": "c2", "name": "fail", "error": "disk on fire"},
        )
        assert events[5] == (
            EventType.TOOL_ERROR,
            {"call_id": "c3", "name": "ghost", "error": "Tool not found: ghost"},
        )

    async def test_user_role_results(self, registry, bus):
        calls = [_call("c1", "web_search", '{"q": "x"}'), _call("c2", "nope")]
        transcript = _transcript_with(calls)
        dispatcher = ToolDispatcher(registry, bus, result_role="user")

        await dispatcher.dispatch(calls, transcript)

        first, second = transcript.messages[-2:]
        assert first == {
            "role": "user",
            "content": '[Tool result for web.search]: {"hits": ["x"]}',
        }
        assert second["role"] == "user"
        assert second["content"].startswith("[Tool result for nope]: ")

    async def test_meta_passed_to_handler(self, bus):
        seen = {}

        def handler(args, meta):
            seen.update(meta)
            return "ok"

        registry = ToolRegistry([FunctionTool("t", handler)])
        calls = [_call("c9", "t")]
        dispatcher = ToolDispatcher(registry, bus, meta={"session": "s1"})

        await dispatcher.dispatch(calls, _transcript_with(calls))

        assert seen == {"session": "s1", "call_id": "c9"}

    async def test_async_handler(self, bus):
        async def handler(args, meta):
            return ["a", "b"]

        registry = ToolRegistry([FunctionTool("t", handler)])
        calls = [_call("c1", "t")]
        transcript = _transcript_with(calls)

        await ToolDispatcher(registry, bus).dispatch(calls, transcript)

        assert transcript.messages[-1]["content"] == '["a", "b"]'


class TestProjection:
    async def test_minimal_enters_transcript_payload_cached(self, bus):
        cache = PayloadCache()
        tool = FunctionTool(
            "query",
            lambda a, m: {"rows": list(range(100))},
            projector=lambda raw: ModelResult(
                minimal={"count": len(raw["rows"])}, payload=raw, preview_key="q-1",
            ),
        )
        calls = [_call("c1", "query")]
        transcript = _transcript_with(calls)

        await ToolDispatcher(ToolRegistry([tool]), bus, payload_cache=cache).dispatch(
            calls, transcript,
        )

        assert transcript.messages[-1]["content"] == '{"count": 100}'
        assert cache.get("q-1") == {"rows": list(range(100))}
        ended = [e for e in bus.history if e.type == EventType.TOOL_ENDED][0]
        assert ended.data["result"] == {"count": 100}

    async def test_failing_projection_falls_back_to_raw(self, bus):
        def broken(raw):
            raise ValueError("bad projection")

        tool = FunctionTool("t", lambda a, m: "raw", projector=broken)
        calls = [_call("c1", "t")]
        transcript = _transcript_with(calls)

        await ToolDispatcher(ToolRegistry([tool]), bus).dispatch(calls, transcript)

        assert transcript.messages[-1]["content"] == "raw"

    async def test_payload_without_key_not_cached(self, bus):
        cache = PayloadCache()
        tool = FunctionTool(
            "t", lambda a, m: "big",
            projector=lambda raw: ModelResult(minimal="small", payload=raw),
        )
        calls = [_call("c1", "t")]

        await ToolDispatcher(ToolRegistry([tool]), bus, payload_cache=cache).dispatch(
            calls, _transcript_with(calls),
        )

        assert len(cache) == 0


class TestCancellation:
    async def test_remaining_calls_get_cancelled_results(self, bus):
        flag = {"cancelled": False}
        ran = []

        def first(args, meta):
            ran.append("first")
            flag["cancelled"] = True
            return "done"

        registry = ToolRegistry([
            FunctionTool("first", first),
            FunctionTool("second", lambda a, m: ran.append("second")),
        ])
        calls = [_call("c1", "first"), _call("c2", "second"), _call("c3", "second")]
        transcript = _transcript_with(calls)

        executed = await ToolDispatcher(registry, bus).dispatch(
            calls, transcript, lambda: flag["cancelled"],
        )

        assert ran == ["first"]
        assert executed == 1
        results = transcript.messages[-3:]
        assert [m["tool_call_id"] for m in results] == ["c1", "c2", "c3"]
        assert json.loads(results[1]["content"]) == {"error": "Cancelled"}
        assert json.loads(results[2]["content"]) == {"error": "Cancelled"}
        assert transcript.pending_tool_calls == []
