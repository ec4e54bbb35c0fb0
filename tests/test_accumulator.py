"""Tests for chunk and tool-call accumulation."""

from __future__ import annotations

from open_relay.llm.accumulator import ChunkAccumulator, ToolCallAccumulator
from open_relay.llm.reasoning import extract_reasoning_tags
from open_relay.providers import get_profile
from open_relay.providers.profile import ProviderProfile
from open_relay.types import ChunkInsight


def _chunk(content=None, tool_calls=None, finish_reason=None, **delta_extra) -> dict:
    delta = dict(delta_extra)
    if content is not None:
        delta["content"] = content
    if tool_calls is not None:
        delta["tool_calls"] = tool_calls
    return {"choices": [{"delta": delta, "finish_reason": finish_reason}]}


def _tc(index=0, id=None, name=None, arguments=None) -> dict:
    frag: dict = {"index": index, "function": {}}
    if id is not None:
        frag["id"] = id
    if name is not None:
        frag["function"]["name"] = name
    if arguments is not None:
        frag["function"]["arguments"] = arguments
    return frag


PLAIN = ProviderProfile(id="plain", base_url="http://localhost/v1")
THINKING = ProviderProfile(
    id="thinking", base_url="http://localhost/v1", reasoning_extractor=extract_reasoning_tags,
)


class TestToolCallAccumulator:
    def test_incremental_arguments_under_stable_index(self):
        acc = ToolCallAccumulator()
        acc.feed([_tc(0, id="call_1", name="search", arguments="")])
        acc.feed([_tc(0, arguments='{"q": ')])
        acc.feed([_tc(0, arguments='"cats"}')])

        [entry] = acc.valid()
        assert entry.id == "call_1"
        assert entry.name == "search"
        assert entry.arguments == '{"q": "cats"}'

    def test_parallel_calls_same_index_distinct_ids(self):
        acc = ToolCallAccumulator()
        acc.feed([_tc(0, id="a", name="read", arguments='{"p": 1}')])
        acc.feed([_tc(0, id="b", name="read", arguments='{"p": 2}')])

        calls = acc.valid()
        assert [c.id for c in calls] == ["a", "b"]
        assert [c.arguments for c in calls] == ['{"p": 1}', '{"p": 2}']

    def test_repeated_id_completes_name_and_appends(self):
        acc = ToolCallAccumulator()
        acc.feed([_tc(0, id="x", arguments='{"a":')])
        acc.feed([_tc(0, id="x", name="calc", arguments="1}")])

        [entry] = acc.valid()
        assert entry.name == "calc"
        assert entry.arguments == '{"a":1}'

    def test_entries_without_name_are_invalid(self):
        acc = ToolCallAccumulator()
        acc.feed([_tc(0, id="x", arguments="{}")])
        assert acc.valid() == []

    def test_fragment_without_any_id_is_dropped(self):
        acc = ToolCallAccumulator()
        acc.feed([_tc(3, name="orphan", arguments="{}")])
        assert acc.valid() == []

    def test_multiple_indices(self):
        acc = ToolCallAccumulator()
        acc.feed([_tc(0, id="a", name="one"), _tc(1, id="b", name="two")])
        acc.feed([_tc(1, arguments="{}"), _tc(0, arguments='{"x":1}')])

        a, b = acc.valid()
        assert a.arguments == '{"x":1}'
        assert b.arguments == "{}"


class TestChunkAccumulator:
    def test_plain_text(self):
        acc = ChunkAccumulator(PLAIN, "m")
        deltas = [acc.feed(_chunk("Hel")), acc.feed(_chunk("lo", finish_reason="stop"))]

        assert [d.text for d in deltas] == ["Hel", "lo"]
        step = acc.finish()
        assert step.text == "Hello"
        assert step.reasoning == ""
        assert step.finish_reason == "stop"
        assert not step.has_tool_calls

    def test_inline_tags_split_incrementally(self):
        acc = ChunkAccumulator(THINKING, "m")
        deltas = [
            acc.feed(_chunk("Hi <think>a")),
            acc.feed(_chunk("b")),
            acc.feed(_chunk("c</think> there")),
        ]

        assert [d.text for d in deltas] == ["Hi ", "", " there"]
        assert [d.reasoning for d in deltas] == ["a", "b", "c"]
        step = acc.finish()
        assert step.text == "Hi  there"
        assert step.reasoning == "abc"

    def test_tags_untouched_without_extractor(self):
        acc = ChunkAccumulator(PLAIN, "m")
        acc.feed(_chunk("<think>x</think>y"))
        assert acc.finish().text == "<think>x</think>y"

    def test_dedicated_reasoning_fields_are_additive(self):
        acc = ChunkAccumulator(THINKING, "m")
        acc.feed(_chunk(reasoning="native "))
        acc.feed(_chunk(reasoning_content="glm "))
        acc.feed(_chunk("<think>inline</think>done"))

        step = acc.finish()
        assert step.reasoning == "native glm inline"
        assert step.text == "done"

    def test_usage_replaces_snapshot_and_counts_without_choices(self):
        acc = ChunkAccumulator(PLAIN, "m")
        acc.feed({"choices": [], "usage": {"prompt_tokens": 1}})
        acc.feed({"usage": {"prompt_tokens": 5, "completion_tokens": 2}})

        assert acc.finish().usage == {"prompt_tokens": 5, "completion_tokens": 2}

    def test_only_valid_tool_calls_returned(self):
        acc = ChunkAccumulator(PLAIN, "m")
        acc.feed(_chunk(tool_calls=[_tc(0, id="a", name="go", arguments="{}")]))
        acc.feed(_chunk(tool_calls=[_tc(1, id="b", arguments="{}")]))

        step = acc.finish()
        assert [c.id for c in step.tool_calls] == ["a"]

    def test_native_thought_signature(self):
        acc = ChunkAccumulator(PLAIN, "m")
        acc.feed({
            "choices": [{"delta": {"content": "x"}}],
            "extra_content": {"google": {"thought_signature": "sig-1"}},
        })
        assert acc.finish().thought_signature == "sig-1"

    def test_chunk_inspector_merges_reasoning_and_signature(self):
        seen = []

        def inspector(chunk, delta, ctx):
            seen.append((ctx.model, ctx.provider))
            return ChunkInsight(reasoning=delta.get("custom", ""), thought_signature="sig")

        profile = ProviderProfile(id="custom", base_url="http://x", chunk_inspector=inspector)
        acc = ChunkAccumulator(profile, "model-a")
        delta = acc.feed(_chunk(custom="deep"))
        acc.feed({"usage": {"total_tokens": 3}})

        assert delta.reasoning == "deep"
        step = acc.finish()
        assert step.thought_signature == "sig"
        assert seen == [("model-a", "custom"), ("model-a", "custom")]

    def test_gemini_signature_on_tool_call(self):
        acc = ChunkAccumulator(get_profile("gemini"), "gemini-3-pro")
        frag = _tc(0, id="c1", name="f", arguments="{}")
        frag["extra_content"] = {"google": {"thought_signature": "tc-sig"}}
        acc.feed(_chunk(tool_calls=[frag]))

        step = acc.finish()
        assert step.thought_signature == "tc-sig"
        assert step.tool_calls[0].name == "f"
