"""Fold streamed chat-completion chunks into a ``StepResult``."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from open_relay.llm.reasoning import new_reasoning
from open_relay.providers.profile import ProviderProfile
from open_relay.types import (
    ChunkContext,
    ReasoningState,
    StepResult,
    ToolCallEntry,
)

_logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# ToolCallAccumulator
# ---------------------------------------------------------------------------

class ToolCallAccumulator:
    """Assemble tool calls from ``delta.tool_calls`` fragments.

    Entries are keyed by call id.  Providers deliver calls two ways:

    - each parallel call as one complete fragment, all sharing ``index`` 0
      but with distinct ids;
    - the id and name once, then argument text in id-less fragments under a
      stable ``index``.

    A fragment with an id updates (or creates) that id's entry; a fragment
    without one continues the latest entry seen at its index.
    """

    def __init__(self) -> None:
        self._entries: dict[str, ToolCallEntry] = {}
        self._latest_by_index: dict[int, str] = {}

    def feed(self, fragments: list[dict[str, Any]] | None) -> None:
        for frag in fragments or []:
            func = frag.get("function") or {}
            index = frag.get("index", 0)
            call_id = frag.get("id") or self._latest_by_index.get(index)
            if not call_id:
                _logger.debug("Dropping tool-call fragment without id: %s", frag)
                continue

            entry = self._entries.get(call_id)
            if entry is None:
                entry = ToolCallEntry(id=call_id)
                self._entries[call_id] = entry
            self._latest_by_index[index] = call_id

            if func.get("name"):
                entry.name = func["name"]
            if func.get("arguments"):
                entry.arguments += func["arguments"]

    def valid(self) -> list[ToolCallEntry]:
        """Entries with both an id and a name."""
        return [e for e in self._entries.values() if e.is_valid]


# ---------------------------------------------------------------------------
# ChunkAccumulator
# ---------------------------------------------------------------------------

@dataclass
class ChunkDelta:
    """What one chunk contributed to the visible and reasoning streams."""

    text: str = ""
    reasoning: str = ""


class ChunkAccumulator:
    """Consumes one streamed response.

    ``feed()`` returns the new visible text and reasoning for each chunk so
    the caller can forward them immediately; ``finish()`` returns the
    consolidated step.

    Parameters
    ----------
    profile:
        Supplies the optional reasoning extractor and chunk inspector.
    model:
        Passed to the chunk inspector.
    state:
        Initial extractor state; a fresh ``ReasoningState()`` per step.
    """

    def __init__(
        self,
        profile: ProviderProfile,
        model: str,
        state: ReasoningState | None = None,
    ) -> None:
        self._profile = profile
        self._ctx = ChunkContext(model=model, provider=profile.id)
        self.reasoning_state = state or ReasoningState()
        self.tool_calls = ToolCallAccumulator()
        self._text: list[str] = []
        self._reasoning: list[str] = []
        self.usage: dict[str, Any] | None = None
        self.finish_reason: str | None = None
        self.thought_signature: str | None = None
        self.chunk_count = 0

    def feed(self, chunk: dict[str, Any]) -> ChunkDelta:
        self.chunk_count += 1
        out = ChunkDelta()

        choices = chunk.get("choices") or []
        choice = choices[0] if choices else {}
        delta = choice.get("delta") or {}

        if choice.get("finish_reason"):
            self.finish_reason = choice["finish_reason"]

        content = delta.get("content")
        if isinstance(content, str) and content:
            self._feed_text(content, out)

        # Dedicated reasoning fields: "reasoning" (OpenRouter), "reasoning_content" (GLM, DeepSeek)
        native = delta.get("reasoning") or delta.get("reasoning_content")
        if isinstance(native, str) and native:
            out.reasoning += native

        self.tool_calls.feed(delta.get("tool_calls"))

        google = (chunk.get("extra_content") or {}).get("google") or {}
        if google.get("thought_signature"):
            self.thought_signature = google["thought_signature"]

        if self._profile.chunk_inspector is not None:
            insight = self._profile.chunk_inspector(chunk, delta, self._ctx)
            if insight.reasoning:
                out.reasoning += insight.reasoning
            if insight.thought_signature:
                self.thought_signature = insight.thought_signature

        if chunk.get("usage"):
            self.usage = chunk["usage"]

        if out.text:
            self._text.append(out.text)
        if out.reasoning:
            self._reasoning.append(out.reasoning)
        return out

    def _feed_text(self, content: str, out: ChunkDelta) -> None:
        extractor = self._profile.reasoning_extractor
        if extractor is None:
            out.text += content
            return
        prior = self.reasoning_state
        result = extractor(content, prior)
        self.reasoning_state = result.state
        out.text += result.text
        out.reasoning += new_reasoning(prior, result)

    @property
    def text(self) -> str:
        return "".join(self._text)

    @property
    def reasoning(self) -> str:
        return "".join(self._reasoning)

    def finish(self) -> StepResult:
        """Close out the step.  Only valid tool calls are returned."""
        return StepResult(
            text=self.text,
            reasoning=self.reasoning,
            tool_calls=self.tool_calls.valid(),
            usage=self.usage,
            finish_reason=self.finish_reason,
            thought_signature=self.thought_signature,
        )
