"""Inline reasoning-tag extraction for streamed text.

Some providers interleave "thinking" inside ordinary content using
``<think>...</think>`` or ``<thought>...</thought>``, and a single span can
be split over many stream chunks.  ``extract_reasoning_tags`` separates the
two channels for one chunk, threading an explicit ``ReasoningState`` between
calls so that no hidden state lives in this module.
"""

from __future__ import annotations

import re

from open_relay.types import Extraction, ReasoningState

TAG_NAMES = ("think", "thought")

EMPTY_STATE = ReasoningState()

# A complete span: the closing tag must repeat the opening tag's name.
_SPAN_RE = re.compile(r"<(think|thought)>(.*?)</\1>", re.DOTALL)
_OPEN_RE = re.compile(r"<(think|thought)>")


def _strip_spans(text: str) -> str:
    return _SPAN_RE.sub("", text)


def extract_reasoning_tags(text: str, state: ReasoningState) -> Extraction:
    """Split *text* into visible text and reasoning.

    When *state* says the previous chunk ended inside a tag, the chunk is
    searched for that tag's closing marker only; ``</thought>`` never closes
    a ``<think>`` span and vice versa.  On close, the returned reasoning is
    the whole span (buffered content plus this chunk's part) and everything
    after the closing marker is visible.

    Otherwise complete spans are removed and their contents concatenated.  If
    an opening tag is left unterminated after the last complete span, the
    text after it starts a new buffered span; its content so far is reported
    as reasoning and kept in the returned state.
    """
    if state.inside_tag and state.tag_name in TAG_NAMES:
        closing = f"</{state.tag_name}>"
        end = text.find(closing)
        if end < 0:
            return Extraction(
                text="",
                reasoning="",
                state=ReasoningState(
                    buffer=state.buffer + text,
                    inside_tag=True,
                    tag_name=state.tag_name,
                ),
            )
        return Extraction(
            text=text[end + len(closing):],
            reasoning=state.buffer + text[:end],
            state=EMPTY_STATE,
        )

    reasoning_parts: list[str] = []
    last_end = 0
    for match in _SPAN_RE.finditer(text):
        reasoning_parts.append(match.group(2))
        last_end = match.end()

    open_match = _OPEN_RE.search(text, last_end)
    if open_match is not None:
        tail = text[open_match.end():]
        reasoning_parts.append(tail)
        return Extraction(
            text=_strip_spans(text[:open_match.start()]),
            reasoning="".join(reasoning_parts),
            state=ReasoningState(
                buffer=tail,
                inside_tag=True,
                tag_name=open_match.group(1),
            ),
        )

    return Extraction(
        text=_strip_spans(text),
        reasoning="".join(reasoning_parts),
        state=EMPTY_STATE,
    )


def new_reasoning(prior: ReasoningState, result: Extraction) -> str:
    """Return the part of *result*'s reasoning not already reported.

    ``extract_reasoning_tags`` reports an open span's content when the span
    opens and again, in full, when it closes.  Callers that stream reasoning
    incrementally use this to forward each character exactly once, including
    the content of chunks that land entirely inside a span.
    """
    if not prior.inside_tag:
        return result.reasoning
    if result.state.inside_tag:
        return result.state.buffer[len(prior.buffer):]
    return result.reasoning[len(prior.buffer):]
