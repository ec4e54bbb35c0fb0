"""Shared data types for Open Relay."""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field
from typing import Any


# ---------------------------------------------------------------------------
# Reasoning extraction
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ReasoningState:
    """Extractor state carried between chunks of one streamed response.

    ``inside_tag`` means the previous chunk ended inside an unterminated
    ``<think>``/``<thought>`` span; ``buffer`` then holds everything consumed
    since the opening tag.
    """

    buffer: str = ""
    inside_tag: bool = False
    tag_name: str = ""


@dataclass(frozen=True)
class Extraction:
    """Output of a reasoning extractor for one chunk of text."""

    text: str
    reasoning: str
    state: ReasoningState


# ---------------------------------------------------------------------------
# Provider hook contexts
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RequestContext:
    """What a request transform / header supplier may know about a request."""

    model: str
    has_tools: bool
    temperature: float | None = None
    reasoning_effort: str | None = None
    include_thoughts: bool = False
    thinking_budget: int | None = None
    step: int = 0


@dataclass(frozen=True)
class ChunkContext:
    model: str
    provider: str


@dataclass
class ChunkInsight:
    """Provider-specific data pulled out of a raw chunk by a chunk inspector."""

    reasoning: str = ""
    thought_signature: str | None = None


# ---------------------------------------------------------------------------
# Step types
# ---------------------------------------------------------------------------

@dataclass
class ToolCallEntry:
    """One tool call assembled from streamed fragments."""

    id: str
    name: str = ""
    arguments: str = ""

    @property
    def is_valid(self) -> bool:
        return bool(self.id) and bool(self.name)

    def to_wire(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


@dataclass
class TokenUsage:
    """Token counts reported for a single step."""

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    cached_tokens: int = 0
    step: int = 0

    @classmethod
    def from_usage(cls, usage: dict[str, Any], step: int = 0) -> TokenUsage:
        """Build from an OpenAI-style ``usage`` object."""
        details = usage.get("prompt_tokens_details") or {}
        return cls(
            input_tokens=usage.get("prompt_tokens") or 0,
            output_tokens=usage.get("completion_tokens") or 0,
            total_tokens=usage.get("total_tokens") or 0,
            cached_tokens=details.get("cached_tokens") or 0,
            step=step,
        )


@dataclass
class StepResult:
    """Everything one model round produced."""

    text: str = ""
    reasoning: str = ""
    tool_calls: list[ToolCallEntry] = field(default_factory=list)
    usage: dict[str, Any] | None = None
    finish_reason: str | None = None
    thought_signature: str | None = None

    @property
    def has_tool_calls(self) -> bool:
        return len(self.tool_calls) > 0


@dataclass
class RunOutcome:
    """Final report of a run, returned by ``RunHandle.wait()``."""

    text: str = ""
    reasoning: str = ""
    steps: int = 0
    cancelled: bool = False
    error: str | None = None


# ---------------------------------------------------------------------------
# Event types
# ---------------------------------------------------------------------------

class EventType(enum.Enum):
    """Event types emitted by the orchestrator."""

    # Run lifecycle
    AGENT_STARTED = "agent.started"
    AGENT_DONE = "agent.done"
    AGENT_ERROR = "agent.error"
    AGENT_CANCELLED = "agent.cancelled"

    # LLM events
    LLM_REQUEST = "llm.request"
    LLM_TEXT = "llm.text"
    LLM_REASONING = "llm.reasoning"
    LLM_USAGE = "llm.usage"
    LLM_RATE_LIMIT_WAIT = "llm.rate_limit_wait"

    # Tool events
    TOOL_STARTED = "tool.started"
    TOOL_ENDED = "tool.ended"
    TOOL_ERROR = "tool.error"


@dataclass
class AgentEvent:
    """Event emitted through the EventBus."""

    type: EventType
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)
