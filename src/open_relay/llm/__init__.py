"""Streaming transport, chunk accumulation and retry for Open Relay."""

from open_relay.llm.accumulator import ChunkAccumulator, ChunkDelta, ToolCallAccumulator
from open_relay.llm.backoff import BackoffController, BackoffDecision, is_rate_limit_error
from open_relay.llm.client import AsyncStreamClient, ChatStream
from open_relay.llm.reasoning import extract_reasoning_tags

__all__ = [
    "AsyncStreamClient",
    "BackoffController",
    "BackoffDecision",
    "ChatStream",
    "ChunkAccumulator",
    "ChunkDelta",
    "ToolCallAccumulator",
    "extract_reasoning_tags",
    "is_rate_limit_error",
]
