"""Orchestrator: the multi-step streaming tool loop.

    build request -> open stream (with backoff) -> consume chunks
        -> tool calls?  dispatch and loop  :  report and stop

One ``Orchestrator`` drives one run.  ``start()`` schedules the run and
returns a ``RunHandle`` for cancellation and completion.

The caller's ``ConversationTranscript`` is updated in place: each tool
turn adds the assistant tool-call message and its results, and a run that
ends without tool calls also appends the final answer as an assistant
message.  Text from a cancelled step is never appended.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from open_relay.core.dispatcher import ToolDispatcher
from open_relay.core.transcript import ConversationTranscript
from open_relay.errors import ProviderError, RunCancelled
from open_relay.events.bus import EventBus
from open_relay.events.callbacks import RunCallbacks
from open_relay.llm.accumulator import ChunkAccumulator
from open_relay.llm.backoff import BackoffController
from open_relay.llm.client import AsyncStreamClient, ChatStream
from open_relay.providers.profile import ProviderProfile
from open_relay.tools.payload_cache import PayloadCache
from open_relay.tools.registry import ToolRegistry
from open_relay.types import (
    AgentEvent,
    EventType,
    ReasoningState,
    RequestContext,
    RunOutcome,
    StepResult,
    TokenUsage,
)

_logger = logging.getLogger(__name__)

DEFAULT_MAX_STEPS = 50


@dataclass
class RunParams:
    """Per-run request parameters.

    ``response_schema`` is sent as ``response_format.json_schema``.
    ``tool_meta`` is passed to every tool handler.
    """

    model: str
    temperature: float | None = None
    max_steps: int = DEFAULT_MAX_STEPS
    response_schema: dict[str, Any] | None = None
    include_thoughts: bool = False
    thinking_budget: int | None = None
    reasoning_effort: str | None = None
    tool_meta: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.max_steps < 1:
            raise ValueError(f"max_steps must be >= 1, got {self.max_steps}")


class RunHandle:
    """Cancellation trigger and completion signal for one run.

    ``cancel()`` is idempotent and has no effect once the run is done.
    """

    def __init__(self) -> None:
        self._cancel = asyncio.Event()
        self._task: asyncio.Task[RunOutcome] | None = None
        self._network_task: asyncio.Task[Any] | None = None

    def cancel(self) -> None:
        """Request cancellation; aborts any in-flight request."""
        if self.done or self._cancel.is_set():
            return
        self._cancel.set()
        if self._network_task is not None and not self._network_task.done():
            self._network_task.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    @property
    def outcome(self) -> RunOutcome | None:
        if not self.done:
            return None
        return self._task.result()

    async def wait(self) -> RunOutcome:
        """Wait for the run to finish.  Cancelling the waiter leaves the run alone."""
        if self._task is None:
            raise RuntimeError("Run has not been started")
        return await asyncio.shield(self._task)


class Orchestrator:
    """Streaming tool-calling loop against one provider.

    Parameters
    ----------
    profile:
        Provider endpoint and hooks, fixed for the run.
    registry:
        Tools offered to the model (optional).
    client:
        Streaming client.  If omitted one is created from *profile* and
        *api_key* and closed when the run ends.
    event_bus:
        Receives all run events.  A private bus is created if omitted.
    callbacks:
        Plain callables attached to the bus for the duration of the run.
    backoff:
        Retry controller for opening streams.
    payload_cache:
        Store for full tool payloads.
    """

    def __init__(
        self,
        profile: ProviderProfile,
        registry: ToolRegistry | None = None,
        client: AsyncStreamClient | None = None,
        api_key: str = "",
        event_bus: EventBus | None = None,
        callbacks: RunCallbacks | None = None,
        backoff: BackoffController | None = None,
        payload_cache: PayloadCache | None = None,
    ) -> None:
        self._profile = profile
        self._registry = registry or ToolRegistry()
        self._owns_client = client is None
        self._client = client or AsyncStreamClient(profile, api_key=api_key)
        self._event_bus = event_bus or EventBus()
        self._callbacks = callbacks
        self._backoff = backoff or BackoffController()
        self._payload_cache = payload_cache or PayloadCache()
        self._handle: RunHandle | None = None

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    @property
    def payload_cache(self) -> PayloadCache:
        return self._payload_cache

    def start(self, transcript: ConversationTranscript, params: RunParams) -> RunHandle:
        """Schedule the run on the current event loop."""
        if self._handle is not None:
            raise RuntimeError("Orchestrator already started; create one per run")
        handle = RunHandle()
        self._handle = handle
        handle._task = asyncio.create_task(self._run(transcript, params, handle))
        return handle

    async def run(self, transcript: ConversationTranscript, params: RunParams) -> RunOutcome:
        """Run to completion and return the outcome."""
        return await self.start(transcript, params).wait()

    # ------------------------------------------------------------------
    # Run loop
    # ------------------------------------------------------------------

    async def _run(
        self,
        transcript: ConversationTranscript,
        params: RunParams,
        handle: RunHandle,
    ) -> RunOutcome:
        detach = self._callbacks.attach(self._event_bus) if self._callbacks is not None else None
        try:
            return await self._loop(transcript, params, handle)
        finally:
            if detach is not None:
                detach()

    async def _loop(
        self,
        transcript: ConversationTranscript,
        params: RunParams,
        handle: RunHandle,
    ) -> RunOutcome:
        dispatcher = ToolDispatcher(
            self._registry,
            self._event_bus,
            result_role=self._profile.tool_result_role,
            payload_cache=self._payload_cache,
            meta=params.tool_meta,
        )
        texts: list[str] = []
        reasoning: list[str] = []
        step = 0
        error: str | None = None

        await self._emit(EventType.AGENT_STARTED, {
            "provider": self._profile.id,
            "model": params.model,
        })

        try:
            while step < params.max_steps and not handle.cancelled:
                step += 1
                result = await self._step(transcript, params, step, handle)
                if result is None:
                    break

                if result.usage:
                    await self._emit(EventType.LLM_USAGE, {
                        "usage": TokenUsage.from_usage(result.usage, step),
                    })
                if result.text:
                    texts.append(result.text)
                if result.reasoning:
                    reasoning.append(result.reasoning)

                _logger.debug(
                    "Step %d: %d chars, %d tool calls, finish=%s",
                    step, len(result.text), len(result.tool_calls), result.finish_reason,
                )

                # finish_reason is not trusted here: some providers report "stop"
                # alongside tool calls.
                if not result.has_tool_calls:
                    if result.text:
                        transcript.add_assistant(result.text)
                    break

                transcript.add_assistant_tool_calls(
                    result, echo_reasoning=self._profile.echo_reasoning,
                )
                await dispatcher.dispatch(
                    result.tool_calls, transcript, lambda: handle.cancelled,
                )
            else:
                if not handle.cancelled:
                    _logger.warning("Stopped after reaching max_steps=%d", params.max_steps)
        except Exception as e:
            if handle.cancelled:
                _logger.debug("Ignoring error after cancellation: %s", e)
            else:
                _logger.exception("Run failed")
                error = _error_message(e)
                await self._emit(EventType.AGENT_ERROR, {"error": error})
        finally:
            if self._owns_client:
                await self._client.close()

        outcome = RunOutcome(
            text="\n".join(texts),
            reasoning="\n".join(reasoning),
            steps=step,
            cancelled=handle.cancelled,
            error=error,
        )
        if error is None:
            if outcome.cancelled:
                await self._emit(EventType.AGENT_CANCELLED, {"steps": step})
            await self._emit(EventType.AGENT_DONE, {
                "text": outcome.text,
                "reasoning": outcome.reasoning,
                "steps": outcome.steps,
                "cancelled": outcome.cancelled,
            })
        return outcome

    async def _step(
        self,
        transcript: ConversationTranscript,
        params: RunParams,
        step: int,
        handle: RunHandle,
    ) -> StepResult | None:
        """One model round.  Returns None if the run was cancelled meanwhile."""
        accumulator = ChunkAccumulator(self._profile, params.model, ReasoningState())
        body, headers = self._build_request(transcript, params, step)
        await self._emit(EventType.LLM_REQUEST, {
            "step": step,
            "model": params.model,
            "messages": len(body.get("messages", [])),
        })

        network = asyncio.create_task(self._consume(body, headers, accumulator, handle))
        handle._network_task = network
        try:
            return await network
        except asyncio.CancelledError:
            if handle.cancelled:
                return None
            raise
        except RunCancelled:
            return None
        finally:
            handle._network_task = None

    async def _consume(
        self,
        body: dict[str, Any],
        headers: dict[str, str],
        accumulator: ChunkAccumulator,
        handle: RunHandle,
    ) -> StepResult:
        stream: ChatStream = await self._backoff.call(
            lambda: self._client.open_stream(body, headers),
            on_wait=self._on_rate_limit_wait,
            is_cancelled=lambda: handle.cancelled,
        )
        try:
            async for chunk in stream:
                if handle.cancelled:
                    raise RunCancelled()
                delta = accumulator.feed(chunk)
                if delta.text:
                    await self._emit(EventType.LLM_TEXT, {"text": delta.text})
                if delta.reasoning:
                    await self._emit(EventType.LLM_REASONING, {"reasoning": delta.reasoning})
        finally:
            await stream.aclose()
        _logger.debug("Stream closed after %d chunks", accumulator.chunk_count)
        return accumulator.finish()

    def _build_request(
        self,
        transcript: ConversationTranscript,
        params: RunParams,
        step: int,
    ) -> tuple[dict[str, Any], dict[str, str]]:
        has_tools = bool(self._registry)
        body: dict[str, Any] = {
            "model": params.model,
            "messages": transcript.to_messages(),
            "stream": True,
        }
        if has_tools:
            body["tools"] = self._registry.wire_schemas()
            body["tool_choice"] = "auto"
        if params.temperature is not None:
            body["temperature"] = params.temperature
        if params.response_schema:
            body["response_format"] = {
                "type": "json_schema",
                "json_schema": params.response_schema,
            }

        ctx = RequestContext(
            model=params.model,
            has_tools=has_tools,
            temperature=params.temperature,
            reasoning_effort=params.reasoning_effort,
            include_thoughts=params.include_thoughts,
            thinking_budget=params.thinking_budget,
            step=step,
        )
        if self._profile.request_transform is not None:
            body = self._profile.request_transform(body, ctx)
        headers: dict[str, str] = {}
        if self._profile.header_supplier is not None:
            headers.update(self._profile.header_supplier(ctx))
        return body, headers

    async def _on_rate_limit_wait(self, attempt: int, wait_ms: int, reason: str) -> None:
        await self._emit(EventType.LLM_RATE_LIMIT_WAIT, {
            "attempt": attempt,
            "wait_ms": wait_ms,
            "reason": reason,
        })

    async def _emit(self, event_type: EventType, data: dict[str, Any]) -> None:
        await self._event_bus.emit(AgentEvent(type=event_type, data=data))


def _error_message(err: BaseException) -> str:
    if isinstance(err, ProviderError):
        return err.message
    return str(err) or type(err).__name__
