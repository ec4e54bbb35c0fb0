"""Provider profile: endpoint plus optional per-vendor hooks.

Vendors speak the same chat-completions protocol with small deviations.
Each deviation is a hook on the profile, chosen once when a run is
configured:

- ``request_transform(body, ctx) -> body``  rewrite the request body
- ``chunk_inspector(chunk, delta, ctx) -> ChunkInsight``  pull extra
  reasoning / thought signatures out of raw chunks
- ``reasoning_extractor(text, state) -> Extraction``  split inline
  thinking markup from visible text
- ``header_supplier(ctx) -> dict``  extra headers per request
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Callable

from open_relay.types import (
    ChunkContext,
    ChunkInsight,
    Extraction,
    ReasoningState,
    RequestContext,
)

RequestTransform = Callable[[dict[str, Any], RequestContext], dict[str, Any]]
ChunkInspector = Callable[[dict[str, Any], dict[str, Any], ChunkContext], ChunkInsight]
ReasoningExtractor = Callable[[str, ReasoningState], Extraction]
HeaderSupplier = Callable[[RequestContext], dict[str, str]]

TOOL_ROLE = "tool"
USER_ROLE = "user"


@dataclass(frozen=True)
class ProviderProfile:
    """Immutable description of one OpenAI-compatible provider.

    ``tool_result_role`` is ``"tool"`` for the native tool-result message,
    or ``"user"`` for providers that reject the tool role; results are then
    sent as user messages prefixed with the tool name.  ``echo_reasoning``
    adds ``reasoning_content`` to assistant tool-call messages for models
    with interleaved thinking.
    """

    id: str
    base_url: str
    default_headers: dict[str, str] = field(default_factory=dict)
    request_transform: RequestTransform | None = None
    chunk_inspector: ChunkInspector | None = None
    reasoning_extractor: ReasoningExtractor | None = None
    header_supplier: HeaderSupplier | None = None
    tool_result_role: str = TOOL_ROLE
    echo_reasoning: bool = True
    api_key_env: str = ""

    def __post_init__(self) -> None:
        if self.tool_result_role not in (TOOL_ROLE, USER_ROLE):
            raise ValueError(
                f"tool_result_role must be 'tool' or 'user', got {self.tool_result_role!r}"
            )

    def with_overrides(self, **changes: Any) -> ProviderProfile:
        """Return a copy with *changes* applied; hooks are kept."""
        return replace(self, **changes)
