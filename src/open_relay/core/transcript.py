"""Conversation transcript owned by the step loop.

Seed messages are normalized to the OpenAI chat format once, then the loop
appends assistant and tool-result messages in place.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from open_relay.providers.profile import TOOL_ROLE
from open_relay.types import StepResult

_logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

def _convert_part(part: Any) -> dict[str, Any] | None:
    if isinstance(part, str):
        return {"type": "text", "text": part}
    if not isinstance(part, dict):
        return None
    kind = part.get("type")
    if kind == "text":
        return {"type": "text", "text": part.get("text", "")}
    if kind == "image_url":
        return part
    if kind == "image":
        data = part.get("image", "")
        mime = part.get("mime_type") or part.get("mimeType") or "image/png"
        if isinstance(data, str) and data.startswith(("http", "data:")):
            url = data
        else:
            url = f"data:{mime};base64,{data}"
        return {"type": "image_url", "image_url": {"url": url}}
    _logger.debug("Dropping unsupported content part: %s", kind)
    return None


def normalize_content(content: Any) -> Any:
    """Convert multipart content to OpenAI parts.

    A lone text part collapses to a plain string and an empty part list to
    ``""``.
    """
    if content is None or isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = [p for p in (_convert_part(c) for c in content) if p is not None]
        if not parts:
            return ""
        if len(parts) == 1 and parts[0]["type"] == "text":
            return parts[0]["text"]
        return parts
    return content


def normalize_message(message: dict[str, Any]) -> dict[str, Any] | None:
    """Normalize one seed message; unknown roles are dropped."""
    role = message.get("role")
    if role in ("system", "user"):
        return {"role": role, "content": normalize_content(message.get("content")) or ""}
    if role == "assistant":
        out: dict[str, Any] = {"role": "assistant"}
        content = normalize_content(message.get("content"))
        if content:
            out["content"] = content
        if message.get("tool_calls"):
            out["tool_calls"] = list(message["tool_calls"])
        elif "content" not in out:
            out["content"] = ""
        return out
    if role == "tool":
        content = message.get("content")
        return {
            "role": "tool",
            "tool_call_id": message.get("tool_call_id") or message.get("toolCallId") or "",
            "content": content if isinstance(content, str) else json.dumps(content),
        }
    _logger.warning("Dropping message with unsupported role: %r", role)
    return None


# ---------------------------------------------------------------------------
# Transcript
# ---------------------------------------------------------------------------

class ConversationTranscript:
    """Ordered chat messages for one run.

    An ``Orchestrator`` appends to it in place, including the final
    assistant answer, so after a run it holds the full exchange.

    Parameters
    ----------
    system:
        System instructions; becomes the first message when non-empty.
    messages:
        Prior conversation, normalized on the way in.
    """

    def __init__(
        self,
        system: str = "",
        messages: list[dict[str, Any]] | None = None,
    ) -> None:
        self._messages: list[dict[str, Any]] = []
        if system:
            self._messages.append({"role": "system", "content": system})
        for m in messages or []:
            normalized = normalize_message(m)
            if normalized is not None:
                self._messages.append(normalized)
        self._pending: list[str] = []

    # -- appending --------------------------------------------------------

    def add_user(self, content: Any) -> None:
        self._messages.append({"role": "user", "content": normalize_content(content)})

    def add_assistant(self, text: str) -> None:
        self._messages.append({"role": "assistant", "content": text})

    def add_assistant_tool_calls(
        self,
        step: StepResult,
        echo_reasoning: bool = False,
    ) -> dict[str, Any]:
        """Append the assistant turn that requested ``step.tool_calls``.

        ``content`` is omitted when the step produced no text.
        """
        message: dict[str, Any] = {"role": "assistant"}
        if step.text:
            message["content"] = step.text
        message["tool_calls"] = [tc.to_wire() for tc in step.tool_calls]
        if echo_reasoning and step.reasoning:
            message["reasoning_content"] = step.reasoning
        if step.thought_signature:
            message["extra_content"] = {
                "google": {"thought_signature": step.thought_signature},
            }
        self._messages.append(message)
        self._pending = [tc.id for tc in step.tool_calls]
        return message

    def add_tool_result(
        self,
        call_id: str,
        name: str,
        content: str,
        role: str = TOOL_ROLE,
    ) -> None:
        """Append the result for *call_id* addressed with *role*."""
        if role == TOOL_ROLE:
            self._messages.append(
                {"role": "tool", "tool_call_id": call_id, "content": content},
            )
        else:
            self._messages.append(
                {"role": "user", "content": f"[Tool result for {name}]: {content}"},
            )
        if call_id in self._pending:
            self._pending.remove(call_id)

    # -- reading ----------------------------------------------------------

    @property
    def pending_tool_calls(self) -> list[str]:
        """Call ids of the last assistant turn still lacking a result."""
        return list(self._pending)

    def to_messages(self) -> list[dict[str, Any]]:
        """Shallow copy of the messages for a request body."""
        return [dict(m) for m in self._messages]

    @property
    def messages(self) -> list[dict[str, Any]]:
        return self._messages

    def __len__(self) -> int:
        return len(self._messages)
