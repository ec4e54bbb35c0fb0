"""Built-in provider profiles."""

from __future__ import annotations

import logging
from typing import Any

from open_relay.errors import ConfigError
from open_relay.llm.reasoning import extract_reasoning_tags
from open_relay.providers.capabilities import (
    supports_extended_thinking,
    supports_reasoning_effort,
    thinking_budget_for,
)
from open_relay.providers.profile import USER_ROLE, ProviderProfile
from open_relay.types import ChunkContext, ChunkInsight, RequestContext

_logger = logging.getLogger(__name__)

_FLASH_MAX_TEMPERATURE = 0.7


def _with_usage(body: dict[str, Any]) -> dict[str, Any]:
    return {**body, "stream_options": {"include_usage": True}}


# ---------------------------------------------------------------------------
# OpenAI
# ---------------------------------------------------------------------------

def _openai_request(body: dict[str, Any], ctx: RequestContext) -> dict[str, Any]:
    body = _with_usage(body)
    if ctx.reasoning_effort and supports_reasoning_effort(ctx.model):
        body["reasoning_effort"] = ctx.reasoning_effort
    return body


OPENAI = ProviderProfile(
    id="openai",
    base_url="https://api.openai.com/v1",
    request_transform=_openai_request,
    echo_reasoning=False,
    api_key_env="OPENAI_API_KEY",
)


# ---------------------------------------------------------------------------
# OpenRouter
# ---------------------------------------------------------------------------

def _openrouter_request(body: dict[str, Any], ctx: RequestContext) -> dict[str, Any]:
    body = _with_usage(body)
    body["reasoning"] = {"enabled": True}
    return body


OPENROUTER = ProviderProfile(
    id="openrouter",
    base_url="https://openrouter.ai/api/v1",
    default_headers={"HTTP-Referer": "https://github.com/open-relay", "X-Title": "Open Relay"},
    request_transform=_openrouter_request,
    api_key_env="OPENROUTER_API_KEY",
)


# ---------------------------------------------------------------------------
# Gemini (OpenAI-compatible endpoint)
# ---------------------------------------------------------------------------

def _gemini_request(body: dict[str, Any], ctx: RequestContext) -> dict[str, Any]:
    """Clamp flash temperature, add thinking config, keep tools only if used."""
    body = dict(body)
    tools = body.pop("tools", None)
    body.pop("tool_choice", None)
    temperature = body.pop("temperature", None)

    if "flash" in ctx.model:
        body["temperature"] = min(
            temperature if temperature is not None else 1, _FLASH_MAX_TEMPERATURE,
        )
    elif temperature is not None:
        body["temperature"] = temperature

    if ctx.include_thoughts and supports_extended_thinking(ctx.model):
        body["extra_body"] = {
            "google": {
                "thinking_config": {
                    "thinking_budget": thinking_budget_for(
                        ctx.reasoning_effort, ctx.thinking_budget,
                    ),
                    "include_thoughts": True,
                },
            },
        }

    if ctx.has_tools and tools:
        body["tools"] = tools
        body["tool_choice"] = "auto"
    return body


def _google_signature(obj: Any) -> str | None:
    if not isinstance(obj, dict):
        return None
    google = (obj.get("extra_content") or {}).get("google") or {}
    return google.get("thought_signature") or None


def _gemini_inspect(
    chunk: dict[str, Any], delta: dict[str, Any], ctx: ChunkContext,
) -> ChunkInsight:
    """Thought signatures ride on the chunk or on individual tool calls."""
    signature = _google_signature(chunk) or _google_signature(delta)
    for tc in delta.get("tool_calls") or []:
        signature = _google_signature(tc) or signature
    return ChunkInsight(thought_signature=signature)


GEMINI = ProviderProfile(
    id="gemini",
    base_url="https://generativelanguage.googleapis.com/v1beta/openai",
    request_transform=_gemini_request,
    chunk_inspector=_gemini_inspect,
    reasoning_extractor=extract_reasoning_tags,
    tool_result_role=USER_ROLE,
    api_key_env="GEMINI_API_KEY",
)


# ---------------------------------------------------------------------------
# Fireworks / xAI / local servers
# ---------------------------------------------------------------------------

FIREWORKS = ProviderProfile(
    id="fireworks",
    base_url="https://api.fireworks.ai/inference/v1",
    request_transform=lambda body, ctx: _with_usage(body),
    reasoning_extractor=extract_reasoning_tags,
    api_key_env="FIREWORKS_API_KEY",
)

XAI = ProviderProfile(
    id="xai",
    base_url="https://api.x.ai/v1",
    api_key_env="XAI_API_KEY",
)

# Ollama / LM Studio / llama.cpp; Qwen3-style models emit inline <think>.
LOCAL = ProviderProfile(
    id="local",
    base_url="http://localhost:11434/v1",
    request_transform=lambda body, ctx: _with_usage(body),
    reasoning_extractor=extract_reasoning_tags,
)


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------

_PROFILES: dict[str, ProviderProfile] = {
    p.id: p for p in (OPENAI, OPENROUTER, GEMINI, FIREWORKS, XAI, LOCAL)
}


def register_profile(profile: ProviderProfile) -> None:
    """Add or replace a profile under ``profile.id``."""
    if profile.id in _PROFILES:
        _logger.info("Replacing provider profile %s", profile.id)
    _PROFILES[profile.id] = profile


def get_profile(name: str) -> ProviderProfile:
    """Look up a profile by id."""
    try:
        return _PROFILES[name]
    except KeyError:
        raise ConfigError(
            f"Unknown provider profile: {name}. Available: {', '.join(sorted(_PROFILES))}"
        ) from None


def available_profiles() -> list[str]:
    return sorted(_PROFILES)
