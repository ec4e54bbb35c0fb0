"""Model capability detection by model-id pattern."""

from __future__ import annotations

import re

_GEMINI_THINKING = re.compile(r"gemini.*?(2\.5|(?:^|-)3[-.])", re.IGNORECASE)
_OPENROUTER_THINKING = re.compile(r"(2\.5|(?:^|-)3[-.])", re.IGNORECASE)
_CLAUDE_THINKING = re.compile(
    r"claude-4|claude-opus-4|claude-sonnet-4|claude-haiku-4"
    r"|claude-3-7-sonnet|claude-3\.7|claude-3-5-sonnet|claude-3\.5-sonnet",
    re.IGNORECASE,
)
_OPENAI_REASONING = re.compile(r"^o[135](-|$)|^gpt-5", re.IGNORECASE)
_FIREWORKS = re.compile(r"^accounts/fireworks", re.IGNORECASE)


def _is_openrouter(model: str) -> bool:
    lower = model.lower()
    return lower.startswith("openrouter/") or "openrouter" in lower


def supports_extended_thinking(model: str) -> bool:
    """Gemini 2.5+/3.x and Claude 3.5 Sonnet+ accept a thinking budget."""
    if not model:
        return False
    openrouter = _is_openrouter(model)
    clean = re.sub(r"^openrouter/", "", model, flags=re.IGNORECASE) if openrouter else model
    if _GEMINI_THINKING.search(clean):
        return True
    if openrouter and _OPENROUTER_THINKING.search(clean):
        return True
    return bool(_CLAUDE_THINKING.search(clean))


def supports_reasoning_effort(model: str) -> bool:
    """Models that accept a low/medium/high reasoning effort."""
    if not model:
        return False
    if _OPENAI_REASONING.search(model):
        return True
    if _CLAUDE_THINKING.search(model) or _GEMINI_THINKING.search(model):
        return True
    if _FIREWORKS.search(model):
        return True
    return _is_openrouter(model)


_EFFORT_BUDGETS = {"low": 1024, "medium": 8192, "high": 24576}


def thinking_budget_for(effort: str | None, explicit: int | None = None) -> int:
    """Token budget for extended thinking; an explicit positive budget wins."""
    if explicit is not None and explicit > 0:
        return explicit
    return _EFFORT_BUDGETS.get(effort or "low", _EFFORT_BUDGETS["low"])
