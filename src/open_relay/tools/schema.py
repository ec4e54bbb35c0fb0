"""Wire cleanup of tool parameter schemas.

Several OpenAI-compatible endpoints reject JSON-schema validation keywords
or an empty ``properties`` object, so schemas are reduced to the subset
every provider accepts.
"""

from __future__ import annotations

from typing import Any

_STRIPPED_KEYS = frozenset({
    "additionalProperties",
    "minLength",
    "maxLength",
    "minimum",
    "maximum",
    "pattern",
    "format",
    "minItems",
    "maxItems",
    "uniqueItems",
})

_PLACEHOLDER_PROPERTIES = {"_": {"type": "string", "description": "Not used"}}


def _strip(node: Any) -> Any:
    if isinstance(node, list):
        return [_strip(item) for item in node]
    if not isinstance(node, dict):
        return node
    out: dict[str, Any] = {}
    for key, value in node.items():
        if key in _STRIPPED_KEYS:
            continue
        if key == "properties" and isinstance(value, dict):
            # Property names are user data, not schema keywords.
            out[key] = {name: _strip(sub) for name, sub in value.items()}
        else:
            out[key] = _strip(value)
    return out


def clean_parameters(schema: dict[str, Any] | None) -> dict[str, Any]:
    """Return a provider-safe copy of a tool's parameter schema.

    The input is never mutated.
    """
    cleaned = _strip(dict(schema or {}))
    cleaned.setdefault("type", "object")
    if not cleaned.get("properties"):
        cleaned["properties"] = dict(_PLACEHOLDER_PROPERTIES)
    required = cleaned.get("required")
    cleaned["required"] = list(required) if isinstance(required, (list, tuple)) else []
    return cleaned
