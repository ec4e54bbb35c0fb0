"""Configuration for Open Relay.

Config discovery (first match wins):
  1. ``--config`` flag
  2. ``./open_relay.yaml``
  3. ``~/.config/open-relay/config.yaml``
  4. Built-in defaults

Example::

    profile: work
    profiles:
      work:
        extends: openrouter
        api_key_env: WORK_OPENROUTER_KEY
      lab:
        url: http://10.0.0.5:8000/v1
        tool_result_role: user
    run:
      model: qwen3-8b
      max_steps: 20
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from open_relay.core.orchestrator import DEFAULT_MAX_STEPS, RunParams
from open_relay.errors import ConfigError
from open_relay.providers import ProviderProfile, available_profiles, get_profile

_logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Config data structures
# ---------------------------------------------------------------------------

@dataclass
class ProfileSpec:
    """User-defined provider profile.

    ``extends`` names a built-in profile whose hooks are kept; the other
    fields override its endpoint and wire flags.
    """

    extends: str = ""
    url: str = ""
    api_key: str = ""
    api_key_env: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    tool_result_role: str | None = None
    echo_reasoning: bool | None = None


@dataclass
class RunDefaults:
    model: str = "qwen3-8b"
    temperature: float | None = None
    max_steps: int = DEFAULT_MAX_STEPS
    include_thoughts: bool = False
    thinking_budget: int | None = None
    reasoning_effort: str | None = None


@dataclass
class RelayConfig:
    """Top-level config for Open Relay."""

    # Active profile name (built-in or user-defined)
    profile: str = "local"

    profiles: dict[str, ProfileSpec] = field(default_factory=dict)

    run: RunDefaults = field(default_factory=RunDefaults)

    def provider_profile(self, name: str | None = None) -> ProviderProfile:
        """Resolve *name* (default: the active profile) to a ProviderProfile."""
        name = name or self.profile
        spec = self.profiles.get(name)
        if spec is None:
            return get_profile(name)
        return build_profile(name, spec)

    def api_key(self, name: str | None = None) -> str:
        """API key for *name*: explicit value, then its environment variable."""
        name = name or self.profile
        spec = self.profiles.get(name)
        if spec is not None and spec.api_key:
            return spec.api_key
        env = self.provider_profile(name).api_key_env
        return os.environ.get(env, "") if env else ""

    def run_params(self, **overrides: Any) -> RunParams:
        """Build RunParams from the ``run`` section; ``None`` overrides are ignored."""
        values = {
            "model": self.run.model,
            "temperature": self.run.temperature,
            "max_steps": self.run.max_steps,
            "include_thoughts": self.run.include_thoughts,
            "thinking_budget": self.run.thinking_budget,
            "reasoning_effort": self.run.reasoning_effort,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return RunParams(**values)


def build_profile(name: str, spec: ProfileSpec) -> ProviderProfile:
    """Materialize a user profile, inheriting hooks from ``spec.extends``."""
    if spec.extends:
        if spec.extends not in available_profiles():
            raise ConfigError(
                f"Profile {name!r} extends unknown profile {spec.extends!r}"
            )
        base = get_profile(spec.extends)
    elif spec.url:
        base = ProviderProfile(id=name, base_url=spec.url)
    else:
        raise ConfigError(f"Profile {name!r} needs either 'extends' or 'url'")

    changes: dict[str, Any] = {"id": name}
    if spec.url:
        changes["base_url"] = spec.url
    if spec.headers:
        changes["default_headers"] = {**base.default_headers, **spec.headers}
    if spec.tool_result_role is not None:
        changes["tool_result_role"] = spec.tool_result_role
    if spec.echo_reasoning is not None:
        changes["echo_reasoning"] = spec.echo_reasoning
    if spec.api_key_env:
        changes["api_key_env"] = spec.api_key_env
    try:
        return base.with_overrides(**changes)
    except ValueError as e:
        raise ConfigError(f"Profile {name!r}: {e}") from e


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

_SEARCH_PATHS = [
    Path("./open_relay.yaml"),
    Path.home() / ".config" / "open-relay" / "config.yaml",
]


def _parse_profile(name: str, raw: dict[str, Any] | None) -> ProfileSpec:
    raw = raw or {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Profile {name!r} must be a mapping")
    return ProfileSpec(
        extends=raw.get("extends", ""),
        url=raw.get("url", ""),
        api_key=raw.get("api_key", ""),
        api_key_env=raw.get("api_key_env", ""),
        headers=dict(raw.get("headers") or {}),
        tool_result_role=raw.get("tool_result_role"),
        echo_reasoning=raw.get("echo_reasoning"),
    )


def _parse_run(raw: dict[str, Any] | None) -> RunDefaults:
    if not raw:
        return RunDefaults()
    known = {k: v for k, v in raw.items() if k in RunDefaults.__dataclass_fields__}
    unknown = set(raw) - set(known)
    if unknown:
        _logger.warning("Ignoring unknown run settings: %s", ", ".join(sorted(unknown)))
    return RunDefaults(**known)


def load_config(path: str | Path | None = None) -> RelayConfig:
    """Load configuration from YAML.

    Parameters
    ----------
    path:
        Explicit config path.  If *None*, search default locations.

    Returns
    -------
    RelayConfig
    """
    config_path: Path | None = None

    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            _logger.warning("Config file not found: %s, using defaults", path)
            return RelayConfig()
    else:
        for candidate in _SEARCH_PATHS:
            if candidate.exists():
                config_path = candidate
                break

    if config_path is None:
        _logger.info("No config file found, using defaults")
        return RelayConfig()

    _logger.info("Loading config from %s", config_path)
    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    profiles = {
        name: _parse_profile(name, praw)
        for name, praw in (raw.get("profiles") or {}).items()
    }

    config = RelayConfig(
        profile=raw.get("profile", "local"),
        profiles=profiles,
        run=_parse_run(raw.get("run")),
    )
    # Every profile must materialize.
    for name, spec in profiles.items():
        build_profile(name, spec)
    return config
