"""Open Relay - streaming, tool-calling agent loop for OpenAI-compatible providers."""

from open_relay.core import ConversationTranscript, Orchestrator, RunHandle, RunParams
from open_relay.errors import ConfigError, ProviderError, RateLimitError, RelayError
from open_relay.events import EventBus, RunCallbacks
from open_relay.providers import ProviderProfile, get_profile, register_profile
from open_relay.tools import FunctionTool, ModelResult, Tool, ToolRegistry
from open_relay.types import AgentEvent, EventType, RunOutcome, TokenUsage

__version__ = "0.3.0"

__all__ = [
    "AgentEvent",
    "ConfigError",
    "ConversationTranscript",
    "EventBus",
    "EventType",
    "FunctionTool",
    "ModelResult",
    "Orchestrator",
    "ProviderError",
    "ProviderProfile",
    "RateLimitError",
    "RelayError",
    "RunCallbacks",
    "RunHandle",
    "RunOutcome",
    "RunParams",
    "Tool",
    "ToolRegistry",
    "TokenUsage",
    "get_profile",
    "register_profile",
]
