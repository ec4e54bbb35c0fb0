"""Core run loop for Open Relay."""

from open_relay.core.dispatcher import ToolDispatcher
from open_relay.core.orchestrator import Orchestrator, RunHandle, RunParams
from open_relay.core.transcript import ConversationTranscript

__all__ = [
    "ConversationTranscript",
    "Orchestrator",
    "RunHandle",
    "RunParams",
    "ToolDispatcher",
]
