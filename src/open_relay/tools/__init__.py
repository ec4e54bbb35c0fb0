"""Tool system for Open Relay."""

from open_relay.tools.base import FunctionTool, ModelResult, Tool
from open_relay.tools.names import ToolNameMap, sanitize_name
from open_relay.tools.payload_cache import PayloadCache
from open_relay.tools.registry import ToolRegistry
from open_relay.tools.schema import clean_parameters

__all__ = [
    "FunctionTool",
    "ModelResult",
    "PayloadCache",
    "Tool",
    "ToolNameMap",
    "ToolRegistry",
    "clean_parameters",
    "sanitize_name",
]
