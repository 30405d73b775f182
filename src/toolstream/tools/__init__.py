"""Operations exposed to the backend."""

from .builtin import register_builtin_tools
from .catalog import Capability, CapabilityCatalog
from .registry import ToolDescriptor, ToolRegistry

__all__ = [
    "Capability",
    "CapabilityCatalog",
    "ToolDescriptor",
    "ToolRegistry",
    "register_builtin_tools",
]
