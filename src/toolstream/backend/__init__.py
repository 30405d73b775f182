"""Reasoning backend transports."""

from .anthropic import AnthropicStreamTransport
from .base import BackendTransport

__all__ = ["AnthropicStreamTransport", "BackendTransport"]
