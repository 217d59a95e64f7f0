"""LLM provider integrations with protocol-based adapter pattern."""

from .protocols import LLMProvider, Message, MessageRole
from .adapters import AnthropicAdapter, ChatAdapter, OpenRouterAdapter, merge_consecutive_turns

__all__ = [
    # Protocols
    "LLMProvider",
    "Message",
    "MessageRole",
    # Adapters
    "ChatAdapter",
    "OpenRouterAdapter",
    "AnthropicAdapter",
    "merge_consecutive_turns",
]
