"""Streaming chat backends used by intelligence roles."""

from decision_studio.llm.backends import (
    AnthropicChatBackend,
    ChatBackend,
    LocalChatBackend,
)
from decision_studio.llm.factory import get_backend

__all__ = [
    "AnthropicChatBackend",
    "ChatBackend",
    "LocalChatBackend",
    "get_backend",
]
