"""Convenience exports for codeqa model client implementations."""

from .anthropic_chat import AnthropicChatClient
from .factory import create_client
from .llm_client import (
    ChatResponse,
    LLMClient,
    LLMClientError,
    LLMResponseFormatError,
    LLMRetryError,
    LLMTransportError,
    ToolCall,
)
from .openai_chat import OpenAIChatClient

__all__ = [
    "AnthropicChatClient",
    "ChatResponse",
    "LLMClient",
    "LLMClientError",
    "LLMResponseFormatError",
    "LLMRetryError",
    "LLMTransportError",
    "OpenAIChatClient",
    "ToolCall",
    "create_client",
]
