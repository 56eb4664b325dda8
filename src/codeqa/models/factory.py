"""Build the configured chat client."""

from __future__ import annotations

from ..config import AppConfig
from .anthropic_chat import AnthropicChatClient
from .llm_client import LLMClient
from .openai_chat import OpenAIChatClient

__all__ = ["create_client"]


def create_client(config: AppConfig) -> LLMClient:
    """Return the provider client selected by ``config.llm.provider``."""
    llm = config.llm
    creds = config.credentials
    if llm.provider == "anthropic":
        return AnthropicChatClient(
            model=llm.model,
            api_key=creds.anthropic_api_key,
            timeout=llm.timeout,
        )
    if llm.provider == "azure_openai":
        return OpenAIChatClient(
            model=llm.model,
            api_key=creds.azure_openai_api_key,
            azure_endpoint=creds.azure_openai_endpoint,
            azure_deployment=creds.azure_openai_deployment,
            timeout=llm.timeout,
        )
    return OpenAIChatClient(model=llm.model, api_key=creds.openai_api_key, timeout=llm.timeout)
