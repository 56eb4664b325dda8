"""Anthropic messages-API client."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .llm_client import (
    ChatResponse,
    LLMClient,
    LLMResponseFormatError,
    LLMTransportError,
    Message,
    StructuredRequest,
    ToolCall,
)
from .openai_chat import Transport, post_json

__all__ = ["AnthropicChatClient"]

LOGGER = logging.getLogger(__name__)

ANTHROPIC_MESSAGES_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"


def _tool_spec(spec: Dict[str, Any]) -> Dict[str, Any]:
    """Accept either wire format and return the Anthropic one."""
    function = spec.get("function")
    if isinstance(function, dict):
        return {
            "name": function.get("name"),
            "description": function.get("description", ""),
            "input_schema": function.get("parameters", {"type": "object"}),
        }
    return spec


def _tool_input(arguments: str) -> Dict[str, Any]:
    try:
        parsed = json.loads(arguments or "{}")
    except json.JSONDecodeError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


def convert_messages(messages: Sequence[Message]) -> Tuple[str, List[Dict[str, Any]]]:
    """Split chat-shaped messages into a system string and Anthropic turns."""
    system_parts: List[str] = []
    converted: List[Dict[str, Any]] = []
    for message in messages:
        role = message.get("role")
        content = message.get("content")
        if role == "system":
            system_parts.append(str(content or ""))
            continue
        if role == "tool":
            block = {
                "type": "tool_result",
                "tool_use_id": message.get("tool_call_id"),
                "content": str(content or ""),
            }
            previous = converted[-1] if converted else None
            if (
                previous is not None
                and previous["role"] == "user"
                and isinstance(previous["content"], list)
                and all(item.get("type") == "tool_result" for item in previous["content"])
            ):
                previous["content"].append(block)
            else:
                converted.append({"role": "user", "content": [block]})
            continue
        if role == "assistant" and message.get("tool_calls"):
            blocks: List[Dict[str, Any]] = []
            if content:
                blocks.append({"type": "text", "text": str(content)})
            for call in message["tool_calls"]:
                function = call.get("function") or {}
                blocks.append(
                    {
                        "type": "tool_use",
                        "id": call.get("id"),
                        "name": function.get("name"),
                        "input": _tool_input(function.get("arguments", "{}")),
                    }
                )
            converted.append({"role": "assistant", "content": blocks})
            continue
        converted.append({"role": role, "content": str(content or "")})
    return "\n\n".join(part for part in system_parts if part), converted


class AnthropicChatClient(LLMClient):
    """Adapter around the Anthropic messages API."""

    def __init__(
        self,
        *,
        model: str,
        api_key: Optional[str] = None,
        base_url: str = ANTHROPIC_MESSAGES_URL,
        transport: Optional[Transport] = None,
        timeout: float = 120.0,
        max_tokens: int = 4096,
        max_attempts: int = 3,
        retry_delay: float = 0.5,
    ) -> None:
        super().__init__(model=model, max_attempts=max_attempts, retry_delay=retry_delay)
        self._api_key = api_key
        self._url = base_url
        self._timeout = timeout
        self._max_tokens = max_tokens
        self._transport = transport or self._http_transport

        if transport is None and not self._api_key:
            raise ValueError("An API key is required when using the default transport.")

    def _http_transport(self, url: str, headers: Dict[str, str], payload: Dict[str, Any]) -> str:
        return post_json(url, headers, payload, timeout=self._timeout)

    def _send(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        headers = {"x-api-key": self._api_key or "", "anthropic-version": ANTHROPIC_VERSION}
        try:
            raw = self._transport(self._url, headers, payload)
        except LLMTransportError:
            raise
        except Exception as error:
            raise LLMTransportError(f"Transport rejected the request: {error}") from error
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as error:
            raise LLMResponseFormatError(f"Messages response was not JSON: {raw[:200]}") from error
        if not isinstance(data, dict):
            raise LLMResponseFormatError("Messages response must be a JSON object.")
        if data.get("type") == "error":
            raise LLMTransportError(f"Provider error: {data.get('error')}")
        return data

    def _payload(self, messages: Sequence[Message], system_suffix: str = "") -> Dict[str, Any]:
        system, turns = convert_messages(messages)
        if system_suffix:
            system = f"{system}\n\n{system_suffix}" if system else system_suffix
        payload: Dict[str, Any] = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "messages": turns,
        }
        if system:
            payload["system"] = system
        return payload

    def chat(
        self,
        messages: Sequence[Message],
        tools: Optional[Sequence[Dict[str, Any]]] = None,
        *,
        single_tool_call: bool = True,
    ) -> ChatResponse:
        payload = self._payload(messages)
        if tools:
            payload["tools"] = [_tool_spec(spec) for spec in tools]
            tool_choice: Dict[str, Any] = {"type": "auto"}
            if single_tool_call:
                tool_choice["disable_parallel_tool_use"] = True
            payload["tool_choice"] = tool_choice
        data = self._send(payload)

        texts: List[str] = []
        calls: List[ToolCall] = []
        for block in data.get("content") or []:
            if not isinstance(block, dict):
                continue
            if block.get("type") == "text" and block.get("text"):
                texts.append(block["text"])
            elif block.get("type") == "tool_use":
                calls.append(
                    ToolCall(
                        id=str(block.get("id", f"toolu_{len(calls)}")),
                        name=str(block.get("name", "")),
                        arguments=json.dumps(block.get("input") or {}),
                    )
                )
        return ChatResponse(content="\n".join(texts) if texts else None, tool_calls=calls)

    def _raw_invoke(self, request: StructuredRequest[Any]) -> str:
        instruction = (
            "Respond with a single JSON object and nothing else. It must match this JSON schema:\n"
            + json.dumps(request.json_schema())
        )
        data = self._send(self._payload(request.messages, instruction))
        texts = [
            block.get("text", "")
            for block in data.get("content") or []
            if isinstance(block, dict) and block.get("type") == "text"
        ]
        text = "".join(texts).strip()
        if not text:
            raise LLMResponseFormatError("Structured response had no text content.")
        return text
