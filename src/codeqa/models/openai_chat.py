"""OpenAI and Azure OpenAI chat-completions client."""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from typing import Any, Callable, Dict, List, Optional, Sequence

from .llm_client import (
    ChatResponse,
    LLMClient,
    LLMResponseFormatError,
    LLMTransportError,
    Message,
    StructuredRequest,
    ToolCall,
)

__all__ = ["OpenAIChatClient", "Transport"]

LOGGER = logging.getLogger(__name__)


Transport = Callable[[str, Dict[str, str], Dict[str, Any]], str]

OPENAI_CHAT_URL = "https://api.openai.com/v1/chat/completions"
AZURE_API_VERSION = "2024-10-21"

# Keywords strict json_schema mode rejects.
_UNSUPPORTED_SCHEMA_KEYS = {"default", "minLength", "maxLength", "title"}


def _strict_schema(value: Any) -> Any:
    if isinstance(value, dict):
        cleaned: Dict[str, Any] = {}
        for key, child in value.items():
            if key == "properties" and isinstance(child, dict):
                # Property names are user data, never schema keywords.
                cleaned[key] = {name: _strict_schema(sub) for name, sub in child.items()}
            elif key not in _UNSUPPORTED_SCHEMA_KEYS:
                cleaned[key] = _strict_schema(child)
        return cleaned
    if isinstance(value, list):
        return [_strict_schema(item) for item in value]
    return value


def post_json(url: str, headers: Dict[str, str], payload: Dict[str, Any], *, timeout: float) -> str:
    """POST ``payload`` as JSON and return the response body as text."""
    data = json.dumps(payload).encode("utf-8")
    request = urllib.request.Request(
        url,
        data=data,
        headers={"Content-Type": "application/json", **headers},
        method="POST",
    )
    try:
        with urllib.request.urlopen(request, timeout=timeout) as response:
            raw = response.read()
            status = getattr(response, "status", 200)
    except TimeoutError as error:  # pragma: no cover - network-dependent
        raise LLMTransportError(f"Request to {url} timed out.") from error
    except urllib.error.HTTPError as error:  # pragma: no cover - network-dependent
        message = error.read().decode("utf-8", errors="ignore")
        raise LLMTransportError(f"HTTP {error.code}: {message}") from error
    except urllib.error.URLError as error:  # pragma: no cover - network-dependent
        raise LLMTransportError(f"Failed to reach {url}: {error.reason}") from error

    if status >= 400:
        raise LLMTransportError(f"Unexpected HTTP status {status}")
    return raw.decode("utf-8")


class OpenAIChatClient(LLMClient):
    """Thin adapter around the chat-completions API (OpenAI or Azure)."""

    def __init__(
        self,
        *,
        model: str,
        api_key: Optional[str] = None,
        base_url: str = OPENAI_CHAT_URL,
        azure_endpoint: Optional[str] = None,
        azure_deployment: Optional[str] = None,
        api_version: str = AZURE_API_VERSION,
        transport: Optional[Transport] = None,
        timeout: float = 120.0,
        max_attempts: int = 3,
        retry_delay: float = 0.5,
    ) -> None:
        super().__init__(model=model, max_attempts=max_attempts, retry_delay=retry_delay)
        self._api_key = api_key
        self._timeout = timeout
        self._azure = azure_endpoint is not None
        if self._azure:
            endpoint = azure_endpoint.rstrip("/")
            deployment = azure_deployment or model
            self._url = (
                f"{endpoint}/openai/deployments/{deployment}/chat/completions"
                f"?api-version={api_version}"
            )
        else:
            self._url = base_url
        self._transport = transport or self._http_transport

        if transport is None and not self._api_key:
            raise ValueError("An API key is required when using the default transport.")

    @property
    def url(self) -> str:
        return self._url

    def _headers(self) -> Dict[str, str]:
        if self._azure:
            return {"api-key": self._api_key or ""}
        return {"Authorization": f"Bearer {self._api_key}"}

    def _http_transport(self, url: str, headers: Dict[str, str], payload: Dict[str, Any]) -> str:
        return post_json(url, headers, payload, timeout=self._timeout)

    def _send(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        LOGGER.debug("POST %s (%d message(s))", self._url, len(payload.get("messages", [])))
        try:
            raw = self._transport(self._url, self._headers(), payload)
        except LLMTransportError:
            raise
        except Exception as error:
            raise LLMTransportError(f"Transport rejected the request: {error}") from error
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as error:
            raise LLMResponseFormatError(f"Chat response was not JSON: {raw[:200]}") from error
        if not isinstance(data, dict):
            raise LLMResponseFormatError("Chat response must be a JSON object.")
        if "error" in data and data["error"]:
            raise LLMTransportError(f"Provider error: {data['error']}")
        return data

    @staticmethod
    def _first_message(data: Dict[str, Any]) -> Dict[str, Any]:
        choices = data.get("choices")
        if not isinstance(choices, list) or not choices:
            raise LLMResponseFormatError("Chat response contained no choices.")
        message = choices[0].get("message") if isinstance(choices[0], dict) else None
        if not isinstance(message, dict):
            raise LLMResponseFormatError("Chat response choice had no message.")
        return message

    def chat(
        self,
        messages: Sequence[Message],
        tools: Optional[Sequence[Dict[str, Any]]] = None,
        *,
        single_tool_call: bool = True,
    ) -> ChatResponse:
        payload: Dict[str, Any] = {"model": self._model, "messages": list(messages)}
        if tools:
            payload["tools"] = list(tools)
            if single_tool_call:
                payload["parallel_tool_calls"] = False
        message = self._first_message(self._send(payload))

        calls: List[ToolCall] = []
        for index, raw_call in enumerate(message.get("tool_calls") or []):
            function = raw_call.get("function") or {}
            calls.append(
                ToolCall(
                    id=str(raw_call.get("id") or f"call_{index}"),
                    name=str(function.get("name", "")),
                    arguments=function.get("arguments") or "{}",
                )
            )
        content = message.get("content")
        return ChatResponse(content=content if isinstance(content, str) else None, tool_calls=calls)

    def _raw_invoke(self, request: StructuredRequest[Any]) -> str:
        payload = {
            "model": self._model,
            "messages": list(request.messages),
            "response_format": {
                "type": "json_schema",
                "json_schema": {
                    "name": request.schema_name,
                    "schema": _strict_schema(request.json_schema()),
                    "strict": True,
                },
            },
        }
        message = self._first_message(self._send(payload))
        content = message.get("content")
        if not isinstance(content, str) or not content.strip():
            refusal = message.get("refusal")
            raise LLMResponseFormatError(f"Structured response had no content: {refusal or 'empty'}")
        return content
