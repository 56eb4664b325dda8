"""Chat and structured-output client base class shared by all model providers."""

from __future__ import annotations

import ast
import json
import re
import time
from collections.abc import Mapping, Sequence
from dataclasses import MISSING, dataclass, field, fields, is_dataclass
from functools import lru_cache
from typing import (
    Annotated,
    Any,
    Dict,
    Generic,
    List,
    Literal,
    Optional,
    Type,
    TypeVar,
    get_args,
    get_origin,
    get_type_hints,
)

from pydantic import ValidationError
from pydantic.type_adapter import TypeAdapter

__all__ = [
    "ChatResponse",
    "LLMClient",
    "LLMClientError",
    "LLMResponseFormatError",
    "LLMRetryError",
    "LLMTransportError",
    "Message",
    "StructuredRequest",
    "ToolCall",
    "assistant_message",
    "assistant_tool_call_message",
    "system_message",
    "tool_result_message",
    "user_message",
]


T = TypeVar("T")

# Messages use the OpenAI chat shape; providers translate as needed.
Message = Dict[str, Any]


class LLMClientError(RuntimeError):
    """Base error raised for LLM client failures."""


class LLMTransportError(LLMClientError):
    """Raised when the underlying transport fails to return a response."""


class LLMResponseFormatError(LLMClientError):
    """Raised when the model returns a payload that cannot be interpreted."""


class LLMRetryError(LLMClientError):
    """Raised after exhausting retries due to repeated validation failures."""


@dataclass(slots=True)
class ToolCall:
    """One tool invocation requested by the model."""

    id: str
    name: str
    arguments: str = "{}"


@dataclass(slots=True)
class ChatResponse:
    """Assistant turn: optional text plus any requested tool calls."""

    content: Optional[str] = None
    tool_calls: List[ToolCall] = field(default_factory=list)


def system_message(text: str) -> Message:
    return {"role": "system", "content": text}


def user_message(text: str) -> Message:
    return {"role": "user", "content": text}


def assistant_message(text: str) -> Message:
    return {"role": "assistant", "content": text}


def assistant_tool_call_message(response: ChatResponse) -> Message:
    """Render an assistant turn that carries tool calls."""
    return {
        "role": "assistant",
        "content": response.content,
        "tool_calls": [
            {
                "id": call.id,
                "type": "function",
                "function": {"name": call.name, "arguments": call.arguments},
            }
            for call in response.tool_calls
        ],
    }


def tool_result_message(call_id: str, name: str, result: Any) -> Message:
    """Render the result of one tool call; non-string results become indented JSON."""
    content = result if isinstance(result, str) else json.dumps(result, indent=2, default=str)
    return {"role": "tool", "content": content, "tool_call_id": call_id, "name": name}


def _close_schema(value: Any) -> Any:
    """Recursively tighten JSON Schema objects to disallow unknown keys."""
    if isinstance(value, dict):
        schema_type = value.get("type")
        if schema_type == "object":
            value["additionalProperties"] = False
            properties = value.get("properties")
            if isinstance(properties, dict):
                required = value.get("required")
                all_keys = list(properties.keys())
                if not isinstance(required, list):
                    required = all_keys
                else:
                    missing = [key for key in all_keys if key not in required]
                    if missing:
                        required.extend(missing)
                value["required"] = required
                for key, child in list(properties.items()):
                    properties[key] = _close_schema(child)
        for key, child in list(value.items()):
            if key == "properties":
                continue
            value[key] = _close_schema(child)
    elif isinstance(value, list):
        return [_close_schema(item) for item in value]
    return value


@dataclass(slots=True)
class StructuredRequest(Generic[T]):
    """Conversation plus the dataclass the reply must validate against."""

    messages: List[Message]
    response_model: Type[T]
    max_attempts: Optional[int] = None

    @property
    def schema_name(self) -> str:
        return getattr(self.response_model, "__name__", "response")

    def json_schema(self) -> Dict[str, Any]:
        try:
            schema = TypeAdapter(self.response_model).json_schema()
        except Exception:  # pragma: no cover - schema generation is best effort
            schema = {"type": "object"}
        return _close_schema(schema)


class LLMClient:
    """Provider-neutral chat client with validated structured output.

    Subclasses implement :meth:`chat` and :meth:`_raw_invoke`. The latter sends a
    :class:`StructuredRequest` and returns the raw text of the reply; parsing,
    repair, coercion and retries live here so every provider behaves the same.
    """

    def __init__(self, model: str, *, max_attempts: int = 3, retry_delay: float = 0.5) -> None:
        self._model = model
        self._max_attempts = max_attempts
        self._retry_delay = retry_delay

    @property
    def model(self) -> str:
        """Return the default model name configured for this client."""
        return self._model

    def chat(
        self,
        messages: Sequence[Message],
        tools: Optional[Sequence[Dict[str, Any]]] = None,
        *,
        single_tool_call: bool = True,
    ) -> ChatResponse:
        """Request one assistant turn, optionally offering ``tools``."""
        raise NotImplementedError("Subclasses must implement chat().")

    def structured_output(self, messages: Sequence[Message], response_model: Type[T]) -> T:
        """Request a reply that validates against ``response_model``."""
        request = StructuredRequest(messages=list(messages), response_model=response_model)
        return self.invoke_structured(request)

    def invoke_structured(self, request: StructuredRequest[T]) -> T:
        """Invoke the model, retrying until the reply is schema-valid."""
        attempts = request.max_attempts or self._max_attempts
        last_error: Optional[Exception] = None
        adapter = TypeAdapter(request.response_model)

        for attempt in range(1, attempts + 1):
            data: Optional[Any] = None
            try:
                raw = self._raw_invoke(request)
                data = self._parse_json(raw)
                data = _coerce_to_model_schema(request.response_model, data)
                data = _hydrate_response_payload(request.response_model, data)
                return adapter.validate_python(data)
            except (LLMResponseFormatError, ValidationError, LLMTransportError) as error:
                if isinstance(error, ValidationError):
                    hydrated = _hydrate_response_payload(request.response_model, data)
                    coerced = _coerce_to_model_schema(request.response_model, hydrated)
                    if coerced is not data:
                        try:
                            return adapter.validate_python(coerced)
                        except ValidationError:
                            pass
                last_error = error
                if attempt >= attempts:
                    break
                time.sleep(self._retry_delay)

        error_message = (
            f"Failed to produce schema-valid {request.schema_name} after {attempts} "
            f"attempt(s) for model {self._model}: {last_error}"
        )
        raise LLMRetryError(error_message) from last_error

    def _raw_invoke(self, request: StructuredRequest[Any]) -> str:
        """Perform the structured transport call. Subclasses must implement."""
        raise NotImplementedError("Subclasses must implement _raw_invoke().")

    @staticmethod
    def _parse_json(raw_response: str) -> Any:
        """Parse JSON payloads and normalize errors."""
        text = raw_response.strip()
        if not text:
            raise LLMResponseFormatError("Model returned an empty response.")

        text = _normalise_json_string(text)
        candidates = [text]
        repaired = _repair_json_payload(text)
        if repaired and repaired not in candidates:
            candidates.append(_normalise_json_string(repaired))

        for candidate in candidates:
            try:
                return json.loads(candidate)
            except json.JSONDecodeError:
                pythonic = _coerce_python_literal(candidate)
                if pythonic is not None:
                    return pythonic

        snippet = text[:200]
        raise LLMResponseFormatError(f"Model returned invalid JSON: {snippet}")


def _strip_code_fence(payload: str) -> str:
    """Remove Markdown-style code fences that wrap JSON payloads."""
    if not payload.startswith("```"):
        return payload
    fence_header_match = re.match(r"```(?:json)?", payload[:10], re.IGNORECASE)
    if not fence_header_match:
        return payload
    fence_end = payload.find("```", len(fence_header_match.group(0)))
    if fence_end == -1:
        return payload
    content_start = payload.find("\n", len(fence_header_match.group(0)))
    if content_start == -1:
        return payload
    return payload[content_start + 1 : fence_end].strip()


def _normalise_json_string(payload: str) -> str:
    """Normalise typographic characters models like to emit."""
    if not payload:
        return payload
    translation = {
        0x201C: '"',
        0x201D: '"',
        0x2018: "'",
        0x2019: "'",
        0x2014: "-",
        0x2013: "-",
        0x00A0: " ",
        0xFEFF: "",
    }
    return payload.translate(str.maketrans(translation))


def _strip_trailing_commas(payload: str) -> str:
    return re.sub(r",(\s*[}\]])", r"\1", payload)


def _repair_json_payload(raw: str) -> str | None:
    """Attempt to salvage a JSON object embedded in noisy output."""
    stripped = _strip_code_fence(raw.strip())
    if not stripped:
        return None

    try:
        json.loads(stripped)
    except json.JSONDecodeError:
        pass
    else:
        return stripped

    opening_idx = None
    expected: list[str] = []
    for index, char in enumerate(stripped):
        if char in "{[":
            if opening_idx is None:
                opening_idx = index
            expected.append("}" if char == "{" else "]")
        elif expected and char == expected[-1]:
            expected.pop()
            if not expected and opening_idx is not None:
                candidate = stripped[opening_idx : index + 1]
                return _strip_trailing_commas(candidate.strip())
    return None


def _coerce_python_literal(candidate: str) -> Any | None:
    """Fall back to Python literal parsing when JSON decoding fails."""
    try:
        literal = ast.literal_eval(candidate)
    except (SyntaxError, ValueError):
        return None
    return _normalise_literal(literal)


def _normalise_literal(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(key): _normalise_literal(sub) for key, sub in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_normalise_literal(item) for item in value]
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)


def _camel_case(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _hydrate_response_payload(model: Type[Any], payload: Any) -> Any:
    """Populate missing dataclass fields with defaults during coercion."""
    if not isinstance(payload, dict):
        return payload
    if not is_dataclass(model):
        return payload
    updated = dict(payload)
    for field_info in fields(model):
        if field_info.name in updated:
            continue
        if field_info.default is not MISSING:
            updated[field_info.name] = field_info.default
            continue
        if field_info.default_factory is not MISSING:  # type: ignore[attr-defined]
            updated[field_info.name] = field_info.default_factory()  # type: ignore[misc]
            continue
        if _type_allows_none(field_info.type):
            updated[field_info.name] = None
    return updated


def _type_allows_none(annotation: Any) -> bool:
    origin = get_origin(annotation)
    if origin is None:
        return annotation in (Any, type(None))
    return any(arg is type(None) for arg in get_args(annotation))


def _coerce_to_model_schema(model: Type[Any], value: Any) -> Any:
    """Coerce raw mappings into the schema expected by the dataclass model.

    Keys may arrive in camelCase (``stepId``); they are matched to the
    snake_case field names before the values are coerced.
    """
    if not is_dataclass(model):
        return value
    if not isinstance(value, Mapping):
        return value
    payload = dict(value)
    hints = _cached_type_hints(model)
    cleaned: dict[str, Any] = {}
    for field_info in fields(model):
        name = field_info.name
        field_type = hints.get(name, field_info.type)
        if name in payload:
            cleaned[name] = _coerce_value(field_type, payload[name])
        elif _camel_case(name) in payload:
            cleaned[name] = _coerce_value(field_type, payload[_camel_case(name)])
    return cleaned


def _coerce_value(annotation: Any, value: Any) -> Any:
    """Recursively coerce nested values to match the annotated structure."""
    origin = get_origin(annotation)
    if origin is Annotated:
        return _coerce_value(get_args(annotation)[0], value)
    if is_dataclass_type(annotation):
        if not isinstance(value, Mapping):
            return {}
        return _coerce_to_model_schema(annotation, value)
    if origin in {list, Sequence}:
        item_type = _first_arg(annotation)
        if not isinstance(value, Sequence) or isinstance(value, (str, bytes, bytearray)):
            if value is None:
                return []
            value = [value]
        return [_coerce_value(item_type, item) for item in value]
    return _coerce_scalar(annotation, value)


def _coerce_scalar(annotation: Any, value: Any) -> Any:
    """Coerce scalar-like values according to the provided annotation."""
    if value is None:
        return None
    origin = get_origin(annotation)
    if origin is Literal:
        allowed = get_args(annotation)
        if value in allowed:
            return value
        if isinstance(value, str):
            lowered = value.strip().lower()
            for option in allowed:
                if isinstance(option, str) and option.lower() == lowered:
                    return option
        # Unknown literals collapse to the first declared option.
        return allowed[0] if allowed else None
    target = annotation
    if target is str:
        if isinstance(value, str):
            return value
        return str(value)
    if target is int:
        try:
            return int(value)
        except (TypeError, ValueError):
            return 0
    return value


def is_dataclass_type(tp: Any) -> bool:
    """Return True when ``tp`` refers to a dataclass type."""
    try:
        return isinstance(tp, type) and is_dataclass(tp)
    except TypeError:
        return False


def _first_arg(annotation: Any) -> Any:
    args = get_args(annotation)
    if not args:
        return Any
    return args[0]


@lru_cache(maxsize=None)
def _cached_type_hints(model: type[Any]) -> dict[str, Any]:
    """Cache `get_type_hints` lookups to avoid repeated reflection cost."""
    try:
        return get_type_hints(model, include_extras=True)
    except Exception:
        return {field.name: field.type for field in fields(model)}

