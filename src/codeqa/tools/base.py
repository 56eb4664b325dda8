"""Tool contract: validate raw arguments, execute, describe in a wire format."""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Generic, List, Literal, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError

from ..config import SourceRoot
from ..errors import ToolError
from ..retrieval.store import MultiCollectionStore
from ..retrieval.types import SearchHit

__all__ = ["Tool", "ToolContext", "ToolFormat", "ToolParams", "hit_to_dict"]


ToolFormat = Literal["openai", "anthropic"]

P = TypeVar("P", bound="ToolParams")


class ToolParams(BaseModel):
    """Base for tool argument models; unknown keys are dropped."""

    model_config = ConfigDict(extra="ignore")


@dataclass(slots=True)
class ToolContext:
    """Read-only collaborators shared by every tool invocation."""

    store: MultiCollectionStore
    sources: List[SourceRoot] = field(default_factory=list)
    default_top_k: int = 6


def _describe_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "arguments"
        parts.append(f"{location}: {item.get('msg', 'invalid value')}")
    return "Invalid arguments - " + "; ".join(parts)


def _strip_titles(schema: Any) -> Any:
    if isinstance(schema, dict):
        return {
            key: (
                {name: _strip_titles(sub) for name, sub in value.items()}
                if key == "properties" and isinstance(value, dict)
                else _strip_titles(value)
            )
            for key, value in schema.items()
            if key != "title"
        }
    if isinstance(schema, list):
        return [_strip_titles(item) for item in schema]
    return schema


def hit_to_dict(hit: SearchHit, *, code_key: str = "code") -> Dict[str, Any]:
    """Render a hit the way tools report it back to the model."""
    meta = hit.metadata
    rendered: Dict[str, Any] = {
        "filePath": meta.relative_path,
        "lineStart": meta.line_start,
        "lineEnd": meta.line_end,
        "chunkType": meta.chunk_type,
        code_key: hit.text,
        "className": meta.class_name,
        "methodName": meta.method_name,
        "collection": hit.collection,
    }
    if hit.score is not None:
        rendered["score"] = round(hit.score, 4)
    return rendered


class Tool(ABC, Generic[P]):
    """A named capability with a validated parameter model."""

    name: ClassVar[str]
    description: ClassVar[str]
    params_model: ClassVar[Type[ToolParams]]

    def parse(self, raw: Optional[Mapping[str, Any]]) -> P:
        """Validate raw arguments, raising :class:`ToolError` on rejection."""
        if raw is not None and not isinstance(raw, Mapping):
            raise ToolError(self.name, "Arguments must be a JSON object.")
        try:
            return self.params_model.model_validate(dict(raw or {}))  # type: ignore[return-value]
        except ValidationError as error:
            raise ToolError(self.name, _describe_validation_error(error)) from error

    @abstractmethod
    def execute(self, args: P, context: ToolContext) -> Any:
        """Run the tool against validated arguments."""

    def run(self, raw: Optional[Mapping[str, Any]], context: ToolContext) -> Any:
        return self.execute(self.parse(raw), context)

    def parameters_schema(self) -> Dict[str, Any]:
        schema = _strip_titles(copy.deepcopy(self.params_model.model_json_schema()))
        schema.setdefault("type", "object")
        schema.setdefault("properties", {})
        return schema

    def to_spec(self, fmt: ToolFormat = "openai") -> Dict[str, Any]:
        """Describe the tool in the given provider wire format."""
        if fmt == "anthropic":
            return {
                "name": self.name,
                "description": self.description,
                "input_schema": self.parameters_schema(),
            }
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters_schema(),
            },
        }
