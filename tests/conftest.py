from __future__ import annotations

import json
import math
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from codeqa.models.llm_client import (  # noqa: E402
    ChatResponse,
    LLMClient,
    LLMTransportError,
    StructuredRequest,
    ToolCall,
)
from codeqa.prompts import PromptLibrary  # noqa: E402
from codeqa.retrieval.store import MultiCollectionStore  # noqa: E402


class ScriptedLLM(LLMClient):
    """LLM double replaying scripted chat turns and structured replies.

    Structured replies are queued per response model name (``Plan``,
    ``StepOutcome``, ``PlanDecision``) and go through the real parsing and
    validation path. Entries may be strings, JSON-serialisable objects or
    exceptions to raise.
    """

    def __init__(
        self,
        chat: Optional[Sequence[Any]] = None,
        structured: Optional[Mapping[str, Sequence[Any]]] = None,
    ) -> None:
        super().__init__(model="scripted", max_attempts=1, retry_delay=0.0)
        self.chat_queue: List[Any] = list(chat or [])
        self.structured_queue: Dict[str, List[Any]] = {
            name: list(items) for name, items in (structured or {}).items()
        }
        self.chat_calls: List[Dict[str, Any]] = []
        self.structured_calls: List[Dict[str, Any]] = []

    def chat(self, messages, tools=None, *, single_tool_call=True) -> ChatResponse:  # type: ignore[override]
        self.chat_calls.append(
            {
                "messages": [dict(message) for message in messages],
                "tools": list(tools or []),
                "single_tool_call": single_tool_call,
            }
        )
        if not self.chat_queue:
            return ChatResponse(content="Nothing more to look up.")
        item = self.chat_queue.pop(0)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, str):
            return ChatResponse(content=item)
        return item

    def _raw_invoke(self, request: StructuredRequest[Any]) -> str:
        self.structured_calls.append(
            {"model": request.schema_name, "messages": [dict(m) for m in request.messages]}
        )
        queue = self.structured_queue.get(request.schema_name) or []
        if not queue:
            raise LLMTransportError(f"No scripted {request.schema_name} reply")
        item = queue.pop(0)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, str):
            return item
        return json.dumps(item)


def tool_turn(*calls: tuple[str, Any], content: Optional[str] = None) -> ChatResponse:
    """Build an assistant turn requesting the given ``(name, arguments)`` calls."""
    return ChatResponse(
        content=content,
        tool_calls=[
            ToolCall(
                id=f"call_{index}",
                name=name,
                arguments=arguments if isinstance(arguments, str) else json.dumps(arguments),
            )
            for index, (name, arguments) in enumerate(calls)
        ],
    )


class VectorEmbedder:
    """Embedder returning fixed vectors per text; unknown text raises."""

    def __init__(self, vectors: Optional[Mapping[str, Sequence[float]]] = None) -> None:
        self.vectors: Dict[str, List[float]] = {k: list(v) for k, v in (vectors or {}).items()}
        self.calls: List[str] = []

    def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if text not in self.vectors:
            raise RuntimeError(f"no vector for {text!r}")
        return list(self.vectors[text])


def _cosine(left: Sequence[float], right: Sequence[float]) -> float:
    dot = sum(a * b for a, b in zip(left, right))
    norm = math.sqrt(sum(a * a for a in left)) * math.sqrt(sum(b * b for b in right))
    return dot / norm if norm else 0.0


@dataclass
class StoredChunk:
    id: str
    text: str
    metadata: Dict[str, Any]
    embedding: List[float] = field(default_factory=list)


def chunk(
    chunk_id: str,
    path: str,
    text: str,
    *,
    class_name: Optional[str] = None,
    method_name: Optional[str] = None,
    start: int = 1,
    end: int = 10,
    embedding: Optional[Sequence[float]] = None,
    **extra: Any,
) -> StoredChunk:
    metadata: Dict[str, Any] = {"relativePath": path, "lineStart": start, "lineEnd": end}
    if class_name is not None:
        metadata["className"] = class_name
    if method_name is not None:
        metadata["methodName"] = method_name
    metadata.update(extra)
    return StoredChunk(chunk_id, text, metadata, list(embedding or []))


class InMemoryCollection:
    """Collection backend over a list of chunks; ``fail=True`` makes every call raise."""

    def __init__(self, chunks: Sequence[StoredChunk] = (), *, fail: bool = False) -> None:
        self.chunks = list(chunks)
        self.fail = fail
        self.queries: List[Dict[str, Any]] = []

    def _check(self) -> None:
        if self.fail:
            raise ConnectionError("collection unavailable")

    def _matches(self, item: StoredChunk, where: Mapping[str, Any]) -> bool:
        return all(item.metadata.get(key) == value for key, value in where.items())

    def get(self, where, limit, document_contains=None):
        self._check()
        rows = [
            (item.id, item.text, dict(item.metadata))
            for item in self.chunks
            if self._matches(item, where)
            and (document_contains is None or document_contains in item.text)
        ]
        return rows[:limit]

    def query(self, embedding, k, where):
        self._check()
        self.queries.append({"k": k, "where": dict(where)})
        scored = [
            (item.id, item.text, dict(item.metadata), 1.0 - _cosine(embedding, item.embedding))
            for item in self.chunks
            if self._matches(item, where) and item.embedding
        ]
        scored.sort(key=lambda row: row[3])
        return scored[:k]

    def heartbeat(self) -> None:
        self._check()


@pytest.fixture()
def prompts() -> PromptLibrary:
    return PromptLibrary()


@pytest.fixture()
def foo_store() -> Iterator[MultiCollectionStore]:
    """Single collection holding one chunk for class Foo at lines 1-20."""
    collection = InMemoryCollection(
        [
            chunk(
                "foo-1",
                "src/app/foo.py",
                "class Foo:\n    def bar(self):\n        return 1\n",
                class_name="Foo",
                start=1,
                end=20,
                chunkType="class",
                language="python",
            )
        ]
    )
    store = MultiCollectionStore({"code": collection}, VectorEmbedder())
    yield store
    store.close()
