"""Value types returned by the retrieval layer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple

__all__ = [
    "ChunkMetadata",
    "CollectionBackend",
    "FileResult",
    "QueryFilter",
    "RawChunk",
    "RawMatch",
    "SearchHit",
]


# (id, document text, metadata)
RawChunk = Tuple[str, str, Mapping[str, Any]]
# (id, document text, metadata, distance)
RawMatch = Tuple[str, str, Mapping[str, Any], float]


def _optional_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


@dataclass(frozen=True, slots=True)
class ChunkMetadata:
    """Location and identity of one indexed chunk."""

    relative_path: str = ""
    absolute_path: Optional[str] = None
    package: Optional[str] = None
    class_name: Optional[str] = None
    method_name: Optional[str] = None
    chunk_type: Optional[str] = None
    language: Optional[str] = None
    line_start: int = 0
    line_end: int = 0
    content_hash: Optional[str] = None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "ChunkMetadata":
        """Parse the camelCase metadata stored alongside each chunk."""
        return cls(
            relative_path=str(raw.get("relativePath") or ""),
            absolute_path=_optional_str(raw.get("absolutePath")),
            package=_optional_str(raw.get("package")),
            class_name=_optional_str(raw.get("className")),
            method_name=_optional_str(raw.get("methodName")),
            chunk_type=_optional_str(raw.get("chunkType")),
            language=_optional_str(raw.get("language")),
            line_start=_int(raw.get("lineStart")),
            line_end=_int(raw.get("lineEnd")),
            content_hash=_optional_str(raw.get("contentHash")),
        )


@dataclass(frozen=True, slots=True)
class SearchHit:
    """One chunk (or merged group of chunks) returned by a search."""

    chunk_id: str
    text: str
    metadata: ChunkMetadata
    collection: str
    score: Optional[float] = None
    distance: Optional[float] = None



@dataclass(frozen=True, slots=True)
class FileResult:
    path: str
    text: str


@dataclass(slots=True)
class QueryFilter:
    """Optional constraints for semantic search.

    ``package``, ``class_name``, ``chunk_type`` and ``language`` are matched
    exactly by the backend; ``relative_path`` is a substring match applied after
    the query; ``collection_name`` restricts the search to one collection.
    """

    chunk_type: Optional[str] = None
    language: Optional[str] = None
    package: Optional[str] = None
    class_name: Optional[str] = None
    relative_path: Optional[str] = None
    collection_name: Optional[str] = None

    def native_where(self) -> Dict[str, str]:
        where: Dict[str, str] = {}
        if self.package:
            where["package"] = self.package
        if self.class_name:
            where["className"] = self.class_name
        if self.chunk_type:
            where["chunkType"] = self.chunk_type
        if self.language:
            where["language"] = self.language
        return where


class CollectionBackend(Protocol):
    """Minimal surface a single collection must offer the store.

    ``where`` holds exact-match metadata constraints; an empty mapping means
    no constraint. ``document_contains`` narrows ``get`` to documents whose
    text contains the given substring.
    """

    def get(
        self,
        where: Mapping[str, Any],
        limit: int,
        document_contains: Optional[str] = None,
    ) -> List[RawChunk]:
        ...

    def query(self, embedding: List[float], k: int, where: Mapping[str, Any]) -> List[RawMatch]:
        ...

    def heartbeat(self) -> None:
        ...
