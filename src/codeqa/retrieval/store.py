"""One logical search surface over several independently queried collections."""

from __future__ import annotations

import logging
import re
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, TypeVar

from ..embeddings import Embedder
from ..errors import VectorStoreError
from .reconstruct import reconstruct_split_hits
from .types import ChunkMetadata, CollectionBackend, FileResult, QueryFilter, SearchHit

__all__ = ["MultiCollectionStore"]

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

SYMBOL_LIMIT = 100
FILE_CHUNK_LIMIT = 1000
REGEX_CANDIDATE_LIMIT = 1000

_IGNORE_CASE_PREFIX = "(?i)"


def _matches_any_path(metadata: ChunkMetadata, path_filters: Optional[Sequence[str]]) -> bool:
    if not path_filters:
        return True
    return any(fragment in metadata.relative_path for fragment in path_filters)


def _matches_symbol(metadata: ChunkMetadata, name: str) -> bool:
    return bool(
        (metadata.class_name and name in metadata.class_name)
        or (metadata.method_name and name in metadata.method_name)
    )


def compile_pattern(pattern: str) -> "re.Pattern[str]":
    """Compile ``pattern``, honouring a leading ``(?i)`` as the ignore-case flag."""
    flags = 0
    if pattern.startswith(_IGNORE_CASE_PREFIX):
        pattern = pattern[len(_IGNORE_CASE_PREFIX) :]
        flags |= re.IGNORECASE
    return re.compile(pattern, flags)


class MultiCollectionStore:
    """Fan searches out to every configured collection and merge the results.

    Each collection is queried on a worker thread. A collection that raises is
    logged and contributes nothing, so one broken collection never fails the
    whole search. Merged results follow the configured collection order.
    """

    def __init__(
        self,
        backends: Mapping[str, CollectionBackend],
        embedder: Embedder,
        *,
        default_top_k: int = 6,
        max_workers: int = 4,
    ) -> None:
        self._backends: Dict[str, CollectionBackend] = dict(backends)
        self._embedder = embedder
        self._default_top_k = default_top_k
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, min(max_workers, len(self._backends) or 1)),
            thread_name_prefix="codeqa-collection",
        )

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    def list_collections(self) -> List[str]:
        return list(self._backends)

    def _fan_out(
        self,
        operation: str,
        task: Callable[[str, CollectionBackend], List[T]],
        names: Optional[Iterable[str]] = None,
    ) -> List[T]:
        selected = list(self._backends) if names is None else list(names)
        futures: List[tuple[str, Future[List[T]]]] = [
            (name, self._executor.submit(task, name, self._backends[name])) for name in selected
        ]
        merged: List[T] = []
        for name, future in futures:
            try:
                merged.extend(future.result())
            except Exception as error:
                LOGGER.warning("%s failed for collection %s: %s", operation, name, error)
        return merged

    @staticmethod
    def _hit(name: str, chunk_id: str, text: str, raw_meta: Mapping[str, object]) -> SearchHit:
        return SearchHit(
            chunk_id=chunk_id,
            text=text,
            metadata=ChunkMetadata.from_mapping(raw_meta or {}),
            collection=name,
        )

    def search_by_symbol(
        self, name: str, path_filters: Optional[Sequence[str]] = None
    ) -> List[SearchHit]:
        """Hits whose class or method name contains ``name``, split fragments merged."""

        def task(collection: str, backend: CollectionBackend) -> List[SearchHit]:
            # Exact names come back with every fragment; partial names are found
            # through chunks whose text mentions them.
            rows = [
                *backend.get({"className": name}, SYMBOL_LIMIT),
                *backend.get({"methodName": name}, SYMBOL_LIMIT),
                *backend.get({}, SYMBOL_LIMIT * 10, document_contains=name),
            ]
            seen: set[str] = set()
            hits: List[SearchHit] = []
            for chunk_id, text, meta in rows:
                if chunk_id in seen:
                    continue
                seen.add(chunk_id)
                hit = self._hit(collection, chunk_id, text, meta)
                if _matches_symbol(hit.metadata, name) and _matches_any_path(hit.metadata, path_filters):
                    hits.append(hit)
                    if len(hits) >= SYMBOL_LIMIT:
                        break
            return hits

        return reconstruct_split_hits(self._fan_out("symbol search", task))

    def get_file(self, path: str) -> FileResult:
        """Concatenate every chunk stored for ``path`` in line order."""

        def task(collection: str, backend: CollectionBackend) -> List[SearchHit]:
            return [
                self._hit(collection, chunk_id, text, meta)
                for chunk_id, text, meta in backend.get({"relativePath": path}, FILE_CHUNK_LIMIT)
            ]

        chunks = self._fan_out("file retrieval", task)
        if not chunks:
            raise VectorStoreError(f"File not found: {path}")
        chunks.sort(key=lambda hit: hit.metadata.line_start)
        return FileResult(path=path, text="\n\n".join(hit.text for hit in chunks))

    def regex_search(
        self, pattern: str, path_filters: Optional[Sequence[str]] = None
    ) -> List[SearchHit]:
        """Chunks whose text matches ``pattern``; raises ``re.error`` on a bad pattern."""
        compiled = compile_pattern(pattern)

        def task(collection: str, backend: CollectionBackend) -> List[SearchHit]:
            hits: List[SearchHit] = []
            for chunk_id, text, meta in backend.get({}, REGEX_CANDIDATE_LIMIT):
                hit = self._hit(collection, chunk_id, text, meta)
                if _matches_any_path(hit.metadata, path_filters) and compiled.search(text):
                    hits.append(hit)
            return hits

        return reconstruct_split_hits(self._fan_out("regex search", task))

    def semantic_search(
        self,
        query: str,
        k: Optional[int] = None,
        query_filter: Optional[QueryFilter] = None,
    ) -> List[SearchHit]:
        """Top-``k`` hits by similarity across the union of all collections."""
        limit = k if k and k > 0 else self._default_top_k
        query_filter = query_filter or QueryFilter()
        embedding = self._embedder.embed(query)
        where = query_filter.native_where()
        names = [
            name
            for name in self._backends
            if not query_filter.collection_name or name == query_filter.collection_name
        ]

        def task(collection: str, backend: CollectionBackend) -> List[SearchHit]:
            hits: List[SearchHit] = []
            for chunk_id, text, meta, distance in backend.query(embedding, limit, where):
                hit = SearchHit(
                    chunk_id=chunk_id,
                    text=text,
                    metadata=ChunkMetadata.from_mapping(meta or {}),
                    collection=collection,
                    score=1.0 / (1.0 + distance),
                    distance=distance,
                )
                if query_filter.relative_path and query_filter.relative_path not in hit.metadata.relative_path:
                    continue
                hits.append(hit)
            return hits

        hits = self._fan_out("semantic search", task, names)
        hits.sort(key=lambda hit: hit.score or 0.0, reverse=True)
        return hits[:limit]

    def health_check(self) -> bool:
        """True when at least one collection answers."""

        def task(collection: str, backend: CollectionBackend) -> List[str]:
            backend.heartbeat()
            return [collection]

        return bool(self._fan_out("health check", task))
