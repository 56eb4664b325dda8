"""Chroma-backed collection adapter."""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Mapping, Optional

import chromadb

from ..config import VectorStoreConfig
from .types import RawChunk, RawMatch

__all__ = ["ChromaCollectionBackend", "build_where", "create_backends"]

LOGGER = logging.getLogger(__name__)


def build_where(where: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
    """Translate exact-match constraints into a Chroma ``where`` clause."""
    clauses = [{key: value} for key, value in where.items() if value is not None]
    if not clauses:
        return None
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


class ChromaCollectionBackend:
    """One named collection on a Chroma server, resolved on first use."""

    def __init__(self, client: Any, name: str) -> None:
        self._client = client
        self._name = name
        self._collection: Any = None
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return self._name

    def _resolve(self) -> Any:
        with self._lock:
            if self._collection is None:
                self._collection = self._client.get_collection(name=self._name)
            return self._collection

    def get(
        self,
        where: Mapping[str, Any],
        limit: int,
        document_contains: Optional[str] = None,
    ) -> List[RawChunk]:
        kwargs: Dict[str, Any] = {"limit": limit, "include": ["documents", "metadatas"]}
        clause = build_where(where)
        if clause is not None:
            kwargs["where"] = clause
        if document_contains:
            kwargs["where_document"] = {"$contains": document_contains}
        result = self._resolve().get(**kwargs)
        ids = result.get("ids") or []
        documents = result.get("documents") or []
        metadatas = result.get("metadatas") or []
        chunks: List[RawChunk] = []
        for index, chunk_id in enumerate(ids):
            document = documents[index] if index < len(documents) else None
            metadata = metadatas[index] if index < len(metadatas) else None
            if document is None or metadata is None:
                continue
            chunks.append((chunk_id, document, metadata))
        return chunks

    def query(self, embedding: List[float], k: int, where: Mapping[str, Any]) -> List[RawMatch]:
        kwargs: Dict[str, Any] = {
            "query_embeddings": [embedding],
            "n_results": k,
            "include": ["documents", "metadatas", "distances"],
        }
        clause = build_where(where)
        if clause is not None:
            kwargs["where"] = clause
        result = self._resolve().query(**kwargs)
        ids = (result.get("ids") or [[]])[0]
        documents = (result.get("documents") or [[]])[0]
        metadatas = (result.get("metadatas") or [[]])[0]
        distances = (result.get("distances") or [[]])[0]
        matches: List[RawMatch] = []
        for index, chunk_id in enumerate(ids):
            if index >= len(documents) or index >= len(metadatas) or index >= len(distances):
                break
            document, metadata, distance = documents[index], metadatas[index], distances[index]
            if document is None or metadata is None or distance is None:
                continue
            matches.append((chunk_id, document, metadata, float(distance)))
        return matches

    def heartbeat(self) -> None:
        self._client.heartbeat()
        self._resolve()


def create_backends(settings: VectorStoreConfig) -> Dict[str, ChromaCollectionBackend]:
    """Connect to the Chroma server and wrap each configured collection."""
    kwargs: Dict[str, Any] = {"host": settings.host, "port": settings.port}
    if settings.tenant:
        kwargs["tenant"] = settings.tenant
    if settings.database:
        kwargs["database"] = settings.database
    client = chromadb.HttpClient(**kwargs)
    LOGGER.debug("Connected to Chroma at %s:%s", settings.host, settings.port)
    return {name: ChromaCollectionBackend(client, name) for name in settings.collections}
