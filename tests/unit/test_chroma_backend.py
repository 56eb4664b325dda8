from __future__ import annotations

from typing import Any, Dict, List

import pytest

from codeqa.retrieval.chroma import ChromaCollectionBackend, build_where


class FakeCollection:
    def __init__(self) -> None:
        self.get_calls: List[Dict[str, Any]] = []
        self.query_calls: List[Dict[str, Any]] = []

    def get(self, **kwargs: Any) -> Dict[str, Any]:
        self.get_calls.append(kwargs)
        return {
            "ids": ["a", "b"],
            "documents": ["class Foo: ...", None],
            "metadatas": [{"relativePath": "src/foo.py"}, {"relativePath": "src/bar.py"}],
        }

    def query(self, **kwargs: Any) -> Dict[str, Any]:
        self.query_calls.append(kwargs)
        return {
            "ids": [["a", "b"]],
            "documents": [["class Foo: ...", "class Bar: ..."]],
            "metadatas": [[{"relativePath": "src/foo.py"}, {"relativePath": "src/bar.py"}]],
            "distances": [[0.1, 0.4]],
        }


class FakeClient:
    def __init__(self) -> None:
        self.collection = FakeCollection()
        self.resolved: List[str] = []
        self.heartbeats = 0

    def get_collection(self, name: str) -> FakeCollection:
        self.resolved.append(name)
        return self.collection

    def heartbeat(self) -> int:
        self.heartbeats += 1
        return 1


def test_build_where_shapes() -> None:
    assert build_where({}) is None
    assert build_where({"language": None}) is None
    assert build_where({"className": "Foo"}) == {"className": "Foo"}
    assert build_where({"className": "Foo", "language": "python"}) == {
        "$and": [{"className": "Foo"}, {"language": "python"}]
    }


def test_get_passes_filters_and_skips_incomplete_rows() -> None:
    client = FakeClient()
    backend = ChromaCollectionBackend(client, "code")

    rows = backend.get({"className": "Foo"}, 100, document_contains="Foo")
    backend.get({}, 10)

    assert rows == [("a", "class Foo: ...", {"relativePath": "src/foo.py"})]
    first, second = client.collection.get_calls
    assert first == {
        "limit": 100,
        "include": ["documents", "metadatas"],
        "where": {"className": "Foo"},
        "where_document": {"$contains": "Foo"},
    }
    assert "where" not in second and "where_document" not in second
    assert client.resolved == ["code"]


def test_query_returns_distances() -> None:
    client = FakeClient()
    backend = ChromaCollectionBackend(client, "code")

    matches = backend.query([0.1, 0.2], 5, {"language": "python"})

    assert [(chunk_id, distance) for chunk_id, _, _, distance in matches] == [("a", 0.1), ("b", 0.4)]
    call = client.collection.query_calls[0]
    assert call["query_embeddings"] == [[0.1, 0.2]]
    assert call["n_results"] == 5
    assert call["where"] == {"language": "python"}
    assert "distances" in call["include"]


def test_heartbeat_pings_server_and_resolves_collection() -> None:
    client = FakeClient()
    backend = ChromaCollectionBackend(client, "plugins")

    backend.heartbeat()

    assert client.heartbeats == 1
    assert client.resolved == ["plugins"]


def test_heartbeat_propagates_missing_collection() -> None:
    class MissingClient(FakeClient):
        def get_collection(self, name: str) -> FakeCollection:
            raise ValueError(f"Collection {name} does not exist.")

    with pytest.raises(ValueError, match="does not exist"):
        ChromaCollectionBackend(MissingClient(), "ghost").heartbeat()
