from __future__ import annotations

import json
import math
from typing import Any, Dict

import pytest

from codeqa.config import AppConfig
from codeqa.embeddings import HashEmbedder, OpenAIEmbedder, cosine_similarity, create_embedder
from codeqa.models.llm_client import LLMResponseFormatError


def test_hash_embedder_is_deterministic_and_normalised() -> None:
    embedder = HashEmbedder(dimension=32)

    first = embedder.embed("Where is class Foo defined")
    second = embedder.embed("where is CLASS foo defined")

    assert first == second
    assert len(first) == 32
    assert math.isclose(sum(value * value for value in first), 1.0, rel_tol=1e-9)
    assert embedder.embed("   ") == [0.0] * 32


def test_cosine_similarity_edge_cases() -> None:
    assert cosine_similarity([1.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
    assert cosine_similarity([1.0], [1.0, 0.0]) == 0.0
    assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0


def test_openai_embedder_posts_model_and_input() -> None:
    requests: list[Dict[str, Any]] = []

    def transport(url: str, headers: Dict[str, str], payload: Dict[str, Any]) -> str:
        requests.append({"url": url, "headers": headers, "payload": payload})
        return json.dumps({"data": [{"embedding": [0.5, 0.25]}]})

    embedder = OpenAIEmbedder(model="text-embedding-3-small", api_key="sk", transport=transport)

    assert embedder.embed("find Foo") == [0.5, 0.25]
    assert requests[0]["payload"] == {"model": "text-embedding-3-small", "input": "find Foo"}
    assert requests[0]["headers"] == {"Authorization": "Bearer sk"}


def test_openai_embedder_rejects_unexpected_payload() -> None:
    embedder = OpenAIEmbedder(model="m", transport=lambda url, headers, payload: '{"data": []}')

    with pytest.raises(LLMResponseFormatError):
        embedder.embed("text")


def test_create_embedder_follows_provider() -> None:
    hashed = AppConfig.model_validate(
        {"llm": {"model": "gpt-4o"}, "embeddings": {"provider": "hash", "dimension": 8}}
    )
    remote = AppConfig.model_validate(
        {"llm": {"model": "gpt-4o"}, "credentials": {"openai_api_key": "sk"}}
    )

    assert isinstance(create_embedder(hashed), HashEmbedder)
    assert len(create_embedder(hashed).embed("x")) == 8
    assert isinstance(create_embedder(remote), OpenAIEmbedder)
