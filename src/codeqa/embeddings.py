"""Query embedders and vector similarity helpers."""

from __future__ import annotations

import hashlib
import json
import math
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

from .config import AppConfig
from .models.llm_client import LLMResponseFormatError, LLMTransportError
from .models.openai_chat import post_json

__all__ = [
    "Embedder",
    "HashEmbedder",
    "OpenAIEmbedder",
    "cosine_similarity",
    "create_embedder",
]


OPENAI_EMBEDDINGS_URL = "https://api.openai.com/v1/embeddings"


class Embedder(Protocol):
    def embed(self, text: str) -> List[float]:
        ...


class HashEmbedder:
    """Deterministic offline encoder hashing whitespace tokens into buckets."""

    def __init__(self, dimension: int = 256) -> None:
        if dimension <= 0:
            raise ValueError("Embedding dimension must be positive.")
        self._dimension = dimension

    @property
    def dimension(self) -> int:
        return self._dimension

    def embed(self, text: str) -> List[float]:
        if not text.strip():
            return [0.0] * self._dimension

        accumulator = [0.0] * self._dimension
        for token in text.lower().split():
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            for index in range(self._dimension):
                byte_value = digest[index % len(digest)]
                accumulator[index] += (byte_value / 255.0) * 2.0 - 1.0

        norm = math.sqrt(sum(component * component for component in accumulator))
        if norm == 0:
            return [0.0] * self._dimension
        return [component / norm for component in accumulator]


class OpenAIEmbedder:
    """Embeds text through the OpenAI embeddings endpoint."""

    def __init__(
        self,
        *,
        model: str,
        api_key: Optional[str] = None,
        base_url: str = OPENAI_EMBEDDINGS_URL,
        transport: Optional[Callable[[str, Dict[str, str], Dict[str, Any]], str]] = None,
        timeout: float = 60.0,
    ) -> None:
        self._model = model
        self._api_key = api_key
        self._url = base_url
        self._timeout = timeout
        self._transport = transport or self._http_transport
        if transport is None and not api_key:
            raise ValueError("An API key is required when using the default transport.")

    def _http_transport(self, url: str, headers: Dict[str, str], payload: Dict[str, Any]) -> str:
        return post_json(url, headers, payload, timeout=self._timeout)

    def embed(self, text: str) -> List[float]:
        payload = {"model": self._model, "input": text}
        headers = {"Authorization": f"Bearer {self._api_key}"}
        try:
            raw = self._transport(self._url, headers, payload)
        except LLMTransportError:
            raise
        except Exception as error:
            raise LLMTransportError(f"Embedding request failed: {error}") from error
        try:
            data = json.loads(raw)
            vector = data["data"][0]["embedding"]
        except (json.JSONDecodeError, KeyError, IndexError, TypeError) as error:
            raise LLMResponseFormatError(f"Unexpected embeddings response: {raw[:200]}") from error
        return [float(value) for value in vector]


def cosine_similarity(left: Sequence[float], right: Sequence[float]) -> float:
    """Cosine similarity; 0.0 for mismatched lengths or zero vectors."""
    if len(left) != len(right) or not left:
        return 0.0
    dot = sum(a * b for a, b in zip(left, right))
    left_norm = math.sqrt(sum(a * a for a in left))
    right_norm = math.sqrt(sum(b * b for b in right))
    if left_norm == 0 or right_norm == 0:
        return 0.0
    return dot / (left_norm * right_norm)


def create_embedder(config: AppConfig) -> Embedder:
    settings = config.embeddings
    if settings.provider == "hash":
        return HashEmbedder(settings.dimension)
    return OpenAIEmbedder(
        model=settings.model,
        api_key=settings.api_key or config.credentials.openai_api_key,
    )
