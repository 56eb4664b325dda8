"""Persisted conversation log with answer caching and rolling summary."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Literal, Optional, Sequence

from ..config import MemoryConfig
from ..embeddings import Embedder, cosine_similarity
from .summarizer import HistorySummarizer, estimate_tokens, fallback_digest, render_turns

__all__ = ["ConversationMemory", "ConversationTurn", "MemorySettings"]

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class ConversationTurn:
    role: Literal["user", "assistant"]
    content: str
    timestamp: float
    embedding: Optional[List[float]] = None
    summarized: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp,
        }
        if self.embedding is not None:
            data["embedding"] = self.embedding
        if self.summarized:
            data["summarized"] = True
        return data

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "ConversationTurn":
        role = raw.get("role")
        if role not in ("user", "assistant"):
            raise ValueError(f"Unknown turn role: {role!r}")
        embedding = raw.get("embedding")
        return cls(
            role=role,
            content=str(raw.get("content", "")),
            timestamp=float(raw.get("timestamp", 0.0)),
            embedding=[float(value) for value in embedding] if isinstance(embedding, list) else None,
            summarized=bool(raw.get("summarized", False)),
        )


@dataclass(slots=True)
class MemorySettings:
    context_size: int = 6
    retention_size: int = 50
    summarization_enabled: bool = True
    max_tokens: int = 2000
    cache_threshold: float = 0.85

    @classmethod
    def from_config(cls, config: MemoryConfig) -> "MemorySettings":
        return cls(
            context_size=config.context_size,
            retention_size=config.retention_size,
            summarization_enabled=config.summarization_enabled,
            max_tokens=config.max_tokens,
            cache_threshold=config.cache_threshold,
        )


class ConversationMemory:
    """Bounded turn log stored as one JSON document.

    The document holds ``{"turns": [...], "summary": "..."}``. It is read once
    on construction and rewritten wholesale after every save; concurrent
    writers are not supported. Turns folded into the summary stay in the log
    (flagged ``summarized``) until the retention limit drops them.
    """

    def __init__(
        self,
        path: Path | str,
        *,
        embedder: Optional[Embedder] = None,
        summarizer: Optional[HistorySummarizer] = None,
        settings: Optional[MemorySettings] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._path = Path(path)
        self._embedder = embedder
        self._summarizer = summarizer
        self._settings = settings or MemorySettings()
        self._clock = clock
        self._turns: List[ConversationTurn] = []
        self._summary = ""
        self._load()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def turns(self) -> List[ConversationTurn]:
        return list(self._turns)

    @property
    def summary(self) -> str:
        return self._summary

    def _load(self) -> None:
        if not self._path.exists():
            return
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as error:
            LOGGER.warning("Failed to load conversation history from %s, starting fresh: %s", self._path, error)
            return
        if isinstance(data, list):
            raw_turns, summary = data, ""
        elif isinstance(data, dict):
            raw_turns, summary = data.get("turns") or [], data.get("summary") or ""
        else:
            LOGGER.warning("Ignoring conversation history with unexpected shape in %s", self._path)
            return
        turns: List[ConversationTurn] = []
        for raw in raw_turns:
            try:
                turns.append(ConversationTurn.from_dict(raw))
            except (AttributeError, TypeError, ValueError) as error:
                LOGGER.warning("Skipping malformed history turn: %s", error)
        self._turns = turns
        self._summary = str(summary)

    def _persist(self) -> None:
        payload = {
            "turns": [turn.to_dict() for turn in self._turns],
            "summary": self._summary,
        }
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError as error:
            LOGGER.warning("Failed to save conversation history to %s: %s", self._path, error)

    def _embed(self, text: str) -> Optional[List[float]]:
        if self._embedder is None:
            return None
        try:
            return list(self._embedder.embed(text))
        except Exception as error:
            LOGGER.warning("Embedding failed; continuing without it: %s", error)
            return None

    def find_cached_response(self, query: str) -> Optional[str]:
        """Answer of the most similar earlier question, if it is similar enough."""
        candidates = [
            index
            for index, turn in enumerate(self._turns[:-1])
            if turn.role == "user" and turn.embedding and self._turns[index + 1].role == "assistant"
        ]
        if not candidates:
            return None
        embedding = self._embed(query)
        if embedding is None:
            return None

        best_index: Optional[int] = None
        best_score = -1.0
        for index in candidates:
            score = cosine_similarity(embedding, self._turns[index].embedding or [])
            if score > best_score:
                best_index, best_score = index, score
        if best_index is None or best_score <= self._settings.cache_threshold:
            return None
        LOGGER.info("Answer cache hit (similarity %.3f)", best_score)
        return self._turns[best_index + 1].content

    def _window(self) -> List[ConversationTurn]:
        size = self._settings.context_size
        if size <= 0:
            return []
        return [turn for turn in self._turns if not turn.summarized][-size:]

    def history_context(self) -> str:
        """Rolling summary followed by the most recent unsummarized turns."""
        parts: List[str] = []
        if self._summary:
            parts.append(f"Summary of earlier conversation: {self._summary}")
        window = self._window()
        if window:
            parts.append(render_turns(window))
        return "\n\n".join(parts)

    def _fold(self, turns: Sequence[ConversationTurn]) -> None:
        if not turns:
            return
        digest = (
            self._summarizer.summarize(turns) if self._summarizer is not None else fallback_digest(turns)
        )
        if digest:
            self._summary = f"{self._summary}\n{digest}".strip() if self._summary else digest
        for turn in turns:
            turn.summarized = True

    def _compact_window(self) -> None:
        window = self._window()
        if len(window) < 2:
            return
        if estimate_tokens(self.history_context()) <= self._settings.max_tokens:
            return
        self._fold(window[: len(window) // 2])

    def _enforce_retention(self) -> None:
        limit = self._settings.retention_size
        if len(self._turns) <= limit:
            return
        dropped = self._turns[: len(self._turns) - limit]
        self._turns = self._turns[len(self._turns) - limit :]
        if self._settings.summarization_enabled:
            self._fold([turn for turn in dropped if not turn.summarized])

    def _cap_summary(self) -> None:
        max_chars = self._settings.max_tokens * 4
        if len(self._summary) > max_chars:
            self._summary = self._summary[-max_chars:]

    def save_turn(self, query: str, answer: str) -> None:
        """Record one question/answer pair, compact, trim and persist."""
        timestamp = self._clock()
        self._turns.append(
            ConversationTurn(role="user", content=query, timestamp=timestamp, embedding=self._embed(query))
        )
        self._turns.append(ConversationTurn(role="assistant", content=answer, timestamp=timestamp))
        if self._settings.summarization_enabled:
            self._compact_window()
        self._enforce_retention()
        self._cap_summary()
        self._persist()

    def clear(self) -> None:
        self._turns = []
        self._summary = ""
        if self._path.exists():
            self._path.unlink()
