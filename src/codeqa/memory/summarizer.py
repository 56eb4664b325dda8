"""Condense old conversation turns into a short digest."""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Optional, Sequence

from ..models.llm_client import LLMClient, LLMClientError, user_message
from ..prompts import SUMMARIZE_HISTORY

if TYPE_CHECKING:
    from .conversation import ConversationTurn

__all__ = ["HistorySummarizer", "estimate_tokens", "fallback_digest", "render_turns"]

LOGGER = logging.getLogger(__name__)


def estimate_tokens(text: str) -> int:
    """Rough token count at four characters per token."""
    return math.ceil(len(text) / 4)


def render_turns(turns: Sequence["ConversationTurn"]) -> str:
    return "\n\n".join(
        f"{'User' if turn.role == 'user' else 'Assistant'}: {turn.content}" for turn in turns
    )


def fallback_digest(turns: Sequence["ConversationTurn"]) -> str:
    if not turns:
        return ""
    return f'Previous conversation covered: "{turns[0].content[:100]}..." and more.'


class HistorySummarizer:
    """Summarize turns with the model, degrading to a fixed digest."""

    def __init__(self, client: Optional[LLMClient], template: str = SUMMARIZE_HISTORY) -> None:
        self._client = client
        self._template = template

    def summarize(self, turns: Sequence["ConversationTurn"]) -> str:
        if not turns:
            return ""
        if self._client is None:
            return fallback_digest(turns)
        prompt = self._template.replace("{{HISTORY}}", render_turns(turns))
        try:
            response = self._client.chat([user_message(prompt)], None)
        except LLMClientError as error:
            LOGGER.warning("History summarization failed: %s", error)
            return fallback_digest(turns)
        summary = (response.content or "").strip()
        return summary or fallback_digest(turns)
