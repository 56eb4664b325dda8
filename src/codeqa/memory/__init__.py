"""Conversation memory: answer cache, history window and rolling summary."""

from .conversation import ConversationMemory, ConversationTurn, MemorySettings
from .summarizer import HistorySummarizer, estimate_tokens

__all__ = [
    "ConversationMemory",
    "ConversationTurn",
    "HistorySummarizer",
    "MemorySettings",
    "estimate_tokens",
]
