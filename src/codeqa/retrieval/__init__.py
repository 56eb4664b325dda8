"""Multi-collection retrieval over the indexed code corpus."""

from .reconstruct import reconstruct_split_hits
from .store import MultiCollectionStore
from .types import ChunkMetadata, CollectionBackend, FileResult, QueryFilter, SearchHit

__all__ = [
    "ChunkMetadata",
    "CollectionBackend",
    "FileResult",
    "MultiCollectionStore",
    "QueryFilter",
    "SearchHit",
    "reconstruct_split_hits",
]
