"""Memory layer — versioned entry store, search index, pluggable scorers."""

from agentvfs.memory.index import SearchHit, SearchIndex
from agentvfs.memory.scoring import FunctionScorer, Scorer, TokenOverlapScorer
from agentvfs.memory.store import MemoryEntry, MemoryStore

__all__ = [
    "FunctionScorer",
    "MemoryEntry",
    "MemoryStore",
    "Scorer",
    "SearchHit",
    "SearchIndex",
    "TokenOverlapScorer",
]
