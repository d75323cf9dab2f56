"""Memory layer — Similarity scorers for the search index.

A scorer turns entry text into precomputed features once per content
version (``prepare``) and compares a query against those features on every
search (``score``).  Scores are floats; higher is more similar; ``0.0``
means "no match" and such entries are never returned.

Scorers must be deterministic for a given (query, features) pair.  The
index depends on that to keep ranking stable.
"""

from __future__ import annotations

from typing import Any, Callable, Protocol, runtime_checkable


@runtime_checkable
class Scorer(Protocol):
    def prepare(self, text: str) -> Any: ...

    def score(self, query: str, features: Any) -> float: ...


class TokenOverlapScorer:
    """Keyword scorer: the fraction of query words found in the text.

    Matching is case-insensitive substring containment, so ``"agent"``
    matches ``"agents"``.
    """

    def prepare(self, text: str) -> str:
        return text.lower()

    def score(self, query: str, features: Any) -> float:
        words = query.lower().split()
        if not words:
            return 0.0
        hits = sum(1 for word in words if word in features)
        return hits / len(words)


class FunctionScorer:
    """Adapts a plain ``(query, text) -> float`` callable, mostly for tests."""

    def __init__(self, fn: Callable[[str, str], float]) -> None:
        self._fn = fn

    def prepare(self, text: str) -> str:
        return text

    def score(self, query: str, features: Any) -> float:
        return float(self._fn(query, features))
