"""Memory layer — Search index.

A derived, non-owning projection of Memory Store content.  Each live key
has one ``IndexedEntry`` holding the scorer features for its current
content version; the store refreshes it synchronously on every write so a
search issued after ``write()`` returns always sees the new content.

Ranking: score descending, then most recently updated first, then most
recently inserted first.  Entries scoring ``0.0`` are never returned.

Every method here is synchronous, so each runs to completion without
interleaving with other coroutines on the event loop.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Iterable

from agentvfs.exceptions import InternalError, InvalidArgumentError
from agentvfs.logging import get_logger
from agentvfs.memory.scoring import Scorer, TokenOverlapScorer
from agentvfs.memory.store import MemoryEntry, MemoryStore
from agentvfs.namespace.path import VirtualPath

log = get_logger(__name__)


@dataclass(frozen=True)
class IndexedEntry:
    key: VirtualPath
    version: int
    updated_at: float
    seq: int
    features: Any


@dataclass(frozen=True)
class SearchHit:
    key: VirtualPath
    score: float
    version: int
    updated_at: float


class SearchIndex:
    """Similarity index over a ``MemoryStore``.

    Usage::

        index = SearchIndex(store)          # attaches itself to the store
        await store.write("memory/notes/a", b"hello")
        hits = index.query("hello", top_k=1)
    """

    def __init__(self, store: MemoryStore, scorer: Scorer | None = None) -> None:
        self._store = store
        self._scorer: Scorer = scorer or TokenOverlapScorer()
        self._entries: dict[VirtualPath, IndexedEntry] = {}
        store.attach_index(self)

    @property
    def scorer(self) -> Scorer:
        return self._scorer

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def get(self, key: VirtualPath) -> IndexedEntry | None:
        return self._entries.get(key)

    # ------------------------------------------------------------------
    # Maintenance (called by the store)
    # ------------------------------------------------------------------

    def project(self, content: bytes) -> Any:
        """Compute scorer features for *content*.  Raises InternalError."""
        text = content.decode("utf-8", errors="replace")
        try:
            return self._scorer.prepare(text)
        except Exception as exc:
            raise InternalError(
                f"Scorer failed to index content: {exc}",
                context={"scorer": type(self._scorer).__name__},
            ) from exc

    def install(self, entry: MemoryEntry, seq: int, features: Any) -> None:
        self._entries[entry.key] = IndexedEntry(
            key=entry.key,
            version=entry.version,
            updated_at=entry.updated_at,
            seq=seq,
            features=features,
        )

    def refresh(self, key: VirtualPath) -> None:
        """Recompute the projection for *key* from the store's live content."""
        for entry, seq in self._store.live_entries():
            if entry.key == key:
                self.install(entry, seq, self.project(entry.content))
                return
        self.invalidate(key)

    def invalidate(self, key: VirtualPath) -> None:
        self._entries.pop(key, None)

    def rebuild(self) -> None:
        """Drop every projection and recompute from the live store.

        Projections are computed before the old index is replaced, so a
        scorer failure leaves the index as it was.
        """
        fresh = {
            entry.key: IndexedEntry(
                key=entry.key,
                version=entry.version,
                updated_at=entry.updated_at,
                seq=seq,
                features=self.project(entry.content),
            )
            for entry, seq in self._store.live_entries()
        }
        self._entries = fresh
        log.debug("search_index_rebuilt", entries=len(fresh))

    def is_consistent(self) -> bool:
        """True when every live entry is indexed at its current version."""
        live = {entry.key: entry.version for entry, _ in self._store.live_entries()}
        indexed = {key: item.version for key, item in self._entries.items()}
        return live == indexed

    # ------------------------------------------------------------------
    # Query
    # ------------------------------------------------------------------

    def query(
        self,
        text: str,
        top_k: int,
        accept: Callable[[VirtualPath], bool] | None = None,
    ) -> list[SearchHit]:
        if top_k <= 0:
            raise InvalidArgumentError(f"top_k must be positive, got {top_k}")

        scored: list[tuple[float, IndexedEntry]] = []
        for item in self._candidates(accept):
            try:
                score = float(self._scorer.score(text, item.features))
            except Exception as exc:
                raise InternalError(
                    f"Scorer failed during query: {exc}",
                    context={"scorer": type(self._scorer).__name__, "key": str(item.key)},
                ) from exc
            if score > 0.0:
                scored.append((score, item))

        scored.sort(key=lambda pair: (pair[0], pair[1].updated_at, pair[1].seq), reverse=True)
        return [
            SearchHit(key=item.key, score=score, version=item.version, updated_at=item.updated_at)
            for score, item in scored[:top_k]
        ]

    def _candidates(
        self, accept: Callable[[VirtualPath], bool] | None
    ) -> Iterable[IndexedEntry]:
        if accept is None:
            return list(self._entries.values())
        return [item for key, item in self._entries.items() if accept(key)]
