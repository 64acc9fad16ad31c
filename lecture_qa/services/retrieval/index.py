"""
In-memory embedding index over a DocumentStore.

Each index belongs to exactly one session; nothing here is shared across
users.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Iterable, Sequence

import numpy as np

from lecture_qa.services.retrieval.documents import DocumentStore, Passage

Embedder = Callable[[str], Awaitable[list[float]]]


class RetrievalError(RuntimeError):
    """Raised when an index cannot be built or queried."""


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Dot product divided by the product of magnitudes.

    A zero-magnitude vector has similarity 0.0 with everything.

    Raises:
        ValueError: If the vectors have different lengths.
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise ValueError(f"Vector dimensions differ: {va.shape} vs {vb.shape}")

    norm = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if norm == 0.0:
        return 0.0
    return float(np.dot(va, vb) / norm)


# -------------------------------------------------------------- #
# Retrieval Index
# -------------------------------------------------------------- #


class RetrievalIndex:
    """Passages plus one embedding vector per passage."""

    def __init__(self, store: DocumentStore, vectors: np.ndarray, embedder: Embedder):
        if len(store) != len(vectors):
            raise ValueError("store and vectors must have the same length")
        self.store = store
        self._vectors = vectors
        self._embedder = embedder

    @classmethod
    async def build(cls, passages: Iterable[Passage], embedder: Embedder) -> RetrievalIndex:
        """
        Embed every passage and return a ready index.

        Raises:
            RetrievalError: If embedding fails or the vectors are inconsistent.
        """
        store = DocumentStore(passages)
        try:
            embeddings = [await embedder(passage.text) for passage in store]
            if embeddings:
                vectors = np.asarray(embeddings, dtype=np.float64)
                if vectors.ndim != 2:
                    raise ValueError("embeddings have inconsistent dimensions")
            else:
                vectors = np.zeros((0, 0), dtype=np.float64)
        except Exception as e:
            raise RetrievalError(f"Failed to build retrieval index: {e}") from e

        return cls(store, vectors, embedder)

    def __len__(self) -> int:
        return len(self.store)

    async def nearest_neighbors(self, query: str, k: int = 4) -> list[Passage]:
        """Top-k passages by cosine similarity to `query`."""
        return await self._rank(query, range(len(self.store)), k)

    async def nearest_neighbors_in_window(
        self, query: str, lower_ms: int, upper_ms: int, k: int = 4
    ) -> list[Passage]:
        """Top-k passages whose offset lies in [lower_ms, upper_ms]."""
        return await self._rank(query, self.store.in_window(lower_ms, upper_ms), k)

    async def _rank(self, query: str, positions: Iterable[int], k: int) -> list[Passage]:
        positions = list(positions)
        if not positions or k <= 0:
            return []

        try:
            query_vector = np.asarray(await self._embedder(query), dtype=np.float64)
            candidates = self._vectors[positions]
            if candidates.shape[1] != query_vector.shape[0]:
                raise ValueError(
                    f"query has {query_vector.shape[0]} dimensions, index has {candidates.shape[1]}"
                )

            norms = np.linalg.norm(candidates, axis=1) * np.linalg.norm(query_vector)
            dots = candidates @ query_vector
            scores = np.divide(dots, norms, out=np.zeros_like(dots), where=norms != 0)
        except Exception as e:
            raise RetrievalError(f"Retrieval query failed: {e}") from e

        # stable sort keeps ingestion order among equal scores
        order = np.argsort(-scores, kind="stable")[:k]
        return [self.store[positions[i]] for i in order]
