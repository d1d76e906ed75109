"""Job-local in-memory vector store (cosine similarity, exact search)."""

from __future__ import annotations

from typing import Hashable, Sequence

import numpy as np


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    denom = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denom == 0.0:
        return 0.0
    return float(np.dot(va, vb) / denom)


class InMemoryVectorStore:
    """Holds a handful of vectors for one analysis pass; never shared."""

    def __init__(self) -> None:
        self._ids: list[Hashable] = []
        self._rows: list[np.ndarray] = []

    def add(self, item_id: Hashable, vector: Sequence[float]) -> None:
        row = np.asarray(vector, dtype=float)
        norm = np.linalg.norm(row)
        self._rows.append(row / norm if norm else row)
        self._ids.append(item_id)

    def search(self, vector: Sequence[float], k: int = 3) -> list[tuple[Hashable, float]]:
        """Return up to *k* ``(id, cosine similarity)`` pairs, best first."""
        if not self._rows or k <= 0:
            return []
        query = np.asarray(vector, dtype=float)
        norm = np.linalg.norm(query)
        if norm:
            query = query / norm
        scores = np.vstack(self._rows) @ query
        # Stable sort keeps insertion order among equal scores.
        order = np.argsort(-scores, kind="stable")[:k]
        return [(self._ids[i], float(scores[i])) for i in order]

    def __len__(self) -> int:
        return len(self._ids)
