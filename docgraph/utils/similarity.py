"""
Vector Similarity Helpers

Cosine similarity via scipy's cdist, shared by the entity resolver, the
semantic boundary detector and the in-memory indexes.
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np
from scipy.spatial.distance import cdist


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two vectors.

    Returns 0.0 for empty, mismatched or zero-magnitude vectors.
    """
    if not a or not b or len(a) != len(b):
        return 0.0
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if norm == 0.0:
        return 0.0
    return float(np.dot(va, vb) / norm)


def cosine_similarities(query: Sequence[float], vectors: Sequence[Sequence[float]]) -> np.ndarray:
    """
    Cosine similarity of one query vector against many.

    Args:
        query: d-dimensional vector
        vectors: n x d vectors

    Returns:
        Array of n similarities (0.0 where a vector has zero magnitude)
    """
    if len(vectors) == 0:
        return np.zeros(0)
    q = np.asarray([query], dtype=np.float64)
    m = np.asarray(vectors, dtype=np.float64)
    with np.errstate(invalid="ignore", divide="ignore"):
        sims = 1 - cdist(q, m, metric="cosine")[0]
    return np.nan_to_num(sims, nan=0.0)


def adjacent_distances(vectors: Sequence[Sequence[float]]) -> list[float]:
    """Cosine distance (1 - similarity) between each vector and the next."""
    return [
        1 - cosine_similarity(vectors[i], vectors[i + 1])
        for i in range(len(vectors) - 1)
    ]
