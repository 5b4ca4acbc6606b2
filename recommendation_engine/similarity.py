"""Vector helpers — cosine similarity and profile averaging."""

from __future__ import annotations

from typing import Sequence

import numpy as np
from sklearn.metrics.pairwise import cosine_similarity as _pairwise_cosine


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of two vectors; 0 when either is all-zero or their lengths differ."""
    if len(a) != len(b) or len(a) == 0:
        return 0.0
    scores = cosine_to_pool(np.asarray(a, dtype=float), np.asarray([b], dtype=float))
    return float(scores[0])


def cosine_to_pool(profile: np.ndarray, pool: np.ndarray) -> np.ndarray:
    """Cosine of one profile vector against every row of `pool`, clipped to [-1, 1].

    Zero rows (and a zero profile) score 0: sklearn leaves zero vectors
    unnormalised, so their dot product stays 0.
    """
    if pool.size == 0:
        return np.zeros(0)
    scores = _pairwise_cosine(profile.reshape(1, -1), pool).ravel()
    return np.clip(scores, -1.0, 1.0)


def mean_vector(vectors: Sequence[Sequence[float]]) -> np.ndarray:
    """Coordinate-wise mean; vectors whose length differs from the first are ignored."""
    if not vectors:
        return np.zeros(0)
    dim = len(vectors[0])
    matrix = np.asarray([v for v in vectors if len(v) == dim], dtype=float)
    return matrix.mean(axis=0)
