"""Vector math shared by the crawl queue and the HTTP layer."""

from __future__ import annotations

from typing import Sequence

import numpy as np


def cosine_similarity(a: Sequence[float] | np.ndarray, b: Sequence[float] | np.ndarray) -> float:
    """Cosine of the angle between ``a`` and ``b``; 0.0 when either has zero magnitude."""
    left = np.asarray(a, dtype="float64")
    right = np.asarray(b, dtype="float64")
    norm = float(np.linalg.norm(left)) * float(np.linalg.norm(right))
    if norm == 0.0:
        return 0.0
    return float(np.dot(left, right) / norm)


def similarity_matrix(queries: np.ndarray, documents: np.ndarray) -> np.ndarray:
    """Pairwise cosine similarity, shape ``(len(queries), len(documents))``."""
    q = np.atleast_2d(np.asarray(queries, dtype="float32"))
    d = np.atleast_2d(np.asarray(documents, dtype="float32"))
    q_norm = np.linalg.norm(q, axis=1, keepdims=True)
    d_norm = np.linalg.norm(d, axis=1, keepdims=True)
    q_norm[q_norm == 0] = 1.0
    d_norm[d_norm == 0] = 1.0
    return (q / q_norm) @ (d / d_norm).T
