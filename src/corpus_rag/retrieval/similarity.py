"""corpus_rag.retrieval.similarity

Cosine similarity between embedding vectors.

Vectors are stored as ``float32``; dot products and norms are accumulated in
``float64`` so that results are stable for long vectors. Two conventions keep
scoring total over heterogeneous inputs:

- vectors of different lengths have similarity ``0.0``;
- a zero vector has no direction and has similarity ``0.0`` with every
  vector, itself included.

Functions
---------
cosine_similarity
    Similarity of two vectors.
batch_cosine_similarity
    Similarities of one query vector against many candidate vectors.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np


def _as_vector(vec) -> np.ndarray:
    return np.asarray(vec, dtype=np.float32).astype(np.float64).ravel()


def cosine_similarity(a, b) -> float:
    """Return the cosine similarity of ``a`` and ``b``.

    Parameters
    ----------
    a, b : array-like
        One-dimensional numeric vectors.

    Returns
    -------
    float
        ``dot(a, b) / (|a| * |b|)``, approximately in ``[-1, 1]``; ``0.0``
        when lengths differ or either magnitude is zero.
    """
    va = _as_vector(a)
    vb = _as_vector(b)
    if va.shape != vb.shape:
        return 0.0

    dot = float(np.dot(va, vb))
    norm_a = float(np.sqrt(np.dot(va, va)))
    norm_b = float(np.sqrt(np.dot(vb, vb)))

    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    score = dot / (norm_a * norm_b)
    if not np.isfinite(score):
        return 0.0
    return score


def batch_cosine_similarity(query, vectors: Sequence) -> np.ndarray:
    """Score ``query`` against every vector in ``vectors``.

    Candidates whose length matches the query are scored in one vectorised
    pass; the rest score ``0.0``.

    Parameters
    ----------
    query : array-like
        Query vector.
    vectors : Sequence[array-like]
        Candidate vectors, possibly of mixed lengths.

    Returns
    -------
    numpy.ndarray
        ``float64`` scores aligned with ``vectors``.
    """
    scores = np.zeros(len(vectors), dtype=np.float64)
    if not len(vectors):
        return scores

    q = _as_vector(query)
    q_norm = float(np.sqrt(np.dot(q, q)))
    if q_norm == 0.0:
        return scores

    dim = q.shape[0]
    rows = [i for i, vec in enumerate(vectors) if np.size(vec) == dim]
    if not rows:
        return scores

    matrix = np.asarray([np.asarray(vectors[i], dtype=np.float32).ravel() for i in rows])
    matrix = matrix.astype(np.float64)

    dots = matrix @ q
    norms = np.sqrt(np.einsum("ij,ij->i", matrix, matrix))

    with np.errstate(divide="ignore", invalid="ignore"):
        sims = dots / (norms * q_norm)
    sims = np.where((norms == 0.0) | ~np.isfinite(sims), 0.0, sims)

    scores[rows] = sims
    return scores


__all__ = [
    "cosine_similarity",
    "batch_cosine_similarity",
]
