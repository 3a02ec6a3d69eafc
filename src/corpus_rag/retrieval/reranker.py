"""corpus_rag.retrieval.reranker

Reranker abstractions and implementations for single-partition retrieval.

This module defines:
- an abstract reranker interface over scored matches
- a concrete diversity-aware (MMR-style) reranker
- a small reranker factory for configuration-driven construction
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Mapping, Sequence

from corpus_rag.common.schemas import Match
from corpus_rag.retrieval.similarity import cosine_similarity

logger = logging.getLogger(__name__)

DEFAULT_DIVERSITY_PENALTY = 0.3


class BaseReranker(ABC):
    """Abstract interface for reranking candidate matches."""

    @abstractmethod
    def rerank(self, candidates: Sequence[Match], top_k: int) -> list[Match]:
        """Return at most ``top_k`` matches chosen from ``candidates``."""
        raise NotImplementedError


class DiversityReranker(BaseReranker):
    """Greedy relevance/diversity trade-off over relevance-ordered candidates.

    The top candidate is always kept. Each further slot goes to the candidate
    maximising ``similarity - diversity_penalty * max_sim``, where ``max_sim``
    is its highest cosine similarity to an already selected chunk, floored at
    ``0.0``. Ties go to the earlier candidate. Reported similarities are the
    original relevance scores.

    Parameters
    ----------
    diversity_penalty : float, optional
        Weight of redundancy against relevance. ``0.0`` reproduces plain
        top-k. Defaults to ``0.3``.
    """

    def __init__(self, diversity_penalty: float = DEFAULT_DIVERSITY_PENALTY):
        self.diversity_penalty = float(diversity_penalty)
        if self.diversity_penalty < 0.0:
            raise ValueError("'diversity_penalty' must be non-negative.")

    def rerank(self, candidates: Sequence[Match], top_k: int) -> list[Match]:
        remaining = list(candidates)
        if len(remaining) <= top_k:
            return remaining

        selected = [remaining.pop(0)]

        while len(selected) < top_k and remaining:
            best_idx = 0
            best_score = float("-inf")

            for idx, candidate in enumerate(remaining):
                max_sim = 0.0
                for chosen in selected:
                    max_sim = max(
                        max_sim,
                        cosine_similarity(candidate.chunk.embedding, chosen.chunk.embedding),
                    )

                score = candidate.similarity - self.diversity_penalty * max_sim
                if score > best_score:
                    best_score = score
                    best_idx = idx

            selected.append(remaining.pop(best_idx))

        logger.debug(
            "Re-ranked %d candidates to %d diverse results",
            len(candidates), len(selected),
        )
        return selected


def create_reranker(config: Mapping[str, Any] | None = None) -> BaseReranker:
    """Create a reranker from the ``retrieval`` configuration section."""
    cfg = dict(config or {})
    kind = str(cfg.get("rerank", cfg.get("type", "diversity"))).lower().strip()

    if kind in {"diversity", "mmr"}:
        return DiversityReranker(
            diversity_penalty=float(cfg.get("diversity_penalty", DEFAULT_DIVERSITY_PENALTY))
        )

    raise ValueError(f"Unsupported rerank type {kind!r}. Supported rerankers: ['diversity'].")


__all__ = [
    "BaseReranker",
    "DiversityReranker",
    "DEFAULT_DIVERSITY_PENALTY",
    "create_reranker",
]
