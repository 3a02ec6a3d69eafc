"""corpus_rag.retrieval.retriever

Exact similarity search over the chunks of one partition.

Classes
-------
RetrievalEngine
    Brute-force cosine retrieval with optional diversity re-ranking.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Sequence

import numpy as np

from corpus_rag.common.errors import InvalidInput
from corpus_rag.common.schemas import IndexedChunk, Match
from corpus_rag.retrieval.reranker import BaseReranker, DiversityReranker
from corpus_rag.retrieval.similarity import batch_cosine_similarity

logger = logging.getLogger(__name__)

DEFAULT_PARALLEL_THRESHOLD = 20_000
DEFAULT_CANDIDATE_MULTIPLIER = 3


class RetrievalEngine:
    """Score every chunk of a partition against a query vector.

    Parameters
    ----------
    store : BaseCorpusStore
        Source of indexed chunks and document display names.
    reranker : BaseReranker or None, optional
        Reranker used by :meth:`search_with_rerank`. Defaults to a
        :class:`~corpus_rag.retrieval.reranker.DiversityReranker` with its
        default penalty.
    parallel_threshold : int, optional
        Candidate count at or above which scoring is split into blocks and
        run on a thread pool. Defaults to ``20000``.
    max_workers : int or None, optional
        Thread pool size for parallel scoring. Defaults to the CPU count.

    Notes
    -----
    Searches never mutate the store, so any number may run concurrently with
    each other and with ingestion. A search sees the chunks present when it
    fetched the partition.
    """

    def __init__(
            self,
            store,
            reranker: BaseReranker | None = None,
            parallel_threshold: int = DEFAULT_PARALLEL_THRESHOLD,
            max_workers: int | None = None,
        ):
        self.store = store
        self.reranker = reranker if reranker is not None else DiversityReranker()
        self.parallel_threshold = max(1, int(parallel_threshold))
        self.max_workers = max_workers or os.cpu_count() or 1

    def _score(self, query_vector: np.ndarray, chunks: Sequence[IndexedChunk]) -> np.ndarray:
        vectors = [c.embedding for c in chunks]
        if len(vectors) < self.parallel_threshold or self.max_workers < 2:
            return batch_cosine_similarity(query_vector, vectors)

        block = -(-len(vectors) // self.max_workers)
        blocks = [vectors[i:i + block] for i in range(0, len(vectors), block)]
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            parts = list(pool.map(functools.partial(batch_cosine_similarity, query_vector), blocks))
        return np.concatenate(parts)

    def search(self, partition_id: int, query_vector, top_k: int) -> list[Match]:
        """Return the ``top_k`` chunks most similar to ``query_vector``.

        Parameters
        ----------
        partition_id : int
            Partition to search. Chunks from other partitions are never
            considered.
        query_vector : array-like
            Query embedding.
        top_k : int
            Maximum number of matches.

        Returns
        -------
        list[Match]
            Matches ordered by non-increasing similarity; ties keep store
            order. Chunks whose document name cannot be resolved are dropped,
            so fewer than ``top_k`` matches may be returned.

        Raises
        ------
        InvalidInput
            If ``top_k`` is less than 1.
        """
        if top_k < 1:
            raise InvalidInput(f"Field 'top_k' must be at least 1, got {top_k}")

        chunks = self.store.list_chunks(partition_id)
        if not chunks:
            return []

        logger.debug("Searching %d chunks in partition %s", len(chunks), partition_id)

        query = np.asarray(query_vector, dtype=np.float32).ravel()
        scores = self._score(query, chunks)
        order = np.argsort(-scores, kind="stable")[:top_k]
        top = [(float(scores[i]), chunks[i]) for i in order]

        names = self.store.get_display_names({chunk.document_id for _, chunk in top})

        results: list[Match] = []
        for similarity, chunk in top:
            name = names.get(chunk.document_id)
            if name is None:
                logger.debug(
                    "Dropping chunk %s: no display name for document %s",
                    chunk.id, chunk.document_id,
                )
                continue
            results.append(Match(chunk=chunk, similarity=similarity, document_name=name))

        logger.debug("Search completed, returning %d results", len(results))
        return results

    def search_with_rerank(
            self,
            partition_id: int,
            query_vector,
            top_k: int,
            candidate_multiplier: int = DEFAULT_CANDIDATE_MULTIPLIER,
        ) -> list[Match]:
        """Over-fetch ``top_k * candidate_multiplier`` matches, then re-rank.

        The first result is always the plain top match.

        Raises
        ------
        InvalidInput
            If ``top_k`` or ``candidate_multiplier`` is less than 1.
        """
        if top_k < 1:
            raise InvalidInput(f"Field 'top_k' must be at least 1, got {top_k}")
        if candidate_multiplier < 1:
            raise InvalidInput(
                f"Field 'candidate_multiplier' must be at least 1, got {candidate_multiplier}"
            )

        candidates = self.search(partition_id, query_vector, top_k * candidate_multiplier)
        return self.reranker.rerank(candidates, top_k)

    async def asearch(self, partition_id: int, query_vector, top_k: int) -> list[Match]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, functools.partial(self.search, partition_id, query_vector, top_k)
        )

    async def asearch_with_rerank(
            self,
            partition_id: int,
            query_vector,
            top_k: int,
            candidate_multiplier: int = DEFAULT_CANDIDATE_MULTIPLIER,
        ) -> list[Match]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None,
            functools.partial(
                self.search_with_rerank, partition_id, query_vector, top_k, candidate_multiplier
            ),
        )


__all__ = [
    "RetrievalEngine",
    "DEFAULT_PARALLEL_THRESHOLD",
    "DEFAULT_CANDIDATE_MULTIPLIER",
]
