"""corpus_rag.retrieval.embedding_service

Batched embedding of text segments.

:class:`EmbeddingService` turns a sequence of texts into ``float32`` vectors
through an injected :class:`~corpus_rag.retrieval.types.EmbeddingBackend`.
Inputs larger than the batch size are split into consecutive batches, one
backend call per batch, and results are concatenated in input order. Any
failure aborts the whole call: callers never see a partial result.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Sequence

import numpy as np

from corpus_rag.common.errors import CorpusRAGError, InvalidInput, NoResult, ProviderFailure
from corpus_rag.retrieval.types import EmbeddingBackend

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 32


class EmbeddingService:
    """Embed texts through a backend with bounded batch sizes.

    Parameters
    ----------
    backend : EmbeddingBackend
        Explicitly constructed provider backend.
    batch_size : int, optional
        Maximum number of texts per backend call. Defaults to ``32``.

    Raises
    ------
    InvalidInput
        If ``batch_size`` is not a positive integer.
    """

    def __init__(self, backend: EmbeddingBackend, batch_size: int = DEFAULT_BATCH_SIZE):
        if isinstance(batch_size, bool) or not isinstance(batch_size, int) or batch_size < 1:
            raise InvalidInput(f"'batch_size' must be a positive integer, got {batch_size!r}")
        self.backend = backend
        self.batch_size = batch_size

    def _batches(self, texts: list[str]) -> list[list[str]]:
        if len(texts) <= self.batch_size:
            return [texts]
        return [texts[i:i + self.batch_size] for i in range(0, len(texts), self.batch_size)]

    def _call_backend(self, batch: list[str]) -> list[np.ndarray]:
        try:
            raw = self.backend.embed_raw(batch)
        except CorpusRAGError:
            raise
        except Exception as exc:
            raise ProviderFailure(f"Embedding backend call failed: {exc}") from exc

        return _coerce_vectors(raw, expected=len(batch))

    def embed(self, texts: Sequence[str]) -> list[np.ndarray]:
        """Embed ``texts``.

        Parameters
        ----------
        texts : Sequence[str]
            Texts to embed.

        Returns
        -------
        list[numpy.ndarray]
            One ``float32`` vector per input, in input order. Empty input
            returns ``[]`` without calling the backend.

        Raises
        ------
        ProviderFailure
            If any backend call fails or returns malformed data.
        """
        texts = list(texts)
        if not texts:
            return []

        vectors: list[np.ndarray] = []
        for batch in self._batches(texts):
            vectors.extend(self._call_backend(batch))
            logger.debug(
                "Processed batch of %d embeddings, total: %d/%d",
                len(batch), len(vectors), len(texts),
            )
        return vectors

    def embed_one(self, text: str) -> np.ndarray:
        """Embed a single text.

        Raises
        ------
        NoResult
            If the backend produced no vector.
        """
        vectors = self.embed([text])
        if not vectors:
            raise NoResult("Embedding backend returned no vector")
        return vectors[0]

    async def aembed(self, texts: Sequence[str]) -> list[np.ndarray]:
        """Asynchronously embed ``texts``.

        Each batch runs in the default executor. Cancelling the awaiting task
        stops the remaining batches from being sent.
        """
        texts = list(texts)
        if not texts:
            return []

        loop = asyncio.get_running_loop()
        vectors: list[np.ndarray] = []
        for batch in self._batches(texts):
            vectors.extend(await loop.run_in_executor(None, self._call_backend, batch))
        return vectors

    async def aembed_one(self, text: str) -> np.ndarray:
        vectors = await self.aembed([text])
        if not vectors:
            raise NoResult("Embedding backend returned no vector")
        return vectors[0]


def _coerce_vectors(raw, expected: int) -> list[np.ndarray]:
    """Validate a backend response and convert it to ``float32`` arrays."""
    if raw is None:
        raise ProviderFailure("Embedding backend returned no data")

    raw = list(raw)
    if len(raw) != expected:
        raise ProviderFailure(
            f"Embedding backend returned {len(raw)} vectors for {expected} inputs"
        )

    vectors: list[np.ndarray] = []
    for i, vec in enumerate(raw):
        try:
            arr = np.asarray(vec, dtype=np.float32)
        except (TypeError, ValueError) as exc:
            raise ProviderFailure(f"Embedding {i} is not numeric: {exc}") from exc
        if arr.ndim != 1 or arr.size == 0:
            raise ProviderFailure(f"Embedding {i} has invalid shape {arr.shape}")
        vectors.append(arr)
    return vectors


__all__ = ["EmbeddingService", "DEFAULT_BATCH_SIZE"]
