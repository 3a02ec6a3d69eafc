"""corpus_rag.retrieval.types

Shared type definitions for the retrieval layer.

This module defines the protocol abstractions used to decouple the
embedding service and retrieval engine from concrete backends and stores.

Classes
-------
EmbeddingBackend
    Capability interface for embedding providers.
CorpusVectorSource
    Read/append access to the indexed chunks of a partition.
DocumentMetadataSource
    Lookup of document display names used to decorate matches.
"""

from __future__ import annotations

from typing import Iterable, Protocol, Sequence, runtime_checkable

import numpy as np

from corpus_rag.common.schemas import IndexedChunk


@runtime_checkable
class EmbeddingBackend(Protocol):
    """Capability interface for embedding providers.

    Concrete backends are independent variants selected by configuration
    (see :func:`corpus_rag.retrieval.embedder.create_embedding_backend`).

    Methods
    -------
    embed_raw
        Embed a batch of texts in a single provider call.
    """

    def embed_raw(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed ``texts``, returning one vector per input in input order.

        Raises
        ------
        UnsupportedFeature
            If the provider cannot produce embeddings.
        ProviderFailure
            If the provider call fails.
        """
        ...


class CorpusVectorSource(Protocol):
    """Storage-side contract consumed by the retrieval engine and ingestion."""

    def list_chunks(self, partition_id: int) -> list[IndexedChunk]:
        ...

    def insert_chunk(
            self,
            document_id: int,
            partition_id: int,
            content: str,
            embedding: np.ndarray,
            ordinal: int,
        ) -> int:
        ...


class DocumentMetadataSource(Protocol):
    """Lookup of document display names."""

    def get_display_name(self, document_id: int) -> str | None:
        ...

    def get_display_names(self, document_ids: Iterable[int]) -> dict[int, str]:
        ...


__all__ = [
    "EmbeddingBackend",
    "CorpusVectorSource",
    "DocumentMetadataSource",
]
