"""corpus_rag.pipelines.rag_pipeline

Retrieval pipeline orchestration.

This module defines the :class:`RAGPipeline`, which coordinates document
ingestion (chunking, embedding, persistence) and query-time retrieval
(embedding, search, optional re-ranking, grounding-context rendering).

Classes
-------
RAGPipeline
    Orchestrates ingest and query flows over one corpus store.
GroundingContext
    Rendered system prompt plus the matches it cites.

Notes
-----
Ingestion is not transactional. An embedding failure aborts before anything
is persisted, but once chunks are being written each insert stands on its
own: failures are logged and skipped, and inserted chunks remain.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from dataclasses import dataclass, field
from typing import Any

from corpus_rag.common.errors import CorpusRAGError, PartialIngestFailure
from corpus_rag.common.schemas import IngestResult, Match
from corpus_rag.common.validation import (
    DEFAULT_MAX_TOP_K,
    validate_document_content,
    validate_name,
    validate_query,
    validate_top_k,
)
from corpus_rag.generation.context_builder import ContextBuilder
from corpus_rag.retrieval.embedding_service import EmbeddingService
from corpus_rag.retrieval.retriever import DEFAULT_CANDIDATE_MULTIPLIER, RetrievalEngine
from corpus_rag.retrieval.text_splitter import ChunkConfig, chunk_text
from corpus_rag.retrieval.vector_store import BaseCorpusStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GroundingContext:
    """System prompt grounded on retrieved matches."""

    prompt: str
    matches: list[Match] = field(default_factory=list)


class RAGPipeline:
    """Ingest documents into partitions and retrieve grounding context.

    The pipeline holds no state beyond its configured components, so one
    instance can serve concurrent requests.

    Parameters
    ----------
    store : BaseCorpusStore
        Corpus store holding partitions, documents and chunks.
    embedding_service : EmbeddingService
        Service used to embed segments and queries.
    engine : RetrievalEngine
        Similarity search over the store.
    chunk_config : ChunkConfig or None, optional
        Chunking parameters. Defaults to :class:`ChunkConfig` defaults.
    context_builder : ContextBuilder or None, optional
        Renderer for grounding prompts. Defaults to a builder with the
        default template.
    default_top_k : int, optional
        Result count used when a query does not specify one. Defaults to ``5``.
    max_top_k : int, optional
        Largest accepted ``top_k``. Defaults to ``100``.
    candidate_multiplier : int, optional
        Over-fetch factor for diverse queries. Defaults to ``3``.
    """

    def __init__(
            self,
            store: BaseCorpusStore,
            embedding_service: EmbeddingService,
            engine: RetrievalEngine,
            chunk_config: ChunkConfig | None = None,
            context_builder: ContextBuilder | None = None,
            default_top_k: int = 5,
            max_top_k: int = DEFAULT_MAX_TOP_K,
            candidate_multiplier: int = DEFAULT_CANDIDATE_MULTIPLIER,
        ):
        self.store = store
        self.embedding_service = embedding_service
        self.engine = engine
        self.chunk_config = chunk_config or ChunkConfig()
        self.context_builder = context_builder or ContextBuilder()
        self.default_top_k = default_top_k
        self.max_top_k = max_top_k
        self.candidate_multiplier = candidate_multiplier
        validate_top_k(self.default_top_k, self.max_top_k)

    # ---- ingestion ----

    def ingest(
            self,
            partition_id: int,
            document_id: int,
            full_text: str,
            *,
            strict: bool = False,
        ) -> int:
        """Chunk, embed and persist ``full_text`` for an existing document.

        Parameters
        ----------
        partition_id : int
            Partition owning the document.
        document_id : int
            Document the chunks belong to.
        full_text : str
            Document content.
        strict : bool, optional
            Raise :class:`PartialIngestFailure` when any chunk fails to
            persist. Defaults to ``False``.

        Returns
        -------
        int
            Number of chunks persisted.

        Raises
        ------
        InvalidInput
            If the content is blank or too long.
        ProviderFailure
            If embedding fails; no chunk is persisted.
        PartialIngestFailure
            With ``strict=True``, after the best-effort pass, if any insert
            failed.
        """
        created, _ = self._ingest(partition_id, document_id, full_text, strict=strict)
        return created

    def _ingest(self, partition_id, document_id, full_text, *, strict: bool) -> tuple[int, int]:
        validate_document_content(full_text)

        segments = chunk_text(full_text, self.chunk_config)
        logger.info("Split document %s into %d chunks", document_id, len(segments))

        embeddings = self.embedding_service.embed([s.text for s in segments])
        return self._persist(partition_id, document_id, segments, embeddings, strict=strict)

    def _persist(self, partition_id, document_id, segments, embeddings, *, strict: bool) -> tuple[int, int]:
        created = 0
        failed = 0
        for segment, embedding in zip(segments, embeddings):
            try:
                self.store.insert_chunk(
                    document_id=document_id,
                    partition_id=partition_id,
                    content=segment.text,
                    embedding=embedding,
                    ordinal=segment.ordinal,
                )
                created += 1
            except CorpusRAGError as exc:
                failed += 1
                logger.error(
                    "Failed to insert chunk %d of document %s: %s",
                    segment.ordinal, document_id, exc,
                )

        logger.info(
            "Ingested document %s into partition %s: %d chunks stored, %d failed",
            document_id, partition_id, created, failed,
        )
        if strict and failed:
            raise PartialIngestFailure(created=created, failed=failed, document_id=document_id)
        return created, failed

    def add_document(
            self,
            partition_id: int,
            name: str,
            content: str,
            source_path: str | None = None,
            *,
            strict: bool = False,
        ) -> IngestResult:
        """Create a document record in ``partition_id`` and ingest ``content``.

        Inputs are validated before the record is created, so a rejected
        document leaves nothing behind.
        """
        validate_name("name", name)
        validate_document_content(content)

        document = self.store.create_document(partition_id, name, source_path=source_path)
        created, failed = self._ingest(partition_id, document.id, content, strict=strict)
        return IngestResult(
            document_id=document.id,
            chunks_created=created,
            chunks_failed=failed,
        )

    async def aingest(
            self,
            partition_id: int,
            document_id: int,
            full_text: str,
            *,
            strict: bool = False,
        ) -> int:
        """Asynchronous :meth:`ingest`.

        Embedding batches run in the executor; cancelling the caller stops
        further batches and nothing is persisted.
        """
        validate_document_content(full_text)
        segments = chunk_text(full_text, self.chunk_config)
        embeddings = await self.embedding_service.aembed([s.text for s in segments])

        loop = asyncio.get_running_loop()
        created, _ = await loop.run_in_executor(
            None,
            functools.partial(
                self._persist, partition_id, document_id, segments, embeddings, strict=strict
            ),
        )
        return created

    # ---- retrieval ----

    def _resolve_top_k(self, top_k: int | None) -> int:
        k = self.default_top_k if top_k is None else top_k
        validate_top_k(k, self.max_top_k)
        return k

    def query(self, partition_id: int, query_text: str, top_k: int | None = None) -> list[Match]:
        """Return the ``top_k`` chunks of ``partition_id`` most similar to ``query_text``.

        Raises
        ------
        InvalidInput
            If the query is blank or too long, or ``top_k`` is out of range.
        ProviderFailure
            If the query cannot be embedded.
        """
        validate_query(query_text)
        k = self._resolve_top_k(top_k)
        vector = self.embedding_service.embed_one(query_text)
        return self.engine.search(partition_id, vector, k)

    def query_diverse(
            self,
            partition_id: int,
            query_text: str,
            top_k: int | None = None,
            candidate_multiplier: int | None = None,
        ) -> list[Match]:
        """Like :meth:`query`, but re-ranked for diversity."""
        validate_query(query_text)
        k = self._resolve_top_k(top_k)
        multiplier = self.candidate_multiplier if candidate_multiplier is None else candidate_multiplier
        vector = self.embedding_service.embed_one(query_text)
        return self.engine.search_with_rerank(partition_id, vector, k, multiplier)

    async def aquery(
            self,
            partition_id: int,
            query_text: str,
            top_k: int | None = None,
        ) -> list[Match]:
        validate_query(query_text)
        k = self._resolve_top_k(top_k)
        vector = await self.embedding_service.aembed_one(query_text)
        return await self.engine.asearch(partition_id, vector, k)

    async def aquery_diverse(
            self,
            partition_id: int,
            query_text: str,
            top_k: int | None = None,
            candidate_multiplier: int | None = None,
        ) -> list[Match]:
        validate_query(query_text)
        k = self._resolve_top_k(top_k)
        multiplier = self.candidate_multiplier if candidate_multiplier is None else candidate_multiplier
        vector = await self.embedding_service.aembed_one(query_text)
        return await self.engine.asearch_with_rerank(partition_id, vector, k, multiplier)

    def build_context(
            self,
            partition_id: int,
            query_text: str,
            top_k: int | None = None,
            diverse: bool = False,
            template: str | None = None,
        ) -> GroundingContext:
        """Retrieve matches and render them into a grounding system prompt.

        Returns
        -------
        GroundingContext
            The rendered prompt and the matches it cites, in citation order.
        """
        if diverse:
            matches = self.query_diverse(partition_id, query_text, top_k)
        else:
            matches = self.query(partition_id, query_text, top_k)

        prompt = self.context_builder.render(query_text, matches, name=template)
        return GroundingContext(prompt=prompt, matches=matches)

    def run(self, partition_id: int, query_text: str, **kwargs: Any) -> GroundingContext:
        """Alias of :meth:`build_context`."""
        return self.build_context(partition_id, query_text, **kwargs)

    def __call__(self, partition_id: int, query_text: str, **kwargs: Any) -> GroundingContext:
        return self.run(partition_id, query_text, **kwargs)


__all__ = ["RAGPipeline", "GroundingContext"]
