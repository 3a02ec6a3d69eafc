"""corpus_rag.app.container

Composition root for corpus-rag.

This module is the single place where concrete implementations are wired
together from configuration (embedding backend, embedding service, corpus
store, retrieval engine, context builder and the pipeline). Components are
constructed lazily and cached on first access to avoid repeated expensive
initialisation.

Notes
-----
- Keep this module importable with minimal side effects:
  - do not perform network calls at import time
  - do not read files at import time
  - construct expensive objects lazily (cached on first access)

- Components are created via the existing factories
  (:func:`create_embedding_backend`, :func:`create_corpus_store`,
  :func:`create_reranker`). This module centralises those calls to prevent
  accidental duplication of models and database engines per request.

Examples
--------
>>> from corpus_rag.config import GlobalConfig
>>> from corpus_rag.app.container import build_container
>>> cfg = GlobalConfig.load("config.yaml")
>>> c = build_container(cfg)
>>> matches = c.pipeline.query(partition_id=1, query_text="my question")
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import cached_property
from typing import Any, Mapping

from corpus_rag.config import GlobalConfig
from corpus_rag.generation.context_builder import ContextBuilder
from corpus_rag.pipelines.rag_pipeline import RAGPipeline
from corpus_rag.retrieval.embedder import create_embedding_backend
from corpus_rag.retrieval.embedding_service import EmbeddingService
from corpus_rag.retrieval.reranker import BaseReranker, create_reranker
from corpus_rag.retrieval.retriever import RetrievalEngine
from corpus_rag.retrieval.text_splitter import ChunkConfig
from corpus_rag.retrieval.vector_store import BaseCorpusStore, create_corpus_store


@dataclass(frozen=True)
class RagContainer:
    """Holds the configured, cached runtime components for the application.

    Parameters
    ----------
    config : GlobalConfig
        Loaded global configuration.
    """

    config: GlobalConfig

    @cached_property
    def embedding_backend(self) -> Any:
        """Return the embedding backend selected by ``embedder.kind``."""
        return create_embedding_backend(dict(_as_mapping(self.config.embedder_backend)))

    @cached_property
    def embedding_service(self) -> EmbeddingService:
        return EmbeddingService(self.embedding_backend, batch_size=self.config.embedding_batch_size)

    @cached_property
    def store(self) -> BaseCorpusStore:
        """Return the corpus store.

        Returns
        -------
        BaseCorpusStore
            In-memory or SQL store, per ``storage.kind``.
        """
        return create_corpus_store(_as_mapping(self.config.storage))

    @cached_property
    def chunk_config(self) -> ChunkConfig:
        return ChunkConfig.from_config_dict(dict(_as_mapping(self.config.chunking)))

    @cached_property
    def reranker(self) -> BaseReranker:
        return create_reranker(self.config.retrieval)

    @cached_property
    def engine(self) -> RetrievalEngine:
        section = self.config.retrieval
        return RetrievalEngine(
            self.store,
            reranker=self.reranker,
            parallel_threshold=section["parallel_threshold"],
            max_workers=section["max_workers"],
        )

    @cached_property
    def context_builder(self) -> ContextBuilder:
        """Return the context builder.

        Templates listed under ``context_templates`` are registered, resolved
        relative to the configuration file's directory.
        """
        builder = ContextBuilder()
        for source in self.config.context_templates:
            builder.register_from_file(source, base_dir=self.config.base_dir)

        name = self.config.context_template_name
        if name is not None:
            builder.get_template(name)
            builder.default_template = name
        return builder

    @cached_property
    def pipeline(self) -> RAGPipeline:
        """Return the fully wired pipeline."""
        section = self.config.retrieval
        return RAGPipeline(
            store=self.store,
            embedding_service=self.embedding_service,
            engine=self.engine,
            chunk_config=self.chunk_config,
            context_builder=self.context_builder,
            default_top_k=section["top_k"],
            max_top_k=section["max_top_k"],
            candidate_multiplier=section["candidate_multiplier"],
        )


def build_container(config: GlobalConfig) -> RagContainer:
    """Create a :class:`~corpus_rag.app.container.RagContainer`.

    This function is intentionally small so it can serve as a single entry point
    for FastAPI lifespan hooks, CLI scripts, and tests.
    """
    return RagContainer(config=config)


def _as_mapping(obj: Any) -> Mapping[str, Any]:
    """Coerce an object into a mapping.

    Raises
    ------
    TypeError
        If ``obj`` cannot be interpreted as a mapping.
    """
    if isinstance(obj, Mapping):
        return obj

    if hasattr(obj, "__dict__"):
        return dict(vars(obj))

    raise TypeError(f"Expected mapping type but got {type(obj)}")


__all__ = ["RagContainer", "build_container"]
