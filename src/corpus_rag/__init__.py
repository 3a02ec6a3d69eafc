"""corpus_rag

Partitioned corpus retrieval for grounding chat models.

This package contains the building blocks of a retrieval-augmented
generation backend: boundary-aware chunking, batched embedding through
pluggable providers, partition-scoped corpus stores, exact cosine retrieval
with optional diversity re-ranking, and grounding-context rendering.

Attributes
----------
__version__ : str
    Package version string. Defaults to ``"0.0.0-dev"`` when package metadata is
    unavailable.

Modules
-------
config
    Global configuration loader, cached accessors and logging setup.
app
    Composition root and HTTP API.
pipelines
    Ingestion and query orchestration.
retrieval
    Chunking, embedding, similarity, stores, retrieval and re-ranking.
generation
    Grounding-context templates.
common
    Shared schemas, errors and validators.

Exports
-------
GlobalConfig
    Global configuration loader and accessor.
RagContainer
    Cached runtime component container for applications.
build_container
    Factory function to construct a configured :class:`~corpus_rag.app.container.RagContainer`.
RAGPipeline
    Ingestion and retrieval pipeline.
Match
    Scored retrieval result.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("corpus-rag")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

from .config import GlobalConfig
from .app.container import RagContainer, build_container
from .pipelines.rag_pipeline import RAGPipeline
from .common import IndexedChunk, Match, Segment

__all__ = [
    "__version__",
    "GlobalConfig",
    "RagContainer",
    "build_container",
    "RAGPipeline",
    "IndexedChunk",
    "Match",
    "Segment",
]
