"""corpus_rag.pipelines

Pipeline orchestration components for corpus-rag.

This package contains the high-level pipeline that coordinates chunking,
embedding, persistence, retrieval and grounding-context rendering.
Pipelines are stateless beyond their configured components, making them
safe to reuse across requests and execution contexts.

Modules
-------
rag_pipeline
    Document ingestion and query-time retrieval over partitions.
"""
