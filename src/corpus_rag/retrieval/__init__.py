"""
Retrieval layer of the RAG pipeline.

This package covers everything needed to turn raw text into searchable
vectors and to fetch the most relevant chunks of a partition for a query.
It includes the chunker, embedding backends and the batching service around
them, the cosine scorer, corpus stores, the retrieval engine and the
diversity re-ranker.

Submodules
----------
text_splitter
    Boundary-aware chunking of long texts into overlapping segments.
embedder
    Embedding backend wrappers and the configuration-driven factory.
embedding_service
    Batched embedding with all-or-nothing failure semantics.
similarity
    Cosine similarity, single and vectorised.
types
    Protocols decoupling retrieval from concrete backends and stores.
vector_store
    In-memory and SQL corpus stores plus the vector codec.
retriever
    Exact top-k search over one partition.
reranker
    Diversity-aware second-stage ranking.
"""
