"""
Common building blocks shared across the retrieval stack.

This package provides small, widely-used primitives (schemas, identifier
aliases, the error taxonomy and input validators) imported by every other
layer of the system.

Classes
-------
Segment
    Offset-tagged piece of source text produced by the chunker.
Partition
    Isolated corpus scope.
DocumentRecord
    Document metadata.
IndexedChunk
    Persisted segment with its embedding vector.
Match
    Scored retrieval result.
IngestResult
    Outcome of adding a document.

Attributes
----------
PartitionId : TypeAlias
    Type alias for partition identifiers.
DocId : TypeAlias
    Type alias for document identifiers.
ChunkId : TypeAlias
    Type alias for chunk identifiers.

See Also
--------
corpus_rag.common.errors
    Exception taxonomy.
corpus_rag.common.validation
    Validators raising :class:`~corpus_rag.common.errors.InvalidInput`.
"""
from __future__ import annotations
from typing import TypeAlias

from .schemas import (
    DocumentRecord,
    IndexedChunk,
    IngestResult,
    Match,
    Partition,
    Segment,
)

PartitionId: TypeAlias = int
DocId: TypeAlias = int
ChunkId: TypeAlias = int

__all__ = [
    "Segment",
    "Partition",
    "DocumentRecord",
    "IndexedChunk",
    "Match",
    "IngestResult",
    "PartitionId",
    "DocId",
    "ChunkId",
]
