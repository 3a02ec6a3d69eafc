"""corpus_rag.common.schemas

Core data schemas shared across the retrieval pipeline.

These lightweight dataclasses describe the canonical shapes passed between
chunking, embedding, storage, retrieval and the public pipeline operations.

Classes
-------
Segment
    A contiguous, offset-tagged substring of a source text.
Partition
    An isolated corpus scope (one project's document set).
DocumentRecord
    Metadata for a document ingested into a partition.
IndexedChunk
    A persisted segment plus its embedding vector and provenance.
Match
    A scored retrieval result decorated with its document's display name.
IngestResult
    Outcome of adding a document to a partition.

Notes
-----
Embedding vectors are one-dimensional ``numpy.float32`` arrays. They are
excluded from dataclass equality so that chunks compare by identity and
content rather than by element-wise array comparison.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

import numpy as np


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Segment:
    """A contiguous piece of source text produced by the chunker.

    Attributes
    ----------
    text : str
        Segment content; always equal to ``source[start:end]``.
    ordinal : int
        0-based position of the segment within its source.
    start : int
        Character offset of the first character in the source.
    end : int
        Character offset one past the last character in the source.
    """

    text: str
    ordinal: int
    start: int
    end: int

    def __len__(self) -> int:
        return len(self.text)


@dataclass(frozen=True)
class Partition:
    """An isolated corpus scope that retrieval never crosses."""

    id: int
    name: str
    created_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class DocumentRecord:
    """Metadata for a document owned by a partition.

    Attributes
    ----------
    id : int
        Store-allocated document identifier.
    partition_id : int
        Owning partition.
    name : str
        Display name used to decorate matches (e.g. the file name).
    source_path : str or None
        Optional path or URL the content was read from.
    created_at : datetime
        Creation timestamp (UTC).
    """

    id: int
    partition_id: int
    name: str
    source_path: str | None = None
    created_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class IndexedChunk:
    """The durable retrieval unit.

    Chunks are created once when a document is ingested and never updated.
    They are removed when their document or partition is deleted.

    Attributes
    ----------
    id : int
        Store-allocated chunk identifier.
    partition_id : int
        Partition the chunk belongs to.
    document_id : int
        Source document identifier.
    content : str
        Segment text.
    embedding : numpy.ndarray
        ``float32`` embedding vector of ``content``.
    ordinal : int
        Position of the segment within its source document.
    """

    id: int
    partition_id: int
    document_id: int
    content: str
    embedding: np.ndarray = field(repr=False, compare=False)
    ordinal: int = 0


@dataclass(frozen=True)
class Match:
    """A chunk paired with its query similarity and document display name."""

    chunk: IndexedChunk
    similarity: float
    document_name: str

    @property
    def chunk_id(self) -> int:
        return self.chunk.id

    @property
    def document_id(self) -> int:
        return self.chunk.document_id

    @property
    def content(self) -> str:
        return self.chunk.content


@dataclass(frozen=True)
class IngestResult:
    """Outcome of adding a document.

    Ingestion is best-effort per chunk: ``chunks_created`` counts the chunks
    that were persisted and ``chunks_failed`` the ones that were skipped.
    """

    document_id: int
    chunks_created: int
    chunks_failed: int = 0

    @property
    def partial(self) -> bool:
        return self.chunks_failed > 0
