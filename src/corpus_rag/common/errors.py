"""corpus_rag.common.errors

Exception taxonomy for the retrieval pipeline.

An empty partition is never an error: searches over it return an empty
result. Everything else that can go wrong surfaces as one of the classes
below so that callers (the HTTP layer, scripts) can map failures without
inspecting messages.
"""

from __future__ import annotations


class CorpusRAGError(Exception):
    """Base class for all errors raised by :mod:`corpus_rag`."""


class InvalidInput(CorpusRAGError, ValueError):
    """A caller-supplied value was rejected (empty query, bad ``top_k``, ...)."""


class ProviderFailure(CorpusRAGError):
    """An embedding backend call failed or returned malformed data."""


class BackendUnavailable(ProviderFailure):
    """The embedding backend could not be reached or timed out."""


class UnsupportedFeature(ProviderFailure):
    """The configured provider does not implement the requested capability."""


class NoResult(CorpusRAGError):
    """The embedding backend returned no vector for a single input."""


class PartialIngestFailure(CorpusRAGError):
    """One or more chunks failed to persist during ingestion.

    Ingestion is not transactional: chunks inserted before and after a failure
    remain stored.

    Parameters
    ----------
    created : int
        Number of chunks persisted.
    failed : int
        Number of chunks skipped because their insert failed.
    document_id : int or None, optional
        Document being ingested.
    """

    def __init__(self, created: int, failed: int, document_id: int | None = None):
        self.created = created
        self.failed = failed
        self.document_id = document_id
        super().__init__(
            f"{failed} of {created + failed} chunks failed to persist"
            + (f" for document {document_id}" if document_id is not None else "")
        )


class StorageError(CorpusRAGError):
    """The corpus store failed to read or write."""


class PartitionNotFound(CorpusRAGError, LookupError):
    """No partition exists with the requested identifier."""

    def __init__(self, partition_id: int):
        self.partition_id = partition_id
        super().__init__(f"Partition not found: {partition_id}")


class DocumentNotFound(CorpusRAGError, LookupError):
    """No document exists with the requested identifier."""

    def __init__(self, document_id: int):
        self.document_id = document_id
        super().__init__(f"Document not found: {document_id}")


__all__ = [
    "CorpusRAGError",
    "InvalidInput",
    "ProviderFailure",
    "BackendUnavailable",
    "UnsupportedFeature",
    "NoResult",
    "PartialIngestFailure",
    "StorageError",
    "PartitionNotFound",
    "DocumentNotFound",
]
