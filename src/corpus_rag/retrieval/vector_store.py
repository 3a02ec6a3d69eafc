"""corpus_rag.retrieval.vector_store

Corpus stores for the retrieval layer.

A corpus store persists partitions, documents and indexed chunks, and serves
two contracts to the rest of the system:

- the corpus-vector source (``list_chunks``/``insert_chunk``) read by the
  retrieval engine and appended to by ingestion;
- the document metadata source (``get_display_name(s)``) used to decorate
  matches.

Chunks are append-only; nothing is updated in place. Deleting a document or
partition removes its chunks.

Classes
-------
BaseCorpusStore
    Abstract interface for corpus stores.
InMemoryCorpusStore
    Process-local store guarded by a lock.
SQLCorpusStore
    Relational store backed by SQLAlchemy (SQLite by default).

Functions
---------
encode_embedding
    Serialise a vector as a length-prefixed little-endian ``float32`` blob.
decode_embedding
    Inverse of :func:`encode_embedding`.
create_corpus_store
    Create a store implementation from a configuration mapping.
"""

from __future__ import annotations

import itertools
import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

import numpy as np
from sqlalchemy import (
    DateTime,
    ForeignKey,
    Integer,
    LargeBinary,
    String,
    Text,
    create_engine,
    delete,
    event,
    select,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from corpus_rag.common.errors import DocumentNotFound, PartitionNotFound, StorageError
from corpus_rag.common.schemas import DocumentRecord, IndexedChunk, Partition

logger = logging.getLogger(__name__)

DEFAULT_SQL_URL = "sqlite:///corpus.db"

_LENGTH_DTYPE = np.dtype("<u4")
_FLOAT_DTYPE = np.dtype("<f4")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def encode_embedding(embedding) -> bytes:
    """Serialise ``embedding`` to bytes.

    The layout is a little-endian ``uint32`` component count followed by the
    components as little-endian ``float32``.
    """
    arr = np.asarray(embedding, dtype=np.float32).ravel().astype(_FLOAT_DTYPE, copy=False)
    return np.array([arr.size], dtype=_LENGTH_DTYPE).tobytes() + arr.tobytes()


def decode_embedding(blob: bytes) -> np.ndarray:
    """Deserialise a blob written by :func:`encode_embedding`.

    Raises
    ------
    StorageError
        If the length prefix does not match the payload size.
    """
    blob = bytes(blob)
    header = _LENGTH_DTYPE.itemsize
    if len(blob) < header:
        raise StorageError(f"Embedding blob too short: {len(blob)} bytes")

    count = int(np.frombuffer(blob[:header], dtype=_LENGTH_DTYPE)[0])
    payload = blob[header:]
    if len(payload) != count * _FLOAT_DTYPE.itemsize:
        raise StorageError(
            f"Embedding blob declares {count} components but holds {len(payload)} bytes"
        )
    return np.frombuffer(payload, dtype=_FLOAT_DTYPE).astype(np.float32)


def _frozen_vector(embedding) -> np.ndarray:
    arr = np.array(embedding, dtype=np.float32).ravel()
    arr.flags.writeable = False
    return arr


class BaseCorpusStore(ABC):
    """Abstract interface for corpus stores.

    Concrete implementations own partitions, documents and indexed chunks and
    must cascade deletes from partitions to documents to chunks.
    """

    # ---- partitions ----

    @abstractmethod
    def create_partition(self, name: str) -> Partition:
        """Create and return a new partition."""

    @abstractmethod
    def get_partition(self, partition_id: int) -> Partition:
        """Return a partition.

        Raises
        ------
        PartitionNotFound
            If no such partition exists.
        """

    @abstractmethod
    def list_partitions(self) -> list[Partition]:
        """Return all partitions, oldest first."""

    @abstractmethod
    def delete_partition(self, partition_id: int) -> None:
        """Delete a partition with its documents and chunks.

        Raises
        ------
        PartitionNotFound
            If no such partition exists.
        """

    # ---- documents ----

    @abstractmethod
    def create_document(
            self,
            partition_id: int,
            name: str,
            source_path: str | None = None,
        ) -> DocumentRecord:
        """Create a document record in an existing partition.

        Raises
        ------
        PartitionNotFound
            If the partition does not exist.
        """

    @abstractmethod
    def get_document(self, document_id: int) -> DocumentRecord:
        """Return a document record or raise :class:`DocumentNotFound`."""

    @abstractmethod
    def list_documents(self, partition_id: int) -> list[DocumentRecord]:
        """Return the documents of a partition, newest first."""

    @abstractmethod
    def delete_document(self, document_id: int) -> None:
        """Delete a document and its chunks or raise :class:`DocumentNotFound`."""

    # ---- chunks ----

    @abstractmethod
    def insert_chunk(
            self,
            document_id: int,
            partition_id: int,
            content: str,
            embedding: np.ndarray,
            ordinal: int,
        ) -> int:
        """Append one indexed chunk and return its identifier.

        Raises
        ------
        StorageError
            If the chunk cannot be persisted.
        """

    @abstractmethod
    def list_chunks(self, partition_id: int) -> list[IndexedChunk]:
        """Return every chunk of a partition in insertion order.

        An unknown or empty partition yields an empty list.
        """

    # ---- metadata ----

    @abstractmethod
    def get_display_names(self, document_ids: Iterable[int]) -> dict[int, str]:
        """Return ``{document_id: name}`` for the documents that still exist."""

    def get_display_name(self, document_id: int) -> str | None:
        return self.get_display_names([document_id]).get(document_id)


class InMemoryCorpusStore(BaseCorpusStore):
    """Process-local corpus store.

    Writes and snapshot copies are serialised by a single lock; readers work
    on the copied snapshot without holding it. Stored vectors are read-only
    arrays.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._partitions: dict[int, Partition] = {}
        self._documents: dict[int, DocumentRecord] = {}
        self._chunks: dict[int, IndexedChunk] = {}

    def create_partition(self, name: str) -> Partition:
        with self._lock:
            partition = Partition(id=next(self._ids), name=name)
            self._partitions[partition.id] = partition
        return partition

    def get_partition(self, partition_id: int) -> Partition:
        with self._lock:
            partition = self._partitions.get(partition_id)
        if partition is None:
            raise PartitionNotFound(partition_id)
        return partition

    def list_partitions(self) -> list[Partition]:
        with self._lock:
            return list(self._partitions.values())

    def delete_partition(self, partition_id: int) -> None:
        with self._lock:
            if partition_id not in self._partitions:
                raise PartitionNotFound(partition_id)
            del self._partitions[partition_id]
            self._documents = {
                k: d for k, d in self._documents.items() if d.partition_id != partition_id
            }
            self._chunks = {
                k: c for k, c in self._chunks.items() if c.partition_id != partition_id
            }

    def create_document(
            self,
            partition_id: int,
            name: str,
            source_path: str | None = None,
        ) -> DocumentRecord:
        with self._lock:
            if partition_id not in self._partitions:
                raise PartitionNotFound(partition_id)
            document = DocumentRecord(
                id=next(self._ids),
                partition_id=partition_id,
                name=name,
                source_path=source_path,
            )
            self._documents[document.id] = document
        return document

    def get_document(self, document_id: int) -> DocumentRecord:
        with self._lock:
            document = self._documents.get(document_id)
        if document is None:
            raise DocumentNotFound(document_id)
        return document

    def list_documents(self, partition_id: int) -> list[DocumentRecord]:
        with self._lock:
            docs = [d for d in self._documents.values() if d.partition_id == partition_id]
        return list(reversed(docs))

    def delete_document(self, document_id: int) -> None:
        with self._lock:
            if document_id not in self._documents:
                raise DocumentNotFound(document_id)
            del self._documents[document_id]
            self._chunks = {
                k: c for k, c in self._chunks.items() if c.document_id != document_id
            }

    def insert_chunk(
            self,
            document_id: int,
            partition_id: int,
            content: str,
            embedding: np.ndarray,
            ordinal: int,
        ) -> int:
        vector = _frozen_vector(embedding)
        with self._lock:
            document = self._documents.get(document_id)
            if document is None:
                raise StorageError(f"Cannot insert chunk: document {document_id} does not exist")
            if document.partition_id != partition_id:
                raise StorageError(
                    f"Cannot insert chunk: document {document_id} belongs to partition "
                    f"{document.partition_id}, not {partition_id}"
                )
            chunk = IndexedChunk(
                id=next(self._ids),
                partition_id=partition_id,
                document_id=document_id,
                content=content,
                embedding=vector,
                ordinal=int(ordinal),
            )
            self._chunks[chunk.id] = chunk
        return chunk.id

    def list_chunks(self, partition_id: int) -> list[IndexedChunk]:
        with self._lock:
            return [c for c in self._chunks.values() if c.partition_id == partition_id]

    def get_display_names(self, document_ids: Iterable[int]) -> dict[int, str]:
        wanted = set(document_ids)
        with self._lock:
            return {i: self._documents[i].name for i in wanted if i in self._documents}


class _Base(DeclarativeBase):
    pass


class PartitionRow(_Base):
    __tablename__ = "partitions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)


class DocumentRow(_Base):
    __tablename__ = "documents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    partition_id: Mapped[int] = mapped_column(
        ForeignKey("partitions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    source_path: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)


class ChunkRow(_Base):
    __tablename__ = "chunks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    document_id: Mapped[int] = mapped_column(
        ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    partition_id: Mapped[int] = mapped_column(
        ForeignKey("partitions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    embedding: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    ordinal: Mapped[int] = mapped_column(Integer, nullable=False)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@contextmanager
def _storage_errors(action: str):
    """Re-raise SQLAlchemy failures raised while performing ``action`` as StorageError."""
    try:
        yield
    except SQLAlchemyError as exc:
        raise StorageError(f"Failed to {action}: {exc}") from exc


class SQLCorpusStore(BaseCorpusStore):
    """Relational corpus store backed by SQLAlchemy.

    Parameters
    ----------
    url : str, optional
        SQLAlchemy database URL. Defaults to ``"sqlite:///corpus.db"``.
        ``"sqlite://"`` gives a private in-memory database shared by all
        sessions of this store.
    echo : bool, optional
        Log emitted SQL. Defaults to ``False``.

    Notes
    -----
    Tables are created on construction. On SQLite, foreign-key enforcement
    is switched on for every connection so that ``ON DELETE CASCADE`` applies.
    """

    def __init__(self, url: str = DEFAULT_SQL_URL, *, echo: bool = False):
        self.url = url
        engine_kwargs: dict[str, Any] = {"echo": echo}
        is_sqlite = url.startswith("sqlite")
        if is_sqlite:
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if url in {"sqlite://", "sqlite:///:memory:"}:
                engine_kwargs["poolclass"] = StaticPool

        self.engine = create_engine(url, **engine_kwargs)
        if is_sqlite:
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)

        _Base.metadata.create_all(self.engine)
        self._sessions = sessionmaker(bind=self.engine, expire_on_commit=False)

    @classmethod
    def from_config_dict(cls, config: Mapping[str, Any]) -> "SQLCorpusStore":
        return cls(
            url=str(config.get("url", DEFAULT_SQL_URL)),
            echo=bool(config.get("echo", False)),
        )

    def dispose(self) -> None:
        self.engine.dispose()

    @staticmethod
    def _partition(row: PartitionRow) -> Partition:
        return Partition(id=row.id, name=row.name, created_at=row.created_at)

    @staticmethod
    def _document(row: DocumentRow) -> DocumentRecord:
        return DocumentRecord(
            id=row.id,
            partition_id=row.partition_id,
            name=row.name,
            source_path=row.source_path,
            created_at=row.created_at,
        )

    def create_partition(self, name: str) -> Partition:
        with _storage_errors("create partition"):
            with self._sessions.begin() as session:
                row = PartitionRow(name=name)
                session.add(row)
                session.flush()
                return self._partition(row)

    def get_partition(self, partition_id: int) -> Partition:
        with _storage_errors(f"load partition {partition_id}"):
            with self._sessions() as session:
                row = session.get(PartitionRow, partition_id)
                if row is None:
                    raise PartitionNotFound(partition_id)
                return self._partition(row)

    def list_partitions(self) -> list[Partition]:
        with _storage_errors("list partitions"):
            with self._sessions() as session:
                rows = session.scalars(select(PartitionRow).order_by(PartitionRow.id)).all()
                return [self._partition(r) for r in rows]

    def delete_partition(self, partition_id: int) -> None:
        with _storage_errors(f"delete partition {partition_id}"):
            with self._sessions.begin() as session:
                result = session.execute(delete(PartitionRow).where(PartitionRow.id == partition_id))
                if result.rowcount == 0:
                    raise PartitionNotFound(partition_id)

    def create_document(
            self,
            partition_id: int,
            name: str,
            source_path: str | None = None,
        ) -> DocumentRecord:
        with _storage_errors(f"create document in partition {partition_id}"):
            with self._sessions.begin() as session:
                if session.get(PartitionRow, partition_id) is None:
                    raise PartitionNotFound(partition_id)
                row = DocumentRow(partition_id=partition_id, name=name, source_path=source_path)
                session.add(row)
                session.flush()
                return self._document(row)

    def get_document(self, document_id: int) -> DocumentRecord:
        with _storage_errors(f"load document {document_id}"):
            with self._sessions() as session:
                row = session.get(DocumentRow, document_id)
                if row is None:
                    raise DocumentNotFound(document_id)
                return self._document(row)

    def list_documents(self, partition_id: int) -> list[DocumentRecord]:
        with _storage_errors(f"list documents of partition {partition_id}"):
            with self._sessions() as session:
                stmt = (
                    select(DocumentRow)
                    .where(DocumentRow.partition_id == partition_id)
                    .order_by(DocumentRow.created_at.desc(), DocumentRow.id.desc())
                )
                return [self._document(r) for r in session.scalars(stmt).all()]

    def delete_document(self, document_id: int) -> None:
        with _storage_errors(f"delete document {document_id}"):
            with self._sessions.begin() as session:
                result = session.execute(delete(DocumentRow).where(DocumentRow.id == document_id))
                if result.rowcount == 0:
                    raise DocumentNotFound(document_id)

    def insert_chunk(
            self,
            document_id: int,
            partition_id: int,
            content: str,
            embedding: np.ndarray,
            ordinal: int,
        ) -> int:
        with _storage_errors(f"insert chunk for document {document_id}"):
            with self._sessions.begin() as session:
                document = session.get(DocumentRow, document_id)
                if document is None:
                    raise StorageError(f"Cannot insert chunk: document {document_id} does not exist")
                if document.partition_id != partition_id:
                    raise StorageError(
                        f"Cannot insert chunk: document {document_id} belongs to partition "
                        f"{document.partition_id}, not {partition_id}"
                    )
                row = ChunkRow(
                    document_id=document_id,
                    partition_id=partition_id,
                    content=content,
                    embedding=encode_embedding(embedding),
                    ordinal=int(ordinal),
                )
                session.add(row)
                session.flush()
                return row.id

    def list_chunks(self, partition_id: int) -> list[IndexedChunk]:
        with _storage_errors(f"list chunks of partition {partition_id}"):
            with self._sessions() as session:
                stmt = (
                    select(ChunkRow)
                    .where(ChunkRow.partition_id == partition_id)
                    .order_by(ChunkRow.id)
                )
                return [
                    IndexedChunk(
                        id=row.id,
                        partition_id=row.partition_id,
                        document_id=row.document_id,
                        content=row.content,
                        embedding=decode_embedding(row.embedding),
                        ordinal=row.ordinal,
                    )
                    for row in session.scalars(stmt).all()
                ]

    def get_display_names(self, document_ids: Iterable[int]) -> dict[int, str]:
        ids = list(set(document_ids))
        if not ids:
            return {}
        with _storage_errors("look up document names"):
            with self._sessions() as session:
                stmt = select(DocumentRow.id, DocumentRow.name).where(DocumentRow.id.in_(ids))
                return {row.id: row.name for row in session.execute(stmt)}


# ----------------- Factory helpers -----------------

def _get_store_kind(cfg: Mapping[str, Any]) -> str | None:
    for key in ("kind", "type", "provider", "backend", "impl"):
        val = cfg.get(key)
        if val is not None:
            return val
    return None


def _normalize_store_kind(kind) -> str:
    """Normalise a store kind to ``"sql"`` or ``"memory"`` (default ``"sql"``)."""
    if not kind:
        return "sql"
    k = str(kind).lower().replace("-", "_")
    if k in {"sql", "sqlite", "sqlalchemy", "sql_corpus_store"}:
        return "sql"
    if k in {"memory", "in_memory", "inmemory"}:
        return "memory"
    return k


def create_corpus_store(config: Mapping[str, Any] | None = None) -> BaseCorpusStore:
    """Create a corpus store from the ``storage`` configuration section.

    Parameters
    ----------
    config : Mapping[str, Any] or None, optional
        Configuration mapping. The backend is selected using one of the
        discriminator keys ``kind``, ``type``, ``provider``, ``backend`` or
        ``impl``; the default is the SQL store.

    Returns
    -------
    BaseCorpusStore
        Initialised store.

    Raises
    ------
    ValueError
        If the requested backend kind is not supported.
    """
    cfg = dict(config or {})
    kind = _normalize_store_kind(_get_store_kind(cfg))
    if kind == "sql":
        return SQLCorpusStore.from_config_dict(cfg)
    if kind == "memory":
        return InMemoryCorpusStore()
    raise ValueError(f"Unknown corpus store kind: {kind!r}")


__all__ = [
    "BaseCorpusStore",
    "InMemoryCorpusStore",
    "SQLCorpusStore",
    "encode_embedding",
    "decode_embedding",
    "create_corpus_store",
]
