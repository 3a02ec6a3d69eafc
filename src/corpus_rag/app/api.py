# corpus_rag/app/api.py
from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from corpus_rag import __version__
from corpus_rag.app.container import RagContainer, build_container
from corpus_rag.common.errors import (
    CorpusRAGError,
    DocumentNotFound,
    InvalidInput,
    PartialIngestFailure,
    PartitionNotFound,
    ProviderFailure,
    UnsupportedFeature,
)
from corpus_rag.common.schemas import DocumentRecord, Match, Partition
from corpus_rag.common.validation import validate_name
from corpus_rag.config import GlobalConfig, configure_logging
from corpus_rag.config.global_config import CONFIG_ENV_VAR

logger = logging.getLogger("corpus_rag.api")

DEFAULT_CONFIG_PATH = "/app/config/config.yaml"


class PartitionCreate(BaseModel):
    name: str


class PartitionOut(BaseModel):
    id: int
    name: str
    created_at: datetime


class DocumentCreate(BaseModel):
    name: str
    content: str
    source_path: str | None = None
    strict: bool = False


class DocumentOut(BaseModel):
    id: int
    partition_id: int
    name: str
    source_path: str | None = None
    created_at: datetime


class IngestResponse(BaseModel):
    document_id: int
    chunks_created: int
    chunks_failed: int = 0


class SearchRequest(BaseModel):
    query: str
    top_k: int | None = None
    diverse: bool = False
    candidate_multiplier: int | None = None


class ContextRequest(BaseModel):
    query: str
    top_k: int | None = None
    diverse: bool = False
    template: str | None = None


class MatchOut(BaseModel):
    rank: int
    chunk_id: int
    document_id: int
    document_name: str
    content: str
    similarity: float


class SearchResponse(BaseModel):
    matches: list[MatchOut] = Field(default_factory=list)


class ContextResponse(BaseModel):
    prompt: str
    matches: list[MatchOut] = Field(default_factory=list)


def _partition_out(p: Partition) -> PartitionOut:
    return PartitionOut(id=p.id, name=p.name, created_at=p.created_at)


def _document_out(d: DocumentRecord) -> DocumentOut:
    return DocumentOut(
        id=d.id,
        partition_id=d.partition_id,
        name=d.name,
        source_path=d.source_path,
        created_at=d.created_at,
    )


def _serialize_matches(matches: list[Match]) -> list[MatchOut]:
    return [
        MatchOut(
            rank=idx,
            chunk_id=m.chunk_id,
            document_id=m.document_id,
            document_name=m.document_name,
            content=m.content,
            similarity=m.similarity,
        )
        for idx, m in enumerate(matches, start=1)
    ]


def _container(request: Request) -> RagContainer:
    return request.app.state.container


router = APIRouter()


@router.get("/health")
def health():
    return {"status": "ok"}


@router.post("/v1/partitions", response_model=PartitionOut, status_code=201)
def create_partition(req: PartitionCreate, request: Request):
    validate_name("name", req.name)
    return _partition_out(_container(request).store.create_partition(req.name))


@router.get("/v1/partitions", response_model=list[PartitionOut])
def list_partitions(request: Request):
    return [_partition_out(p) for p in _container(request).store.list_partitions()]


@router.delete("/v1/partitions/{partition_id}", status_code=204)
def delete_partition(partition_id: int, request: Request):
    _container(request).store.delete_partition(partition_id)


@router.get("/v1/partitions/{partition_id}/documents", response_model=list[DocumentOut])
def list_documents(partition_id: int, request: Request):
    store = _container(request).store
    store.get_partition(partition_id)
    return [_document_out(d) for d in store.list_documents(partition_id)]


@router.post(
    "/v1/partitions/{partition_id}/documents",
    response_model=IngestResponse,
    status_code=201,
)
def add_document(partition_id: int, req: DocumentCreate, request: Request):
    result = _container(request).pipeline.add_document(
        partition_id,
        req.name,
        req.content,
        source_path=req.source_path,
        strict=req.strict,
    )
    return IngestResponse(
        document_id=result.document_id,
        chunks_created=result.chunks_created,
        chunks_failed=result.chunks_failed,
    )


@router.delete("/v1/documents/{document_id}", status_code=204)
def delete_document(document_id: int, request: Request):
    _container(request).store.delete_document(document_id)


@router.post("/v1/partitions/{partition_id}/search", response_model=SearchResponse)
def search(partition_id: int, req: SearchRequest, request: Request):
    container = _container(request)
    container.store.get_partition(partition_id)

    if req.diverse:
        matches = container.pipeline.query_diverse(
            partition_id, req.query, req.top_k, req.candidate_multiplier
        )
    else:
        matches = container.pipeline.query(partition_id, req.query, req.top_k)
    return SearchResponse(matches=_serialize_matches(matches))


@router.post("/v1/partitions/{partition_id}/context", response_model=ContextResponse)
def context(partition_id: int, req: ContextRequest, request: Request):
    container = _container(request)
    container.store.get_partition(partition_id)

    grounding = container.pipeline.build_context(
        partition_id, req.query, top_k=req.top_k, diverse=req.diverse, template=req.template
    )
    return ContextResponse(prompt=grounding.prompt, matches=_serialize_matches(grounding.matches))


def _error_body(exc: Exception, **extra) -> dict:
    return {"error": type(exc).__name__, "detail": str(exc), **extra}


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(InvalidInput)
    async def _invalid_input(request: Request, exc: InvalidInput):
        return JSONResponse(status_code=400, content=_error_body(exc))

    @app.exception_handler(PartitionNotFound)
    @app.exception_handler(DocumentNotFound)
    async def _not_found(request: Request, exc: CorpusRAGError):
        return JSONResponse(status_code=404, content=_error_body(exc))

    @app.exception_handler(UnsupportedFeature)
    async def _unsupported(request: Request, exc: UnsupportedFeature):
        return JSONResponse(status_code=501, content=_error_body(exc))

    @app.exception_handler(ProviderFailure)
    async def _provider_failure(request: Request, exc: ProviderFailure):
        logger.error("Embedding provider failure on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=502, content=_error_body(exc))

    @app.exception_handler(PartialIngestFailure)
    async def _partial_ingest(request: Request, exc: PartialIngestFailure):
        return JSONResponse(
            status_code=500,
            content=_error_body(
                exc,
                document_id=exc.document_id,
                chunks_created=exc.created,
                chunks_failed=exc.failed,
            ),
        )

    @app.exception_handler(CorpusRAGError)
    async def _corpus_error(request: Request, exc: CorpusRAGError):
        logger.error("Error while handling %s", request.url.path, exc_info=exc)
        return JSONResponse(status_code=500, content=_error_body(exc))

    @app.exception_handler(Exception)
    async def _unexpected(request: Request, exc: Exception):
        # Log full traceback to container logs for debugging
        logger.error("Error while handling %s", request.url.path, exc_info=exc)
        return JSONResponse(status_code=500, content=_error_body(exc))


def create_app(container: RagContainer | None = None) -> FastAPI:
    """Create the HTTP application.

    Parameters
    ----------
    container : RagContainer or None, optional
        Pre-built container. When omitted, the configuration named by the
        ``CORPUS_RAG_CONFIG`` environment variable is loaded at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "container", None) is None:
            # Use env var so Docker can pass config location
            cfg_path = os.environ.get(CONFIG_ENV_VAR, DEFAULT_CONFIG_PATH)
            cfg = GlobalConfig.load(cfg_path)
            configure_logging(cfg.logging)
            app.state.container = build_container(cfg)
            logger.info("Loaded configuration from %s", cfg_path)
        yield

    app = FastAPI(title="corpus-rag API", version=__version__, lifespan=lifespan)
    app.state.container = container
    app.include_router(router)
    _register_error_handlers(app)
    return app


app = create_app()
