"""FastAPI application exposing knowledge-base ingestion as a REST API."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, File, Form, Request, Response, UploadFile, status
from fastapi.responses import JSONResponse

from kb_ingest.exceptions import ConflictError, DocumentStoreError, NotFoundError
from kb_ingest.ingestion.pipeline import IngestionPipeline
from kb_ingest.ingestion.reindexer import Reindexer
from kb_ingest.models import BatchResult, Document, DocumentChunk, KnowledgeStats, RawFile
from kb_ingest.serving.dependencies import get_pipeline, get_reindexer, get_store
from kb_ingest.store.base import DocumentStore

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    store: DocumentStore = app.dependency_overrides.get(get_store, get_store)()
    await store.initialize()
    yield
    await store.close()


app = FastAPI(
    title="Knowledge Base Ingestion API",
    version="0.1.0",
    description="Upload documents into the knowledge base and rebuild their embeddings.",
    lifespan=lifespan,
)


# ── Error mapping ─────────────────────────────────────────────────────
@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(ConflictError)
async def conflict_handler(request: Request, exc: ConflictError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


@app.exception_handler(DocumentStoreError)
async def store_error_handler(request: Request, exc: DocumentStoreError) -> JSONResponse:
    logger.error("Store unavailable while handling %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Document store unavailable"},
    )


# ── Routes ────────────────────────────────────────────────────────────
@app.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "ok"}


@app.post("/documents/batch", response_model=BatchResult)
async def upload_batch(
    files: list[UploadFile] = File(...),
    folder_id: str = Form(...),
    pipeline: IngestionPipeline = Depends(get_pipeline),
) -> BatchResult:
    """Ingest every uploaded file into *folder_id*; partial success is normal."""
    raw_files = []
    for upload in files:
        data = await upload.read()
        raw_files.append(
            RawFile(
                name=upload.filename or "upload",
                data=data,
                size=upload.size if upload.size is not None else len(data),
                content_type=upload.content_type,
            )
        )
    return await pipeline.ingest(raw_files, folder_id)


@app.post("/documents/{document_id}/reindex", response_model=Document)
async def reindex_document(
    document_id: str,
    reindexer: Reindexer = Depends(get_reindexer),
) -> Document:
    """Rebuild chunks and embeddings; 409 while a reindex is already running."""
    return await reindexer.reindex(document_id)


@app.get("/documents", response_model=list[Document])
async def list_documents(
    folder_id: str | None = None,
    store: DocumentStore = Depends(get_store),
) -> list[Document]:
    return await store.list_documents(folder_id)


@app.get("/documents/{document_id}", response_model=Document)
async def get_document(document_id: str, store: DocumentStore = Depends(get_store)) -> Document:
    return await store.get_document(document_id)


@app.get("/documents/{document_id}/chunks", response_model=list[DocumentChunk])
async def list_chunks(
    document_id: str,
    store: DocumentStore = Depends(get_store),
) -> list[DocumentChunk]:
    await store.get_document(document_id)
    return await store.list_chunks(document_id)


@app.delete("/documents/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_document(document_id: str, store: DocumentStore = Depends(get_store)) -> Response:
    await store.delete_document(document_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.get("/stats", response_model=KnowledgeStats)
async def stats(store: DocumentStore = Depends(get_store)) -> KnowledgeStats:
    return await store.get_stats()
