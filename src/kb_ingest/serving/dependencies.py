"""Process-wide collaborators for the HTTP layer.

Each provider is built once per process so that every request shares the
same store connection pool and the same :class:`DocumentLocks`; an upload
still being indexed cannot be reindexed concurrently.  Tests replace the
providers through ``app.dependency_overrides``.
"""

from __future__ import annotations

from functools import lru_cache

from kb_ingest.config import settings
from kb_ingest.ingestion.embedder import Embedder, get_embedder
from kb_ingest.ingestion.locks import DocumentLocks
from kb_ingest.ingestion.pipeline import IngestionPipeline
from kb_ingest.ingestion.reindexer import Reindexer
from kb_ingest.store.base import DocumentStore


@lru_cache(maxsize=1)
def get_store() -> DocumentStore:
    from kb_ingest.store.sql import SQLDocumentStore

    return SQLDocumentStore.from_url(settings.database_url, echo=settings.database_echo)


@lru_cache(maxsize=1)
def get_embedding_client() -> Embedder:
    return get_embedder(settings)


@lru_cache(maxsize=1)
def get_document_locks() -> DocumentLocks:
    return DocumentLocks()


@lru_cache(maxsize=1)
def get_pipeline() -> IngestionPipeline:
    return IngestionPipeline(
        get_store(), get_embedding_client(), locks=get_document_locks(), config=settings
    )


@lru_cache(maxsize=1)
def get_reindexer() -> Reindexer:
    return Reindexer(
        get_store(), get_embedding_client(), locks=get_document_locks(), config=settings
    )
