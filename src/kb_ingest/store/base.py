"""Abstract base class for document/chunk persistence backends.

Adding a backend only requires subclassing :class:`DocumentStore` and
implementing the abstract methods.  The pipeline and reindexer are
backend-agnostic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from kb_ingest.models import (
    ChunkCreate,
    Document,
    DocumentChunk,
    DocumentCreate,
    DocumentUpdate,
    KnowledgeStats,
)


class DocumentStore(ABC):
    """Backend-agnostic store for :class:`Document` and :class:`DocumentChunk` rows.

    Every method may raise :class:`~kb_ingest.exceptions.DocumentStoreError`
    when the backend is unavailable.
    """

    # -- required overrides ---------------------------------------------------

    @abstractmethod
    async def create_document(self, fields: DocumentCreate) -> Document:
        """Insert a document and return it with its assigned ``id``."""
        ...

    @abstractmethod
    async def update_document(self, document_id: str, changes: DocumentUpdate) -> Document:
        """Apply the explicitly-set fields of *changes* and refresh ``last_updated``.

        Raises :class:`~kb_ingest.exceptions.NotFoundError` for unknown ids.
        """
        ...

    @abstractmethod
    async def get_document(self, document_id: str) -> Document:
        """Return the document or raise :class:`~kb_ingest.exceptions.NotFoundError`."""
        ...

    @abstractmethod
    async def delete_document(self, document_id: str) -> None:
        """Delete the document and, by cascade, all of its chunks."""
        ...

    @abstractmethod
    async def create_chunks(self, chunks: Sequence[ChunkCreate]) -> list[DocumentChunk]:
        """Insert all *chunks* together and return them in input order."""
        ...

    @abstractmethod
    async def delete_chunks_for_document(self, document_id: str) -> int:
        """Delete every chunk of *document_id*; return how many were removed."""
        ...

    @abstractmethod
    async def list_chunks(self, document_id: str) -> list[DocumentChunk]:
        """Return the chunks of *document_id* ordered by ``chunk_index``."""
        ...

    @abstractmethod
    async def list_documents(self, folder_id: str | None = None) -> list[Document]:
        """Return documents, newest first, optionally restricted to one folder."""
        ...

    # -- optional overrides ---------------------------------------------------

    async def get_stats(self) -> KnowledgeStats:
        """Aggregate counters; backends with a query engine should override."""
        documents = await self.list_documents()
        by_status = {status: 0 for status in ("indexed", "processing", "error")}
        for doc in documents:
            by_status[doc.status.value] += 1
        return KnowledgeStats(
            total_documents=len(documents),
            total_chunks=sum(doc.chunk_count for doc in documents),
            indexed_documents=by_status["indexed"],
            processing_documents=by_status["processing"],
            error_documents=by_status["error"],
            storage_used=KnowledgeStats.format_storage(sum(doc.size_kb for doc in documents)),
        )

    async def initialize(self) -> None:
        """Prepare the backend (e.g. create tables).  No-op by default."""

    async def close(self) -> None:
        """Release connections held by the backend.  No-op by default."""
