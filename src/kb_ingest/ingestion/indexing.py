"""Embed-and-persist step shared by ingestion and reindexing.

Given a document row in ``processing`` state and its freshly computed
chunks, :class:`ChunkIndexer` requests the chunk and document embeddings,
writes the chunk rows and flips the document to its terminal status:

* no chunks → ``indexed`` with no embedding;
* embeddings succeed → chunks stored with ``embedding[i]`` at
  ``chunk_index == i``, document embedding set, ``indexed``;
* any embedding failure → chunks stored without embeddings, ``error``.

Store errors are not handled here; they propagate to the caller.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from kb_ingest.exceptions import EmbeddingServiceError
from kb_ingest.ingestion.embedder import Embedder, Vector
from kb_ingest.models import (
    ChunkCreate,
    Document,
    DocumentStatus,
    DocumentUpdate,
    estimate_tokens,
)
from kb_ingest.store.base import DocumentStore

logger = logging.getLogger(__name__)


class ChunkIndexer:
    """Embeds a document's chunks and persists the outcome.

    Parameters
    ----------
    store:
        Destination for chunk rows and the document status update.
    embedder:
        Embedding client; failures trigger the no-embedding fallback.
    max_embedding_input_length:
        Length of the content prefix used for the document-level embedding.
    """

    def __init__(
        self,
        store: DocumentStore,
        embedder: Embedder,
        *,
        max_embedding_input_length: int = 8000,
    ) -> None:
        self._store = store
        self._embedder = embedder
        self.max_embedding_input_length = max_embedding_input_length

    async def index(self, document: Document, chunks: Sequence[str]) -> Document:
        """Persist *chunks* for *document* and return its terminal snapshot."""
        if not chunks:
            logger.info("Document %s has no content; indexed without embeddings", document.id)
            return await self._store.update_document(
                document.id,
                DocumentUpdate(status=DocumentStatus.INDEXED, chunk_count=0, embedding=None),
            )

        chunk_vectors, document_vector = await self._embed(document, chunks)
        status = DocumentStatus.INDEXED if document_vector is not None else DocumentStatus.ERROR

        await self._store.create_chunks(
            [
                ChunkCreate(
                    document_id=document.id,
                    chunk_index=position,
                    chunk_text=text,
                    token_count=estimate_tokens(text),
                    embedding=vector,
                )
                for position, (text, vector) in enumerate(zip(chunks, chunk_vectors, strict=True))
            ]
        )
        updated = await self._store.update_document(
            document.id,
            DocumentUpdate(status=status, chunk_count=len(chunks), embedding=document_vector),
        )
        logger.info(
            "Document %s → %s (%d chunks)", document.id, updated.status.value, updated.chunk_count
        )
        return updated

    async def _embed(
        self, document: Document, chunks: Sequence[str]
    ) -> tuple[list[Vector | None], Vector | None]:
        """Return ``(chunk_vectors, document_vector)``, all ``None`` on failure."""
        try:
            chunk_vectors: list[Vector | None] = list(await self._embedder.embed_batch(chunks))
            document_vector = await self._embedder.embed_one(
                document.content[: self.max_embedding_input_length]
            )
        except EmbeddingServiceError as exc:
            logger.warning(
                "Embedding failed for document %s; storing %d chunks without vectors: %s",
                document.id, len(chunks), exc,
            )
            return [None] * len(chunks), None
        return chunk_vectors, document_vector


async def mark_failed(store: DocumentStore, document_id: str) -> None:
    """Best-effort flip of a document to ``error`` after a store failure.

    Keeps the document from being stranded in ``processing`` and resyncs
    ``chunk_count`` with the rows that actually exist.  A failure here is
    only logged; the caller re-raises the original error.
    """
    try:
        stored = await store.list_chunks(document_id)
        await store.update_document(
            document_id,
            DocumentUpdate(status=DocumentStatus.ERROR, chunk_count=len(stored)),
        )
    except Exception:
        logger.exception("Could not mark document %s as error", document_id)
