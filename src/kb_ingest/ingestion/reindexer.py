"""Reindexing — rebuild the chunks and embeddings of one stored document.

At most one write runs per document at a time.  A reindex request for a
document that is still being ingested or already being reindexed is
rejected with :class:`~kb_ingest.exceptions.ConflictError` rather than
queued, so chunk vectors can never be zipped onto a chunk set another run
has replaced.
"""

from __future__ import annotations

import logging

from kb_ingest.config import Settings, settings as default_settings
from kb_ingest.ingestion.chunker import chunk_text
from kb_ingest.ingestion.embedder import Embedder
from kb_ingest.ingestion.indexing import ChunkIndexer, mark_failed
from kb_ingest.ingestion.locks import DocumentLocks
from kb_ingest.models import Document, DocumentStatus, DocumentUpdate
from kb_ingest.store.base import DocumentStore

logger = logging.getLogger(__name__)


class Reindexer:
    """Re-chunks and re-embeds stored documents.

    Pass the same *locks* the :class:`IngestionPipeline` uses so that a
    document still being ingested cannot be reindexed concurrently.
    """

    def __init__(
        self,
        store: DocumentStore,
        embedder: Embedder,
        *,
        locks: DocumentLocks | None = None,
        config: Settings | None = None,
    ) -> None:
        config = config or default_settings
        self._store = store
        self._indexer = ChunkIndexer(
            store, embedder, max_embedding_input_length=config.max_embedding_input_length
        )
        self._locks = locks or DocumentLocks()
        self.chunk_size = config.chunk_size
        self.chunk_overlap = config.chunk_overlap

    def is_running(self, document_id: str) -> bool:
        return self._locks.is_held(document_id)

    async def reindex(self, document_id: str) -> Document:
        """Replace the chunks and embeddings of *document_id*.

        Raises
        ------
        NotFoundError
            No document has this id.
        ConflictError
            The document is being ingested or reindexed right now.
        """
        with self._locks.hold(document_id):
            return await self._reindex(document_id)

    async def _reindex(self, document_id: str) -> Document:
        document = await self._store.get_document(document_id)
        logger.info("Reindexing document %s (was %s)", document_id, document.status.value)

        document = await self._store.update_document(
            document_id, DocumentUpdate(status=DocumentStatus.PROCESSING)
        )
        try:
            chunks = chunk_text(document.content, self.chunk_size, self.chunk_overlap)
            removed = await self._store.delete_chunks_for_document(document_id)
            logger.debug("Removed %d stale chunks of document %s", removed, document_id)
            return await self._indexer.index(document, chunks)
        except BaseException:
            await mark_failed(self._store, document_id)
            raise
