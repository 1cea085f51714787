"""Batch ingestion: extract → create → chunk → embed → persist, per file.

Usage::

    from kb_ingest.ingestion.pipeline import IngestionPipeline

    pipeline = IngestionPipeline(store=store, embedder=embedder)
    result = await pipeline.ingest(files, folder_id="F1")
    print(result.failed_count, [d.status for d in result.succeeded])

Files are independent: an unparseable file is reported in
``BatchResult.failed`` and never stops the others, and an embedding failure
only turns that file's document into ``status == "error"``.  Store errors
are not recoverable and propagate once in-flight files have finished.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Sequence

from kb_ingest.config import Settings, settings as default_settings
from kb_ingest.exceptions import ExtractionError
from kb_ingest.ingestion.chunker import chunk_text
from kb_ingest.ingestion.embedder import Embedder
from kb_ingest.ingestion.extractor import DefaultExtractor, Extractor
from kb_ingest.ingestion.indexing import ChunkIndexer, mark_failed
from kb_ingest.ingestion.locks import DocumentLocks
from kb_ingest.models import (
    BatchResult,
    Document,
    DocumentCreate,
    DocumentStatus,
    FileFailure,
    RawFile,
)
from kb_ingest.store.base import DocumentStore

logger = logging.getLogger(__name__)

FileOutcome = Document | FileFailure


class IngestionPipeline:
    """Turns uploaded files into stored, embedded documents.

    Parameters
    ----------
    store:
        Persistence backend for documents and chunks.
    embedder:
        Embedding client.
    extractor:
        Text extractor; defaults to :class:`DefaultExtractor`.
    locks:
        Per-document write registry, shared with the :class:`Reindexer`.
        A document is held from creation until its terminal status.
    config:
        Chunking, embedding and concurrency settings.
    """

    def __init__(
        self,
        store: DocumentStore,
        embedder: Embedder,
        *,
        extractor: Extractor | None = None,
        locks: DocumentLocks | None = None,
        config: Settings | None = None,
    ) -> None:
        config = config or default_settings
        self._store = store
        self._extractor = extractor or DefaultExtractor()
        self._locks = locks or DocumentLocks()
        self._indexer = ChunkIndexer(
            store, embedder, max_embedding_input_length=config.max_embedding_input_length
        )
        self.chunk_size = config.chunk_size
        self.chunk_overlap = config.chunk_overlap
        self.max_concurrent_files = config.max_concurrent_files

    # -- public API -----------------------------------------------------------

    async def ingest(self, files: Sequence[RawFile], folder_id: str) -> BatchResult:
        """Ingest *files* into *folder_id* and return the per-file outcome.

        Up to ``max_concurrent_files`` files are processed at once.  If this
        call is cancelled, no new file is started, the files already in
        progress are finished, and the cancellation is re-raised.
        """
        outcomes: list[FileOutcome | None] = [None] * len(files)
        pending: deque[int] = deque(range(len(files)))
        stop = asyncio.Event()

        async def worker() -> None:
            while pending and not stop.is_set():
                position = pending.popleft()
                outcomes[position] = await self._ingest_file(files[position], folder_id)

        workers = [
            asyncio.create_task(worker())
            for _ in range(min(self.max_concurrent_files, len(files)))
        ]
        try:
            if workers:
                await asyncio.wait(workers, return_when=asyncio.FIRST_EXCEPTION)
        finally:
            # No new file starts; files already in progress run to completion.
            stop.set()
            if workers:
                await asyncio.wait(workers)
            errors = [t.exception() for t in workers if t.done() and not t.cancelled()]
        for error in errors:
            if error is not None:
                raise error

        result = BatchResult(
            succeeded=[o for o in outcomes if isinstance(o, Document)],
            failed=[o for o in outcomes if isinstance(o, FileFailure)],
        )
        logger.info(
            "Ingested batch into folder %s: %d documents (%d with embedding errors), %d files failed",
            folder_id,
            len(result.succeeded),
            sum(1 for d in result.succeeded if d.status is DocumentStatus.ERROR),
            result.failed_count,
        )
        return result

    # -- internals ------------------------------------------------------------

    async def _ingest_file(self, raw: RawFile, folder_id: str) -> FileOutcome:
        try:
            text = await self._extractor.extract(raw.data, raw.declared_type)
        except ExtractionError as exc:
            logger.warning("Skipping %s: %s", raw.name, exc)
            return FileFailure(name=raw.name, reason=str(exc))

        chunks = chunk_text(text, self.chunk_size, self.chunk_overlap)
        document = await self._store.create_document(
            DocumentCreate(
                title=raw.title,
                content=text,
                folder_id=folder_id,
                status=DocumentStatus.PROCESSING,
                chunk_count=len(chunks),
                size_bytes=raw.size_bytes,
            )
        )
        logger.debug("Created document %s for %s (%d chunks)", document.id, raw.name, len(chunks))

        with self._locks.hold(document.id):
            try:
                return await self._indexer.index(document, chunks)
            except BaseException:
                await mark_failed(self._store, document.id)
                raise

