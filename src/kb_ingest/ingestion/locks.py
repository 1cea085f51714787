"""Per-document write registry shared by ingestion and reindexing.

A document may have at most one chunk-writing operation in progress.  The
pipeline holds a document from the moment its row is created until it
reaches a terminal status; the reindexer holds it for the whole rebuild.
Both must share the same :class:`DocumentLocks` for the exclusion to hold.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from kb_ingest.exceptions import ConflictError


class DocumentLocks:
    """Set of document ids with a write in progress, scoped to one process."""

    def __init__(self) -> None:
        self._held: set[str] = set()

    def is_held(self, document_id: str) -> bool:
        return document_id in self._held

    @contextmanager
    def hold(self, document_id: str) -> Iterator[None]:
        """Register *document_id* for the duration of the block.

        Raises :class:`~kb_ingest.exceptions.ConflictError` when another
        operation already holds it; nothing is queued.
        """
        if document_id in self._held:
            raise ConflictError(f"Document {document_id!r} is already being indexed")
        self._held.add(document_id)
        try:
            yield
        finally:
            self._held.discard(document_id)
