"""Process-local implementation of the document store."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone
from uuid import uuid4

from kb_ingest.exceptions import DocumentStoreError, NotFoundError
from kb_ingest.models import (
    ChunkCreate,
    Document,
    DocumentChunk,
    DocumentCreate,
    DocumentUpdate,
)
from kb_ingest.store.base import DocumentStore


class InMemoryDocumentStore(DocumentStore):
    """Dict-backed store.

    Records are copied on the way in and out so callers can never mutate
    stored state by accident.
    """

    def __init__(self) -> None:
        self._documents: dict[str, Document] = {}
        self._chunks: dict[str, list[DocumentChunk]] = {}

    async def create_document(self, fields: DocumentCreate) -> Document:
        now = datetime.now(timezone.utc)
        document = Document(id=uuid4().hex, created_at=now, last_updated=now, **fields.model_dump())
        self._documents[document.id] = document
        self._chunks[document.id] = []
        return document.model_copy(deep=True)

    async def update_document(self, document_id: str, changes: DocumentUpdate) -> Document:
        current = self._require(document_id)
        updated = current.model_copy(
            update={**changes.changes(), "last_updated": datetime.now(timezone.utc)},
            deep=True,
        )
        self._documents[document_id] = updated
        return updated.model_copy(deep=True)

    async def get_document(self, document_id: str) -> Document:
        return self._require(document_id).model_copy(deep=True)

    async def delete_document(self, document_id: str) -> None:
        self._require(document_id)
        del self._documents[document_id]
        self._chunks.pop(document_id, None)

    async def create_chunks(self, chunks: Sequence[ChunkCreate]) -> list[DocumentChunk]:
        created: list[DocumentChunk] = []
        for fields in chunks:
            self._require(fields.document_id)
            existing = {c.chunk_index for c in self._chunks[fields.document_id]}
            existing.update(c.chunk_index for c in created if c.document_id == fields.document_id)
            if fields.chunk_index in existing:
                raise DocumentStoreError(
                    f"Duplicate chunk_index {fields.chunk_index} for document {fields.document_id!r}"
                )
            created.append(DocumentChunk(id=uuid4().hex, **fields.model_dump()))
        # Insert only after every row validated, so a failure writes nothing.
        for chunk in created:
            self._chunks[chunk.document_id].append(chunk)
        return [chunk.model_copy(deep=True) for chunk in created]

    async def delete_chunks_for_document(self, document_id: str) -> int:
        if document_id not in self._chunks:
            return 0
        removed, self._chunks[document_id] = self._chunks[document_id], []
        return len(removed)

    async def list_chunks(self, document_id: str) -> list[DocumentChunk]:
        chunks = sorted(self._chunks.get(document_id, []), key=lambda c: c.chunk_index)
        return [chunk.model_copy(deep=True) for chunk in chunks]

    async def list_documents(self, folder_id: str | None = None) -> list[Document]:
        documents = [
            doc for doc in reversed(self._documents.values())
            if folder_id is None or doc.folder_id == folder_id
        ]
        # Stable sort: timestamp ties keep newest-inserted first.
        documents.sort(key=lambda d: d.created_at, reverse=True)
        return [doc.model_copy(deep=True) for doc in documents]

    def _require(self, document_id: str) -> Document:
        try:
            return self._documents[document_id]
        except KeyError:
            raise NotFoundError("Document", document_id) from None
