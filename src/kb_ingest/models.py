"""Domain models for documents, chunks and batch outcomes."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from enum import Enum
from pathlib import PurePath

from pydantic import BaseModel, Field, computed_field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def estimate_tokens(text: str) -> int:
    """Rough token count (≈4 characters per token)."""
    return math.ceil(len(text) / 4)


def declared_file_type(name: str, content_type: str | None = None) -> str:
    """The file extension when *name* has one, else the MIME type.

    The single rule both the upload pre-filter and the extractor use.
    """
    extension = PurePath(name).suffix.lstrip(".").lower()
    return extension or (content_type or "")


class DocumentStatus(str, Enum):
    """Processing state of a :class:`Document`.

    ``processing`` is transient; ``indexed`` and ``error`` are terminal until
    the next reindex.  ``error`` means only the embedding step failed — text
    and chunks are still stored.
    """

    PROCESSING = "processing"
    INDEXED = "indexed"
    ERROR = "error"


# ── Uploads ──────────────────────────────────────────────────────────


class RawFile(BaseModel):
    """One uploaded file as received from the caller.

    Attributes
    ----------
    name:
        Declared file name, including extension.
    data:
        Raw file bytes.
    size:
        Declared size in bytes; falls back to ``len(data)``.
    content_type:
        Optional MIME type reported by the uploader.
    """

    name: str
    data: bytes = Field(repr=False)
    size: int | None = None
    content_type: str | None = None

    @property
    def declared_type(self) -> str:
        """The extension when present, else the MIME type."""
        return declared_file_type(self.name, self.content_type)

    @property
    def title(self) -> str:
        """File name without its extension."""
        return PurePath(self.name).stem or self.name

    @property
    def size_bytes(self) -> int:
        return self.size if self.size is not None else len(self.data)


# ── Persisted records ────────────────────────────────────────────────


class Document(BaseModel):
    """A knowledge-base document and its document-level embedding."""

    id: str
    title: str
    content: str
    status: DocumentStatus
    chunk_count: int = 0
    size_bytes: int = 0
    folder_id: str
    embedding: list[float] | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    last_updated: datetime = Field(default_factory=_utcnow)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def size_kb(self) -> int:
        return round(self.size_bytes / 1024)


class DocumentChunk(BaseModel):
    """A contiguous slice of a document's text, the unit of embedding."""

    id: str
    document_id: str
    chunk_index: int
    chunk_text: str
    token_count: int
    embedding: list[float] | None = None
    created_at: datetime = Field(default_factory=_utcnow)


class DocumentCreate(BaseModel):
    """Fields supplied when a document row is first written."""

    title: str
    content: str
    folder_id: str
    status: DocumentStatus = DocumentStatus.PROCESSING
    chunk_count: int = 0
    size_bytes: int = 0
    embedding: list[float] | None = None


class DocumentUpdate(BaseModel):
    """Partial update; only fields that were explicitly set are applied."""

    title: str | None = None
    content: str | None = None
    status: DocumentStatus | None = None
    chunk_count: int | None = None
    embedding: list[float] | None = None

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)


class ChunkCreate(BaseModel):
    """Fields supplied for one chunk row."""

    document_id: str
    chunk_index: int = Field(ge=0)
    chunk_text: str
    token_count: int
    embedding: list[float] | None = None


# ── Outcomes ─────────────────────────────────────────────────────────


class FileFailure(BaseModel):
    """A file that could not be parsed and produced no document."""

    name: str
    reason: str


class BatchResult(BaseModel):
    """Per-file outcome of one :meth:`IngestionPipeline.ingest` call.

    ``succeeded`` holds every file that became a document, whether its
    embedding step ended ``indexed`` or ``error``.  ``failed`` holds files
    rejected at extraction time.
    """

    succeeded: list[Document] = Field(default_factory=list)
    failed: list[FileFailure] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def failed_count(self) -> int:
        return len(self.failed)


class KnowledgeStats(BaseModel):
    """Aggregate counters over the whole knowledge base."""

    total_documents: int = 0
    total_chunks: int = 0
    indexed_documents: int = 0
    processing_documents: int = 0
    error_documents: int = 0
    storage_used: str = "0 KB"

    @staticmethod
    def format_storage(total_kb: int) -> str:
        if total_kb > 1024:
            return f"{total_kb / 1024:.1f} MB"
        return f"{total_kb} KB"
