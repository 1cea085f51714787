"""Exception hierarchy for the ingestion subsystem.

Recovery policy
---------------
* :class:`ExtractionError` subclasses are per-file and recovered by the
  pipeline (the file is reported in ``BatchResult.failed``).
* :class:`EmbeddingServiceError` is recovered by the chunks-without-embeddings
  fallback and only surfaces as ``Document.status == "error"``.
* :class:`NotFoundError`, :class:`ConflictError` and
  :class:`DocumentStoreError` propagate to the caller.
"""

from __future__ import annotations


class KnowledgeBaseError(Exception):
    """Base class for every error raised by :mod:`kb_ingest`."""


class ExtractionError(KnowledgeBaseError):
    """Text could not be extracted from an uploaded file."""


class UnsupportedFormatError(ExtractionError):
    """The declared file type has no extractor."""


class CorruptFileError(ExtractionError):
    """The file claims a supported type but its bytes cannot be parsed."""


class EmbeddingServiceError(KnowledgeBaseError):
    """The embedding backend failed, timed out, or returned a malformed response."""


class NotFoundError(KnowledgeBaseError):
    """A requested record does not exist."""

    def __init__(self, kind: str, identifier: str) -> None:
        super().__init__(f"{kind} {identifier!r} not found")
        self.kind = kind
        self.identifier = identifier


class ConflictError(KnowledgeBaseError):
    """The operation collides with one already in flight for the same record."""


class DocumentStoreError(KnowledgeBaseError):
    """The persistence layer is unavailable or rejected a write."""
