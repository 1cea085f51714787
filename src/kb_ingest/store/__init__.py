"""
Store — persistence of documents and their chunks.

Public surface
--------------
- :class:`DocumentStore` — abstract backend.
- :class:`InMemoryDocumentStore` — process-local backend.
- :class:`SQLDocumentStore` — async SQLAlchemy backend.
"""

from kb_ingest.store.base import DocumentStore
from kb_ingest.store.memory import InMemoryDocumentStore

__all__ = ["DocumentStore", "InMemoryDocumentStore", "SQLDocumentStore"]


def __getattr__(name: str):  # noqa: ANN001
    """Lazy-import SQLDocumentStore to avoid pulling in SQLAlchemy at import time."""
    if name == "SQLDocumentStore":
        from kb_ingest.store.sql import SQLDocumentStore

        return SQLDocumentStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
