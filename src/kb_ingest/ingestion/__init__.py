"""
Ingestion — extraction, chunking, embedding and persistence of uploaded files.

This package is the write path of the knowledge base: it turns raw uploads
into stored documents whose chunks carry vector embeddings, and re-runs that
work on demand for documents that are already stored.

Public surface
--------------
- :class:`IngestionPipeline` — batch ingestion with per-file isolation.
- :class:`Reindexer` — chunk and embedding replacement for one document.
- :func:`chunk_text` — deterministic text chunker.
"""

from kb_ingest.ingestion.chunker import chunk_text
from kb_ingest.ingestion.pipeline import IngestionPipeline
from kb_ingest.ingestion.reindexer import Reindexer

__all__ = ["IngestionPipeline", "Reindexer", "chunk_text"]
