"""Async SQLAlchemy implementation of the document store.

Works with any async driver; the default URL uses ``sqlite+aiosqlite``.
Embeddings are stored as JSON arrays so the schema is portable across
databases.  Chunk rows reference their document with ``ON DELETE CASCADE``
and ``(document_id, chunk_index)`` is unique.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import (
    JSON,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    delete,
    event,
    func,
    select,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from kb_ingest.exceptions import DocumentStoreError, NotFoundError
from kb_ingest.models import (
    ChunkCreate,
    Document,
    DocumentChunk,
    DocumentCreate,
    DocumentStatus,
    DocumentUpdate,
    KnowledgeStats,
)
from kb_ingest.store.base import DocumentStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid4().hex


# ── ORM ──────────────────────────────────────────────────────────────


class Base(DeclarativeBase):
    """Declarative base for the knowledge-base tables."""


class DocumentRecord(Base):
    __tablename__ = "kb_documents"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    title: Mapped[str] = mapped_column(String(512), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[DocumentStatus] = mapped_column(
        SAEnum(
            DocumentStatus,
            name="document_status",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        index=True,
    )
    chunk_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    size_bytes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    folder_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    embedding: Mapped[list[float] | None] = mapped_column(JSON(none_as_null=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class ChunkRecord(Base):
    __tablename__ = "kb_document_chunks"
    __table_args__ = (UniqueConstraint("document_id", "chunk_index", name="uq_chunk_position"),)

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    document_id: Mapped[str] = mapped_column(
        String(32),
        ForeignKey("kb_documents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    chunk_index: Mapped[int] = mapped_column(Integer, nullable=False)
    chunk_text: Mapped[str] = mapped_column(Text, nullable=False)
    token_count: Mapped[int] = mapped_column(Integer, nullable=False)
    embedding: Mapped[list[float] | None] = mapped_column(JSON(none_as_null=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive timestamps even for timezone-aware columns.
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def _to_document(record: DocumentRecord) -> Document:
    document = Document.model_validate(record, from_attributes=True)
    document.created_at = _as_utc(document.created_at)
    document.last_updated = _as_utc(document.last_updated)
    return document


def _to_chunk(record: ChunkRecord) -> DocumentChunk:
    chunk = DocumentChunk.model_validate(record, from_attributes=True)
    chunk.created_at = _as_utc(chunk.created_at)
    return chunk


def enable_sqlite_foreign_keys(engine: AsyncEngine) -> None:
    """Turn on SQLite foreign keys, without which ``ON DELETE CASCADE`` is ignored."""

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, _record) -> None:  # noqa: ANN001
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# ── Store ────────────────────────────────────────────────────────────


class SQLDocumentStore(DocumentStore):
    """Document store backed by an async SQLAlchemy engine.

    Parameters
    ----------
    engine:
        An :class:`~sqlalchemy.ext.asyncio.AsyncEngine`.  Use
        :meth:`from_url` to build one from a database URL.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine
        self._session_factory = async_sessionmaker(
            bind=engine,
            class_=AsyncSession,
            autoflush=False,
            expire_on_commit=False,
        )

    @classmethod
    def from_url(cls, url: str, *, echo: bool = False) -> SQLDocumentStore:
        engine = create_async_engine(url, echo=echo, pool_pre_ping=True)
        if engine.dialect.name == "sqlite":
            enable_sqlite_foreign_keys(engine)
        return cls(engine)

    async def initialize(self) -> None:
        """Create the tables if they do not exist yet."""
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        await self._engine.dispose()

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session, session.begin():
                yield session
        except SQLAlchemyError as exc:
            logger.exception("Document store operation failed")
            raise DocumentStoreError(f"Document store operation failed: {exc}") from exc

    # -- documents ------------------------------------------------------------

    async def create_document(self, fields: DocumentCreate) -> Document:
        async with self._transaction() as session:
            record = DocumentRecord(id=_new_id(), **fields.model_dump())
            session.add(record)
            await session.flush()
            return _to_document(record)

    async def update_document(self, document_id: str, changes: DocumentUpdate) -> Document:
        async with self._transaction() as session:
            record = await self._require(session, document_id)
            for key, value in changes.changes().items():
                setattr(record, key, value)
            record.last_updated = _utcnow()
            await session.flush()
            return _to_document(record)

    async def get_document(self, document_id: str) -> Document:
        async with self._transaction() as session:
            return _to_document(await self._require(session, document_id))

    async def delete_document(self, document_id: str) -> None:
        async with self._transaction() as session:
            record = await self._require(session, document_id)
            await session.execute(delete(ChunkRecord).where(ChunkRecord.document_id == document_id))
            await session.delete(record)

    async def list_documents(self, folder_id: str | None = None) -> list[Document]:
        stmt = select(DocumentRecord).order_by(DocumentRecord.created_at.desc())
        if folder_id is not None:
            stmt = stmt.where(DocumentRecord.folder_id == folder_id)
        async with self._transaction() as session:
            result = await session.execute(stmt)
            return [_to_document(r) for r in result.scalars().all()]

    # -- chunks ---------------------------------------------------------------

    async def create_chunks(self, chunks: Sequence[ChunkCreate]) -> list[DocumentChunk]:
        if not chunks:
            return []
        async with self._transaction() as session:
            records = [ChunkRecord(id=_new_id(), **c.model_dump()) for c in chunks]
            session.add_all(records)
            await session.flush()
            return [_to_chunk(r) for r in records]

    async def delete_chunks_for_document(self, document_id: str) -> int:
        async with self._transaction() as session:
            result = await session.execute(
                delete(ChunkRecord).where(ChunkRecord.document_id == document_id)
            )
            return result.rowcount or 0

    async def list_chunks(self, document_id: str) -> list[DocumentChunk]:
        stmt = (
            select(ChunkRecord)
            .where(ChunkRecord.document_id == document_id)
            .order_by(ChunkRecord.chunk_index)
        )
        async with self._transaction() as session:
            result = await session.execute(stmt)
            return [_to_chunk(r) for r in result.scalars().all()]

    # -- stats ----------------------------------------------------------------

    async def get_stats(self) -> KnowledgeStats:
        stmt = select(
            DocumentRecord.status,
            func.count(DocumentRecord.id),
            func.coalesce(func.sum(DocumentRecord.chunk_count), 0),
        ).group_by(DocumentRecord.status)
        async with self._transaction() as session:
            rows = (await session.execute(stmt)).all()
            sizes = (await session.execute(select(DocumentRecord.size_bytes))).scalars().all()

        counts = {status: 0 for status in DocumentStatus}
        total_chunks = 0
        for status, n_docs, n_chunks in rows:
            counts[DocumentStatus(status)] = n_docs
            total_chunks += n_chunks
        # Per-document KB, rounded like Document.size_kb, then summed.
        total_kb = sum(round(size / 1024) for size in sizes)
        return KnowledgeStats(
            total_documents=sum(counts.values()),
            total_chunks=total_chunks,
            indexed_documents=counts[DocumentStatus.INDEXED],
            processing_documents=counts[DocumentStatus.PROCESSING],
            error_documents=counts[DocumentStatus.ERROR],
            storage_used=KnowledgeStats.format_storage(total_kb),
        )

    # -- internals ------------------------------------------------------------

    @staticmethod
    async def _require(session: AsyncSession, document_id: str) -> DocumentRecord:
        record = await session.get(DocumentRecord, document_id)
        if record is None:
            raise NotFoundError("Document", document_id)
        return record
