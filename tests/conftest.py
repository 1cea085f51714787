"""Shared pytest configuration and fixtures."""

from __future__ import annotations

import asyncio

import pytest

from kb_ingest.config import Settings
from kb_ingest.exceptions import EmbeddingServiceError
from kb_ingest.ingestion.embedder import Embedder
from kb_ingest.store.memory import InMemoryDocumentStore


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests requiring external services")


# ── Fake embedders for deterministic testing ────────────────────────────


def vector_for(text: str) -> list[float]:
    """The vector :class:`FakeEmbedder` returns for *text*."""
    return [float(len(text)), float(sum(map(ord, text)) % 997), 1.0]


class FakeEmbedder(Embedder):
    """Returns :func:`vector_for` of each input and records every call."""

    def __init__(self, **kwargs) -> None:  # noqa: ANN003
        kwargs.setdefault("timeout", 5.0)
        super().__init__(**kwargs)
        self.batches: list[list[str]] = []
        self.queries: list[str] = []

    async def _embed_documents(self, texts: list[str]) -> list[list[float]]:
        self.batches.append(list(texts))
        return [vector_for(t) for t in texts]

    async def _embed_query(self, text: str) -> list[float]:
        self.queries.append(text)
        return vector_for(text)


class FailingEmbedder(Embedder):
    """Every call fails, as an unreachable embedding backend would."""

    def __init__(self, error: Exception | None = None) -> None:
        super().__init__(timeout=5.0)
        self.error = error or EmbeddingServiceError("embedding backend unavailable")
        self.calls = 0

    async def _embed_documents(self, texts: list[str]) -> list[list[float]]:
        self.calls += 1
        raise self.error

    async def _embed_query(self, text: str) -> list[float]:
        self.calls += 1
        raise self.error


class GatedEmbedder(FakeEmbedder):
    """Blocks inside the batch call until :attr:`gate` is set."""

    def __init__(self, **kwargs) -> None:  # noqa: ANN003
        super().__init__(**kwargs)
        self.entered = asyncio.Event()
        self.gate = asyncio.Event()

    async def _embed_documents(self, texts: list[str]) -> list[list[float]]:
        self.entered.set()
        await self.gate.wait()
        return await super()._embed_documents(texts)


# ── Fixtures ────────────────────────────────────────────────────────────


@pytest.fixture()
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        chunk_size=50,
        chunk_overlap=0,
        max_concurrent_files=2,
        max_embedding_input_length=8000,
        embedding_timeout_seconds=5.0,
    )


@pytest.fixture()
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture()
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture()
def failing_embedder() -> FailingEmbedder:
    return FailingEmbedder()
