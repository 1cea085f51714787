"""Embedding client wrapper.

:class:`Embedder` owns everything that must hold for *any* backend — an
explicit timeout per call, sub-batching, order preservation and response
validation — and maps every backend failure to
:class:`~kb_ingest.exceptions.EmbeddingServiceError`.  Backends only
implement :meth:`Embedder._embed_documents` and :meth:`Embedder._embed_query`.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Sequence
from typing import TYPE_CHECKING

from kb_ingest.config import Settings, settings as default_settings
from kb_ingest.exceptions import EmbeddingServiceError

if TYPE_CHECKING:
    from langchain_core.embeddings import Embeddings

logger = logging.getLogger(__name__)

Vector = list[float]


class Embedder(ABC):
    """Backend-agnostic embedding client.

    Parameters
    ----------
    timeout:
        Seconds allowed for each backend call.
    batch_size:
        Maximum number of texts sent per backend call.
    """

    def __init__(self, *, timeout: float = 30.0, batch_size: int = 64) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.timeout = timeout
        self.batch_size = batch_size

    # -- required overrides ---------------------------------------------------

    @abstractmethod
    async def _embed_documents(self, texts: list[str]) -> list[Vector]:
        """Embed one sub-batch; must return vectors in input order."""
        ...

    @abstractmethod
    async def _embed_query(self, text: str) -> Vector:
        """Embed a single text."""
        ...

    # -- public API -----------------------------------------------------------

    async def embed_batch(self, texts: Sequence[str]) -> list[Vector]:
        """Return one vector per text, ``result[i]`` belonging to ``texts[i]``.

        Raises
        ------
        EmbeddingServiceError
            On timeout, backend error or a malformed response.  No partial
            result is returned.
        """
        if not texts:
            return []

        vectors: list[Vector] = []
        t0 = time.monotonic()
        for start in range(0, len(texts), self.batch_size):
            batch = list(texts[start : start + self.batch_size])
            result = await self._call(self._embed_documents(batch), f"batch of {len(batch)}")
            if len(result) != len(batch):
                raise EmbeddingServiceError(
                    f"Embedding backend returned {len(result)} vectors for {len(batch)} inputs"
                )
            vectors.extend(result)
        vectors = self._validate(vectors)
        logger.debug(
            "Embedded %d texts (dim=%d) in %.2fs",
            len(vectors), len(vectors[0]), time.monotonic() - t0,
        )
        return vectors

    async def embed_one(self, text: str) -> Vector:
        """Return the vector for a single *text*."""
        vector = await self._call(self._embed_query(text), "single text")
        return self._validate([vector])[0]

    # -- internals ------------------------------------------------------------

    async def _call(self, call: Awaitable[object], what: str):  # noqa: ANN202
        try:
            return await asyncio.wait_for(call, timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            raise EmbeddingServiceError(
                f"Embedding {what} timed out after {self.timeout:g}s"
            ) from exc
        except EmbeddingServiceError:
            raise
        except Exception as exc:
            raise EmbeddingServiceError(f"Embedding {what} failed: {exc}") from exc

    @staticmethod
    def _validate(vectors: list) -> list[Vector]:
        dims = {len(v) if isinstance(v, Sequence) else -1 for v in vectors}
        if -1 in dims or 0 in dims:
            raise EmbeddingServiceError("Embedding backend returned an empty or non-list vector")
        if len(dims) > 1:
            raise EmbeddingServiceError(f"Embedding backend returned mixed dimensions: {sorted(dims)}")
        return [[float(x) for x in v] for v in vectors]


class LangChainEmbedder(Embedder):
    """Adapter for any LangChain :class:`~langchain_core.embeddings.Embeddings`.

    Inputs are flattened to a single line and truncated to
    *max_input_length* characters before they reach the backend; the
    stored chunk text is never modified.
    """

    def __init__(
        self,
        embeddings: Embeddings,
        *,
        timeout: float = 30.0,
        batch_size: int = 64,
        max_input_length: int = 8000,
    ) -> None:
        super().__init__(timeout=timeout, batch_size=batch_size)
        self._embeddings = embeddings
        self.max_input_length = max_input_length

    def _prepare(self, text: str) -> str:
        return text.replace("\n", " ").strip()[: self.max_input_length]

    async def _embed_documents(self, texts: list[str]) -> list[Vector]:
        return await self._embeddings.aembed_documents([self._prepare(t) for t in texts])

    async def _embed_query(self, text: str) -> Vector:
        return await self._embeddings.aembed_query(self._prepare(text))


def build_embeddings(config: Settings | None = None) -> Embeddings:
    """Return the configured LangChain embedding model.

    Provider packages are imported lazily so that only the selected one
    needs to be importable.
    """
    config = config or default_settings
    if config.embedding_provider == "openai":
        from langchain_openai import OpenAIEmbeddings

        kwargs: dict = {"model": config.embedding_model, "api_key": config.openai_api_key or "EMPTY"}
        if config.embedding_base_url:
            logger.info("Using OpenAI-compatible embedding endpoint: %s", config.embedding_base_url)
            kwargs["base_url"] = config.embedding_base_url
        return OpenAIEmbeddings(**kwargs)

    from langchain_huggingface import HuggingFaceEmbeddings

    return HuggingFaceEmbeddings(
        model_name=config.embedding_model,
        encode_kwargs={"normalize_embeddings": True},
    )


def get_embedder(config: Settings | None = None) -> LangChainEmbedder:
    """Return a :class:`LangChainEmbedder` built from *config*."""
    config = config or default_settings
    return LangChainEmbedder(
        build_embeddings(config),
        timeout=config.embedding_timeout_seconds,
        batch_size=config.embedding_batch_size,
        max_input_length=config.max_embedding_input_length,
    )
