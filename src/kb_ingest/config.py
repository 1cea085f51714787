"""Shared configuration loaded from environment / .env file."""

from __future__ import annotations

from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, populated from env vars or .env file."""

    # Persistence
    database_url: str = Field(
        default="sqlite+aiosqlite:///./kb_ingest.db",
        description="Async SQLAlchemy URL, e.g. 'postgresql+asyncpg://user:pw@host/db'",
    )
    database_echo: bool = False

    # Embedding
    embedding_provider: Literal["huggingface", "openai"] = "huggingface"
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    openai_api_key: str = Field(default="", description="API key for the OpenAI embedding provider")
    embedding_base_url: str = Field(
        default="",
        description=(
            "Base URL of an OpenAI-compatible embedding endpoint. "
            "Leave empty to use OpenAI cloud."
        ),
    )
    embedding_timeout_seconds: float = Field(default=30.0, gt=0)
    embedding_batch_size: int = Field(default=64, ge=1)
    max_embedding_input_length: int = Field(
        default=8000,
        ge=1,
        description="Characters sent to the embedding backend per input, and the document-level prefix length",
    )

    # Chunking
    chunk_size: int = Field(default=1000, ge=1, description="Target characters per chunk")
    chunk_overlap: int = Field(default=0, ge=0)

    # Pipeline
    max_concurrent_files: int = Field(default=4, ge=1)

    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @model_validator(mode="after")
    def check_chunk_overlap(self) -> Settings:
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"chunk_overlap ({self.chunk_overlap}) must be < chunk_size ({self.chunk_size})"
            )
        return self


# Singleton — import `settings` wherever needed.
settings = Settings()
