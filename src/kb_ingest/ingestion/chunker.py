"""Text chunking.

Chunks are produced by LangChain's recursive character splitter, which tries
paragraph breaks first, then line breaks, then sentence ends, then words, and
only hard-cuts inside a word when nothing else fits in ``chunk_size``.
Separators stay attached to the end of the piece they close, so a sentence
keeps its full stop and the next chunk starts on a fresh word.

The function is pure: identical input always yields identical chunks, which
is what makes reindexing unchanged content idempotent.
"""

from __future__ import annotations

from langchain_text_splitters import RecursiveCharacterTextSplitter

DEFAULT_SEPARATORS: list[str] = ["\n\n", "\n", ". ", "? ", "! ", "; ", " ", ""]


def chunk_text(
    text: str,
    chunk_size: int = 1000,
    chunk_overlap: int = 0,
    separators: list[str] | None = None,
) -> list[str]:
    """Split *text* into ordered chunks of at most *chunk_size* characters.

    Parameters
    ----------
    text:
        Extracted document text; may be empty.
    chunk_size:
        Target (and maximum) number of characters per chunk.
    chunk_overlap:
        Number of characters repeated between consecutive chunks.
    separators:
        Split boundaries in priority order.

    Returns
    -------
    list[str]
        Non-empty chunks with boundary whitespace stripped.  Empty when
        *text* is empty or whitespace-only.
    """
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    if chunk_overlap >= chunk_size:
        raise ValueError(
            f"chunk_overlap ({chunk_overlap}) must be < chunk_size ({chunk_size})"
        )
    if not text or not text.strip():
        return []

    splitter = RecursiveCharacterTextSplitter(
        chunk_size=chunk_size,
        chunk_overlap=chunk_overlap,
        length_function=len,
        separators=separators or DEFAULT_SEPARATORS,
        keep_separator="end",
        strip_whitespace=True,
    )
    return [chunk for chunk in splitter.split_text(text) if chunk]
