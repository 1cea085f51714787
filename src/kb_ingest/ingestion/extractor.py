"""Text extraction from uploaded file bytes.

Format-specific parsing sits behind :class:`Extractor` so the pipeline never
depends on a particular parser.  :class:`DefaultExtractor` covers the formats
the upload form accepts: plain text, Markdown, PDF and Word (.docx).  Legacy
binary .doc files are recognised but rejected.
"""

from __future__ import annotations

import asyncio
import io
import logging
from abc import ABC, abstractmethod
from zipfile import BadZipFile

import docx
from docx.opc.exceptions import PackageNotFoundError
from pypdf import PdfReader
from pypdf.errors import PyPdfError

from kb_ingest.exceptions import CorruptFileError, UnsupportedFormatError
from kb_ingest.models import declared_file_type

logger = logging.getLogger(__name__)

_MIME_TYPES: dict[str, str] = {
    "text/plain": "txt",
    "text/markdown": "md",
    "text/x-markdown": "md",
    "application/pdf": "pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "application/msword": "doc",
}

_EXTENSIONS: dict[str, str] = {
    "txt": "txt",
    "text": "txt",
    "md": "md",
    "markdown": "md",
    "pdf": "pdf",
    "docx": "docx",
    "doc": "doc",
}

# Kinds DefaultExtractor can turn into text; "doc" is recognised only to be
# rejected with a useful message.
_EXTRACTABLE = frozenset({"txt", "md", "pdf", "docx"})


def resolve_file_type(declared_type: str) -> str | None:
    """Map an extension (``"pdf"``, ``".md"``) or MIME type to a canonical kind."""
    key = declared_type.strip().lower()
    if key in _MIME_TYPES:
        return _MIME_TYPES[key]
    return _EXTENSIONS.get(key.lstrip("."))


def is_supported_file(name: str, content_type: str | None = None) -> bool:
    """Return ``True`` when :class:`DefaultExtractor` accepts the file type.

    The extension decides when *name* has one; *content_type* is only
    consulted for names without an extension, exactly as ingestion does.
    """
    return resolve_file_type(declared_file_type(name, content_type)) in _EXTRACTABLE


class Extractor(ABC):
    """Backend-agnostic text extractor."""

    @abstractmethod
    async def extract(self, data: bytes, declared_type: str) -> str:
        """Return the plain text contained in *data*.

        Raises
        ------
        UnsupportedFormatError
            *declared_type* is not handled by this extractor.
        CorruptFileError
            The bytes cannot be parsed as *declared_type*.
        """
        ...


class DefaultExtractor(Extractor):
    """Text and Markdown by UTF-8 decoding, PDF with ``pypdf``, DOCX with ``python-docx``."""

    async def extract(self, data: bytes, declared_type: str) -> str:
        kind = resolve_file_type(declared_type)
        if kind == "doc":
            raise UnsupportedFormatError(
                "Legacy Word .doc files are not supported; save the file as .docx or PDF"
            )
        if kind not in _EXTRACTABLE:
            raise UnsupportedFormatError(f"Unsupported file type: {declared_type or 'unknown'!r}")
        # Binary parsers are CPU-bound; keep them off the event loop.
        if kind == "pdf":
            text = await asyncio.to_thread(self._extract_pdf, data)
        elif kind == "docx":
            text = await asyncio.to_thread(self._extract_docx, data)
        else:
            text = self._decode_text(data)
        return text.strip()

    @staticmethod
    def _decode_text(data: bytes) -> str:
        try:
            text = data.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise CorruptFileError(f"File is not valid UTF-8 text: {exc}") from exc
        if "\x00" in text:
            raise CorruptFileError("File contains NUL bytes; it looks binary")
        return text

    @staticmethod
    def _extract_pdf(data: bytes) -> str:
        try:
            reader = PdfReader(io.BytesIO(data))
            if reader.is_encrypted:
                raise CorruptFileError("PDF is password protected")
            pages: list[str] = []
            for page_number, page in enumerate(reader.pages, 1):
                page_text = (page.extract_text() or "").strip()
                if page_text:
                    pages.append(page_text)
                else:
                    logger.debug("PDF page %d has no text layer", page_number)
        except PyPdfError as exc:
            raise CorruptFileError(f"Could not read PDF: {exc}") from exc
        except (ValueError, KeyError, TypeError) as exc:
            # Malformed object streams surface as generic errors from pypdf.
            raise CorruptFileError(f"Could not read PDF: {exc}") from exc
        return "\n\n".join(pages)

    @staticmethod
    def _extract_docx(data: bytes) -> str:
        try:
            document = docx.Document(io.BytesIO(data))
        except (BadZipFile, PackageNotFoundError, KeyError, ValueError) as exc:
            raise CorruptFileError(f"Could not read DOCX: {exc}") from exc
        return "\n".join(paragraph.text for paragraph in document.paragraphs)
