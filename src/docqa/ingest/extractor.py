"""Text extraction: raw document bytes to per-page text.

Page boundaries follow each format's own convention:
  .pdf (or %PDF- header)    → one entry per PDF page (pypdf)
  .txt .text .md .markdown  → pages separated by form feed (\\f)

Empty pages are kept as empty strings so page numbering stays stable.
"""

from __future__ import annotations

import io
from dataclasses import dataclass
from pathlib import PurePath

import pypdf
from pypdf.errors import PyPdfError

from docqa.errors import ExtractionError

_PDF_EXTS = {".pdf"}
_TEXT_EXTS = {".txt", ".text", ".md", ".markdown"}
_PDF_MAGIC = b"%PDF-"
_PAGE_SEPARATOR = "\f"

# Malformed PDFs surface as pypdf errors or as plain Python errors from its parser.
_PDF_ERRORS = (
    PyPdfError,
    ValueError,
    OSError,
    KeyError,
    IndexError,
    TypeError,
    AttributeError,
    RecursionError,
)


@dataclass(frozen=True)
class PageText:
    page_number: int  # 1-based
    text: str


class TextExtractor:
    """Convert uploaded bytes into an ordered list of :class:`PageText`."""

    def extract(self, data: bytes, filename: str = "") -> list[PageText]:
        """Return one stripped text entry per page.

        Raises:
            ExtractionError: If *data* is empty or not a readable supported format.
        """
        if not data:
            raise ExtractionError("Document is empty")

        kind = self._detect_format(data, filename)
        if kind == "pdf":
            texts = self._extract_pdf(data)
        elif kind == "text":
            texts = self._extract_text(data)
        else:
            suffix = PurePath(filename).suffix or "(none)"
            raise ExtractionError(f"Unsupported document type: {suffix!r}")

        return [PageText(page_number=i + 1, text=t.strip()) for i, t in enumerate(texts)]

    def count_pages(self, data: bytes, filename: str = "") -> int:
        """Return the number of pages *data* would extract to."""
        if not data:
            raise ExtractionError("Document is empty")
        if self._detect_format(data, filename) == "pdf":
            reader = self._open_pdf(data)
            try:
                return len(reader.pages)
            except _PDF_ERRORS as exc:
                raise ExtractionError(f"Failed to count PDF pages: {exc}") from exc
        return len(self.extract(data, filename))

    @staticmethod
    def _detect_format(data: bytes, filename: str) -> str:
        if data.startswith(_PDF_MAGIC):
            return "pdf"
        ext = PurePath(filename).suffix.lower()
        if ext in _PDF_EXTS:
            return "pdf"
        if ext in _TEXT_EXTS:
            return "text"
        return "unknown"

    @staticmethod
    def _open_pdf(data: bytes) -> pypdf.PdfReader:
        try:
            return pypdf.PdfReader(io.BytesIO(data))
        except _PDF_ERRORS as exc:
            raise ExtractionError(f"Failed to parse PDF: {exc}") from exc

    def _extract_pdf(self, data: bytes) -> list[str]:
        reader = self._open_pdf(data)
        texts: list[str] = []
        try:
            for page in reader.pages:
                texts.append(page.extract_text() or "")
        except _PDF_ERRORS as exc:
            raise ExtractionError(f"Failed to read PDF page text: {exc}") from exc
        return texts

    @staticmethod
    def _extract_text(data: bytes) -> list[str]:
        try:
            decoded = data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ExtractionError(f"Text document is not valid UTF-8: {exc}") from exc
        return decoded.split(_PAGE_SEPARATOR)
