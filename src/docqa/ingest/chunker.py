"""Sentence-aware fixed window chunker with overlap.

Windows are measured in characters. A window that does not reach the end of
the text is pulled back to the last sentence terminator (. ? !) inside it,
provided that terminator sits in the second half of the window.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from docqa.ingest.extractor import PageText

_SENTENCE_TERMINATORS = ".?!"


@dataclass(frozen=True)
class PageChunk:
    page_number: int
    content: str
    chunk_index: int  # restarts at 0 on every page


class TextSplitter:
    """Split text into bounded, overlapping windows.

    Args:
        chunk_size: Maximum window length in characters.
        overlap: Characters shared between consecutive windows.
    """

    def __init__(self, chunk_size: int = 1000, overlap: int = 200) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        if overlap < 0:
            raise ValueError("overlap must be >= 0")
        self.chunk_size = chunk_size
        self.overlap = overlap

    def split(self, text: str) -> list[str]:
        """Return the stripped, non-empty windows of *text* in order."""
        chunks: list[str] = []
        length = len(text)
        start = 0

        while start < length:
            end = start + self.chunk_size

            if end < length:
                last_break = max(text.rfind(t, start, end) for t in _SENTENCE_TERMINATORS)
                if last_break != -1 and last_break >= start + self.chunk_size * 0.5:
                    end = last_break + 1
            else:
                end = length

            chunk = text[start:end].strip()
            if chunk:
                chunks.append(chunk)

            if end >= length:
                break

            next_start = end - self.overlap
            # Overlap as wide as the window would stall; continue from the cut instead.
            start = next_start if next_start > start else end

        return chunks

    def split_by_pages(self, pages: Iterable[PageText]) -> list[PageChunk]:
        """Chunk every page independently, keeping page order then chunk order."""
        result: list[PageChunk] = []
        for page in pages:
            for index, content in enumerate(self.split(page.text)):
                result.append(
                    PageChunk(page_number=page.page_number, content=content, chunk_index=index)
                )
        return result


def split(text: str, chunk_size: int = 1000, overlap: int = 200) -> list[str]:
    """Functional shortcut for ``TextSplitter(chunk_size, overlap).split(text)``."""
    return TextSplitter(chunk_size=chunk_size, overlap=overlap).split(text)


def split_by_pages(
    pages: Iterable[PageText], chunk_size: int = 1000, overlap: int = 200
) -> list[PageChunk]:
    """Functional shortcut for ``TextSplitter(chunk_size, overlap).split_by_pages(pages)``."""
    return TextSplitter(chunk_size=chunk_size, overlap=overlap).split_by_pages(pages)
