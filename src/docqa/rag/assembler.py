"""Context assembler: retrieved chunks → labelled evidence block + citations.

The evidence block carries every chunk's full text. Only the citations
returned to the caller are shortened to a preview.
"""

from __future__ import annotations

from dataclasses import dataclass

from docqa.db.models import RetrievedChunk

NO_CONTEXT = "No relevant context found."


@dataclass
class SourceCitation:
    page_number: int
    content: str  # preview, not the full chunk
    similarity: float

    def to_dict(self) -> dict:
        return {
            "page_number": self.page_number,
            "content": self.content,
            "similarity": self.similarity,
        }


def assemble(chunks: list[RetrievedChunk]) -> str:
    """Render *chunks* in retrieval order as ``[Source i, Page p]:`` blocks.

    Returns:
        The blocks joined by a blank line, or :data:`NO_CONTEXT` when
        *chunks* is empty.
    """
    if not chunks:
        return NO_CONTEXT
    return "\n\n".join(
        f"[Source {rank}, Page {chunk.page_number}]:\n{chunk.content}"
        for rank, chunk in enumerate(chunks, start=1)
    )


def build_sources(chunks: list[RetrievedChunk], preview_chars: int = 200) -> list[SourceCitation]:
    """Return one citation per chunk with content cut to *preview_chars*."""
    return [
        SourceCitation(
            page_number=chunk.page_number,
            content=_preview(chunk.content, preview_chars),
            similarity=chunk.similarity,
        )
        for chunk in chunks
    ]


def _preview(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "..."
