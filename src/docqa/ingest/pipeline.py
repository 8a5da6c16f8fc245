"""Ingestion pipeline: extract, chunk, embed and store one document.

Status machine: PROCESSING → COMPLETED | FAILED (both terminal).

- A chunk whose embedding or insert fails is logged and skipped; the run
  carries on and the document can still end COMPLETED.
- Any exception raised while extracting, or escaping the batch loop, marks
  the document FAILED. Chunks already stored are kept. There is no retry.
- The terminal status is written once, after every chunk attempt settled.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field

from docqa.db.models import Chunk, DocumentStatus
from docqa.db.repository import Repository
from docqa.errors import ExtractionError
from docqa.ingest.chunker import PageChunk, TextSplitter
from docqa.ingest.extractor import TextExtractor
from docqa.log import get_logger
from docqa.rag.llm_client import EmbeddingProvider

logger = get_logger(__name__)


@dataclass
class IngestionReport:
    """Outcome of one ingestion run.

    Attributes:
        document_id: Document that was processed.
        status: Terminal status written for the document; stays PROCESSING
            if the final write failed.
        pages: Number of pages extracted (0 if extraction failed).
        succeeded: Ids of the chunks that were stored.
        failed: ``(position, error)`` for every chunk that was skipped;
            position indexes the flattened page-chunk list.
        error: Fatal error text when the run ended FAILED.
    """

    document_id: str
    status: DocumentStatus = DocumentStatus.PROCESSING
    pages: int = 0
    succeeded: list[int] = field(default_factory=list)
    failed: list[tuple[int, str]] = field(default_factory=list)
    error: str | None = None


def decide_status(extracted: bool, batch_raised: bool) -> DocumentStatus:
    """Terminal status for a run.

    Individual chunk failures do not enter into it: only whether extraction
    succeeded and whether the batch loop itself raised.
    """
    if extracted and not batch_raised:
        return DocumentStatus.COMPLETED
    return DocumentStatus.FAILED


class IngestionPipeline:
    """Drive one document from raw bytes to embedded, stored chunks.

    Args:
        repo: Open repository.
        embedder: Embedding provider shared with the query path.
        extractor: Text extractor (defaults to :class:`TextExtractor`).
        splitter: Chunker (defaults to 1000 chars / 200 overlap).
        chunk_concurrency: Maximum chunks embedded at once for one document.
    """

    def __init__(
        self,
        repo: Repository,
        embedder: EmbeddingProvider,
        extractor: TextExtractor | None = None,
        splitter: TextSplitter | None = None,
        chunk_concurrency: int = 4,
    ) -> None:
        if chunk_concurrency < 1:
            raise ValueError("chunk_concurrency must be >= 1")
        self._repo = repo
        self._embedder = embedder
        self._extractor = extractor or TextExtractor()
        self._splitter = splitter or TextSplitter()
        self._chunk_concurrency = chunk_concurrency

    async def run(self, document_id: str, data: bytes, filename: str = "") -> IngestionReport:
        """Ingest *data* for *document_id* and write its terminal status."""
        report = IngestionReport(document_id=document_id)
        log = logger.bind(document_id=document_id)
        log.info("ingestion_started", filename=filename, size_bytes=len(data))

        try:
            pages = await asyncio.to_thread(self._extractor.extract, data, filename)
        except ExtractionError as exc:
            log.error("extraction_failed", error=str(exc))
            report.error = str(exc)
            return await self._finish(report, extracted=False, batch_raised=False)
        except Exception as exc:
            log.exception("extraction_crashed", error=str(exc))
            report.error = f"{type(exc).__name__}: {exc}"
            return await self._finish(report, extracted=False, batch_raised=False)

        report.pages = len(pages)
        batch_raised = False
        try:
            await self._repo.set_document_pages(document_id, len(pages))
            page_chunks = self._splitter.split_by_pages(pages)
            if not page_chunks:
                log.warning("no_text_extracted", pages=len(pages))
            await self._process_batch(document_id, page_chunks, report)
        except Exception as exc:
            log.exception("ingestion_batch_failed", error=str(exc))
            report.error = str(exc)
            batch_raised = True

        return await self._finish(report, extracted=True, batch_raised=batch_raised)

    # ------------------------------------------------------------------
    # Batch fold
    # ------------------------------------------------------------------

    async def _process_batch(
        self, document_id: str, page_chunks: list[PageChunk], report: IngestionReport
    ) -> None:
        """Embed and store every chunk, folding outcomes into *report*."""
        semaphore = asyncio.Semaphore(self._chunk_concurrency)

        async def _attempt(page_chunk: PageChunk) -> int:
            async with semaphore:
                return await self._store_chunk(document_id, page_chunk)

        outcomes = await asyncio.gather(
            *(_attempt(pc) for pc in page_chunks),
            return_exceptions=True,
        )

        for position, outcome in enumerate(outcomes):
            if isinstance(outcome, Exception):
                logger.warning(
                    "chunk_skipped",
                    document_id=document_id,
                    position=position,
                    page_number=page_chunks[position].page_number,
                    chunk_index=page_chunks[position].chunk_index,
                    error=str(outcome),
                )
                report.failed.append((position, str(outcome)))
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                report.succeeded.append(outcome)

    async def _store_chunk(self, document_id: str, page_chunk: PageChunk) -> int:
        embedding = await self._embedder.embed(page_chunk.content)
        return await self._repo.add_chunk(
            Chunk(
                document_id=document_id,
                page_number=page_chunk.page_number,
                chunk_index=page_chunk.chunk_index,
                content=page_chunk.content,
                embedding=embedding,
                metadata=json.dumps({"chunk_index": page_chunk.chunk_index}),
            )
        )

    # ------------------------------------------------------------------
    # Terminal status
    # ------------------------------------------------------------------

    async def _finish(
        self, report: IngestionReport, *, extracted: bool, batch_raised: bool
    ) -> IngestionReport:
        status = decide_status(extracted, batch_raised)
        try:
            await self._repo.finish_document(
                report.document_id,
                status,
                chunk_count=len(report.succeeded),
                failed_chunks=len(report.failed),
                error=report.error,
            )
        except Exception as exc:
            # The document may have been deleted mid-run; nothing left to update.
            logger.error(
                "status_update_failed",
                document_id=report.document_id,
                status=status.value,
                error=str(exc),
            )
            report.error = report.error or str(exc)
            return report

        report.status = status
        logger.info(
            "ingestion_finished",
            document_id=report.document_id,
            status=status.value,
            pages=report.pages,
            chunks=len(report.succeeded),
            failed_chunks=len(report.failed),
        )
        return report
