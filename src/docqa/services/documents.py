"""Document lifecycle: upload, lookup, listing and deletion.

Upload stores the raw bytes, creates the PROCESSING record and hands the
document to the ingestion dispatcher without awaiting it. Status changes
after that point are written only by the ingestion pipeline.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass

from docqa.db.models import Document, DocumentStatus
from docqa.db.repository import Repository
from docqa.errors import NotFoundError
from docqa.ingest.dispatcher import IngestionDispatcher
from docqa.ingest.extractor import TextExtractor
from docqa.log import get_logger
from docqa.storage import LocalBlobStore, blob_key

logger = get_logger(__name__)


@dataclass
class UploadResult:
    document_id: str
    status: DocumentStatus
    page_count: int
    filename: str
    size_bytes: int


class DocumentService:
    """Owns uploaded documents for every user.

    Args:
        repo: Open repository.
        blobs: Blob store holding the uploaded bytes.
        dispatcher: Background ingestion dispatcher.
        embedding_model: Model name recorded on every new document.
        extractor: Used only to probe the page count at upload time.
    """

    def __init__(
        self,
        repo: Repository,
        blobs: LocalBlobStore,
        dispatcher: IngestionDispatcher,
        embedding_model: str,
        extractor: TextExtractor | None = None,
    ) -> None:
        self._repo = repo
        self._blobs = blobs
        self._dispatcher = dispatcher
        self._embedding_model = embedding_model
        self._extractor = extractor or TextExtractor()

    async def upload_document(self, user_id: str, data: bytes, filename: str) -> UploadResult:
        """Store *data*, create the document record and dispatch ingestion.

        Returns as soon as ingestion is scheduled; the document is PROCESSING.

        Raises:
            ValueError: If *data* is empty.
        """
        if not data:
            raise ValueError("Uploaded file is empty")

        document_id = str(uuid.uuid4())
        key = await self._blobs.put(blob_key(user_id, document_id, filename), data)

        try:
            page_count = await asyncio.to_thread(self._extractor.count_pages, data, filename)
        except Exception as exc:
            # Ingestion will hit the same error and mark the document FAILED.
            logger.warning(
                "page_count_unavailable",
                filename=filename,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            page_count = 0

        try:
            await self._repo.add_document(
                Document(
                    id=document_id,
                    user_id=user_id,
                    filename=filename,
                    storage_path=key,
                    size_bytes=len(data),
                    embedding_model=self._embedding_model,
                    pages=page_count,
                )
            )
        except Exception:
            await self._blobs.delete(key)
            raise
        self._dispatcher.submit(document_id, data, filename)

        logger.info(
            "document_uploaded",
            document_id=document_id,
            user_id=user_id,
            filename=filename,
            size_bytes=len(data),
            pages=page_count,
        )
        return UploadResult(
            document_id=document_id,
            status=DocumentStatus.PROCESSING,
            page_count=page_count,
            filename=filename,
            size_bytes=len(data),
        )

    async def get_document(self, user_id: str, document_id: str) -> Document:
        """Return *user_id*'s document.

        Raises:
            NotFoundError: If the document does not exist or belongs to another user.
        """
        document = await self._repo.get_document(document_id, user_id)
        if document is None:
            raise NotFoundError("Document", document_id)
        return document

    async def list_documents(self, user_id: str) -> list[Document]:
        return await self._repo.list_documents(user_id)

    async def delete_document(self, user_id: str, document_id: str) -> None:
        """Delete the stored bytes, then the record and its chunks.

        A blob that cannot be removed is logged and does not block the
        record deletion.

        Raises:
            NotFoundError: If the document does not exist or belongs to another user.
        """
        document = await self.get_document(user_id, document_id)
        try:
            await self._blobs.delete(document.storage_path)
        except (OSError, ValueError) as exc:
            logger.warning(
                "blob_delete_failed",
                document_id=document_id,
                key=document.storage_path,
                error=str(exc),
            )
        await self._repo.delete_document(document_id)
        logger.info("document_deleted", document_id=document_id, user_id=user_id)
