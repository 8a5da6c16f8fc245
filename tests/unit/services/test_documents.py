"""Tests for DocumentService: upload, lookup, listing and deletion."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio

from conftest import FakeCompleter, FakeEmbedder, keyword_vector
from docqa.app import open_app
from docqa.config import DocQAConfig
from docqa.db.models import DocumentStatus
from docqa.errors import NotFoundError
from docqa.ingest.extractor import TextExtractor

_MANUAL = (
    "The warranty lasts two years from the date of purchase.\f"
    "The battery charges fully in three hours."
).encode()


@pytest_asyncio.fixture
async def app(tmp_path):
    async with open_app(
        DocQAConfig(), embedder=FakeEmbedder(), completer=FakeCompleter(), base_dir=tmp_path
    ) as application:
        yield application


@pytest.mark.asyncio
async def test_upload_returns_processing_immediately(app):
    result = await app.documents.upload_document("alice", _MANUAL, "manual.txt")

    assert result.status is DocumentStatus.PROCESSING
    assert result.page_count == 2
    assert result.filename == "manual.txt"
    assert result.size_bytes == len(_MANUAL)

    await app.dispatcher.wait(result.document_id)


@pytest.mark.asyncio
async def test_upload_stores_blob_and_ingests(app, tmp_path):
    result = await app.documents.upload_document("alice", _MANUAL, "manual.txt")
    report = await app.dispatcher.wait(result.document_id)

    assert report.status is DocumentStatus.COMPLETED
    doc = await app.documents.get_document("alice", result.document_id)
    assert doc.status is DocumentStatus.COMPLETED
    assert doc.chunk_count == 2
    assert doc.embedding_model == "fake/embedding"
    assert doc.storage_path == f"alice/{result.document_id}.txt"
    assert (tmp_path / "uploads" / doc.storage_path).read_bytes() == _MANUAL


@pytest.mark.asyncio
async def test_upload_empty_file_rejected(app):
    with pytest.raises(ValueError, match="empty"):
        await app.documents.upload_document("alice", b"", "empty.pdf")
    assert await app.documents.list_documents("alice") == []


@pytest.mark.asyncio
async def test_upload_unsupported_type_ends_failed(app):
    result = await app.documents.upload_document("alice", b"PK\x03\x04zip", "slides.pptx")

    assert result.page_count == 0
    await app.dispatcher.wait(result.document_id)
    doc = await app.documents.get_document("alice", result.document_id)
    assert doc.status is DocumentStatus.FAILED
    assert "Unsupported" in doc.error


@pytest.mark.asyncio
async def test_upload_survives_parser_crash_and_ends_failed(app):
    crash = IndexError("list index out of range")
    with patch.object(TextExtractor, "count_pages", side_effect=crash), patch.object(
        TextExtractor, "extract", side_effect=crash
    ):
        result = await app.documents.upload_document("alice", b"%PDF-1.7 junk", "scan.pdf")
        await app.dispatcher.wait(result.document_id)

    assert result.page_count == 0
    doc = await app.documents.get_document("alice", result.document_id)
    assert doc.status is DocumentStatus.FAILED
    assert "IndexError" in doc.error


@pytest.mark.asyncio
async def test_upload_removes_blob_when_record_insert_fails(app, tmp_path):
    app.repo.add_document = AsyncMock(side_effect=RuntimeError("database is locked"))

    with pytest.raises(RuntimeError, match="locked"):
        await app.documents.upload_document("alice", _MANUAL, "manual.txt")

    assert list((tmp_path / "uploads").rglob("*.txt")) == []


@pytest.mark.asyncio
async def test_get_document_of_other_user_not_found(app):
    result = await app.documents.upload_document("alice", _MANUAL, "manual.txt")
    await app.dispatcher.wait(result.document_id)

    with pytest.raises(NotFoundError):
        await app.documents.get_document("bob", result.document_id)


@pytest.mark.asyncio
async def test_list_documents_per_user(app):
    first = await app.documents.upload_document("alice", _MANUAL, "a.txt")
    second = await app.documents.upload_document("alice", _MANUAL, "b.txt")
    await app.documents.upload_document("bob", _MANUAL, "c.txt")
    await app.dispatcher.wait_all()

    docs = await app.documents.list_documents("alice")

    assert {d.id for d in docs} == {first.document_id, second.document_id}


@pytest.mark.asyncio
async def test_delete_document_removes_blob_record_and_chunks(app, tmp_path):
    result = await app.documents.upload_document("alice", _MANUAL, "manual.txt")
    await app.dispatcher.wait(result.document_id)
    blob = tmp_path / "uploads" / "alice" / f"{result.document_id}.txt"
    assert blob.exists()

    await app.documents.delete_document("alice", result.document_id)

    assert not blob.exists()
    assert await app.repo.get_document(result.document_id) is None
    assert await app.repo.count_chunks(result.document_id) == 0
    assert await app.repo.search_chunks(result.document_id, keyword_vector("warranty")) == []


@pytest.mark.asyncio
async def test_delete_document_blob_failure_still_deletes_record(app):
    result = await app.documents.upload_document("alice", _MANUAL, "manual.txt")
    await app.dispatcher.wait(result.document_id)
    app.blobs.delete = AsyncMock(side_effect=OSError("disk read-only"))

    await app.documents.delete_document("alice", result.document_id)

    assert await app.repo.get_document(result.document_id) is None


@pytest.mark.asyncio
async def test_delete_document_of_other_user_not_found(app):
    result = await app.documents.upload_document("alice", _MANUAL, "manual.txt")
    await app.dispatcher.wait(result.document_id)

    with pytest.raises(NotFoundError):
        await app.documents.delete_document("bob", result.document_id)
    assert await app.repo.get_document(result.document_id) is not None
