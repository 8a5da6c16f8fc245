"""Tests for the async Repository data access layer."""

from __future__ import annotations

import asyncio

import pytest
import sqlite_vec

from conftest import DIMS, keyword_vector, make_document
from docqa.db.models import ChatSession, Chunk, DocumentStatus, Message, MessageRole
from docqa.errors import InvalidStateError, NotFoundError


def _chunk(content: str, page: int = 1, index: int = 0, document_id: str = "doc-1") -> Chunk:
    return Chunk(
        document_id=document_id,
        page_number=page,
        chunk_index=index,
        content=content,
        embedding=keyword_vector(content),
    )


# ------------------------------------------------------------------
# Documents
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_add_and_get_document(repo):
    await repo.add_document(make_document())

    doc = await repo.get_document("doc-1")

    assert doc is not None
    assert doc.status is DocumentStatus.PROCESSING
    assert doc.pages == 2
    assert doc.chunk_count == 0
    assert doc.created_at is not None


@pytest.mark.asyncio
async def test_get_document_scoped_to_owner(repo):
    await repo.add_document(make_document(user_id="alice"))

    assert await repo.get_document("doc-1", "alice") is not None
    assert await repo.get_document("doc-1", "mallory") is None


@pytest.mark.asyncio
async def test_get_document_missing_returns_none(repo):
    assert await repo.get_document("nope") is None


@pytest.mark.asyncio
async def test_list_documents_newest_first_per_user(repo):
    await repo.add_document(make_document("a"))
    await repo.add_document(make_document("b"))
    await repo.add_document(make_document("other", user_id="bob"))

    ids = [d.id for d in await repo.list_documents("alice")]

    assert ids == ["b", "a"]


@pytest.mark.asyncio
async def test_finish_document_completed(repo):
    await repo.add_document(make_document())

    await repo.finish_document("doc-1", DocumentStatus.COMPLETED, chunk_count=5, failed_chunks=1)

    doc = await repo.get_document("doc-1")
    assert doc.status is DocumentStatus.COMPLETED
    assert doc.chunk_count == 5
    assert doc.failed_chunks == 1
    assert doc.error is None


@pytest.mark.asyncio
async def test_finish_document_records_error(repo):
    await repo.add_document(make_document())

    await repo.finish_document("doc-1", DocumentStatus.FAILED, error="bad pdf")

    doc = await repo.get_document("doc-1")
    assert doc.status is DocumentStatus.FAILED
    assert doc.error == "bad pdf"


@pytest.mark.asyncio
@pytest.mark.parametrize("first", [DocumentStatus.COMPLETED, DocumentStatus.FAILED])
@pytest.mark.parametrize("second", [DocumentStatus.COMPLETED, DocumentStatus.FAILED])
async def test_terminal_status_is_final(repo, first, second):
    await repo.add_document(make_document())
    await repo.finish_document("doc-1", first)

    with pytest.raises(InvalidStateError, match=first.value):
        await repo.finish_document("doc-1", second)

    assert (await repo.get_document("doc-1")).status is first


@pytest.mark.asyncio
async def test_finish_document_rejects_processing_target(repo):
    await repo.add_document(make_document())
    with pytest.raises(InvalidStateError):
        await repo.finish_document("doc-1", DocumentStatus.PROCESSING)


@pytest.mark.asyncio
async def test_finish_missing_document_raises_not_found(repo):
    with pytest.raises(NotFoundError):
        await repo.finish_document("ghost", DocumentStatus.COMPLETED)


@pytest.mark.asyncio
async def test_set_document_pages_only_while_processing(repo):
    await repo.add_document(make_document(pages=0))
    await repo.set_document_pages("doc-1", 7)
    assert (await repo.get_document("doc-1")).pages == 7

    await repo.finish_document("doc-1", DocumentStatus.COMPLETED)
    with pytest.raises(InvalidStateError):
        await repo.set_document_pages("doc-1", 9)


def test_status_transition_table():
    assert DocumentStatus.PROCESSING.can_transition(DocumentStatus.COMPLETED)
    assert DocumentStatus.PROCESSING.can_transition(DocumentStatus.FAILED)
    assert not DocumentStatus.PROCESSING.can_transition(DocumentStatus.PROCESSING)
    assert not DocumentStatus.COMPLETED.can_transition(DocumentStatus.FAILED)
    assert not DocumentStatus.FAILED.can_transition(DocumentStatus.COMPLETED)


# ------------------------------------------------------------------
# Chunks
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_add_chunk_returns_ascending_ids(repo):
    await repo.add_document(make_document())

    first = await repo.add_chunk(_chunk("one"))
    second = await repo.add_chunk(_chunk("two", index=1))

    assert second > first
    assert await repo.count_chunks("doc-1") == 2


@pytest.mark.asyncio
async def test_add_chunk_sets_id_on_model(repo):
    await repo.add_document(make_document())
    chunk = _chunk("one")
    rowid = await repo.add_chunk(chunk)
    assert chunk.id == rowid


@pytest.mark.asyncio
async def test_add_chunk_page_out_of_range_raises(repo):
    await repo.add_document(make_document(pages=2))
    with pytest.raises(ValueError, match="outside document range"):
        await repo.add_chunk(_chunk("x", page=3))


@pytest.mark.asyncio
async def test_add_chunk_wrong_dimensions_raises(repo):
    await repo.add_document(make_document())
    chunk = _chunk("x")
    chunk.embedding = [0.1] * (DIMS + 1)
    with pytest.raises(ValueError, match="dimensions"):
        await repo.add_chunk(chunk)
    assert await repo.count_chunks("doc-1") == 0


@pytest.mark.asyncio
async def test_add_chunk_missing_document_raises(repo):
    with pytest.raises(NotFoundError):
        await repo.add_chunk(_chunk("x", document_id="ghost"))


@pytest.mark.asyncio
async def test_search_chunks_orders_by_similarity(repo):
    await repo.add_document(make_document())
    await repo.add_chunk(_chunk("Shipping takes five days."))
    await repo.add_chunk(_chunk("The warranty covers the battery.", index=1))
    await repo.add_chunk(_chunk("Warranty: two years. Warranty claims by mail.", index=2))

    results = await repo.search_chunks("doc-1", keyword_vector("warranty"), limit=3)

    assert [r.chunk_index for r in results] == [2, 1, 0]
    sims = [r.similarity for r in results]
    assert sims == sorted(sims, reverse=True)
    assert results[0].metadata == {}


@pytest.mark.asyncio
async def test_search_chunks_ties_broken_by_id(repo):
    await repo.add_document(make_document())
    ids = [await repo.add_chunk(_chunk("same text", index=i)) for i in range(3)]

    results = await repo.search_chunks("doc-1", keyword_vector("same text"), limit=3)

    assert [r.id for r in results] == ids


@pytest.mark.asyncio
async def test_search_chunks_scoped_to_document(repo):
    await repo.add_document(make_document("doc-1"))
    await repo.add_document(make_document("doc-2"))
    await repo.add_chunk(_chunk("warranty", document_id="doc-2"))

    assert await repo.search_chunks("doc-1", keyword_vector("warranty")) == []


@pytest.mark.asyncio
async def test_search_chunks_min_similarity(repo):
    await repo.add_document(make_document())
    await repo.add_chunk(_chunk("warranty"))
    await repo.add_chunk(_chunk("shipping", index=1))

    results = await repo.search_chunks(
        "doc-1", keyword_vector("warranty"), limit=4, min_similarity=0.9
    )

    assert [r.content for r in results] == ["warranty"]


@pytest.mark.asyncio
async def test_add_chunk_zero_vector_raises(repo):
    await repo.add_document(make_document())
    chunk = _chunk("x")
    chunk.embedding = [0.0] * DIMS
    with pytest.raises(ValueError, match="zero vector"):
        await repo.add_chunk(chunk)
    assert await repo.count_chunks("doc-1") == 0


@pytest.mark.asyncio
async def test_search_chunks_zero_norm_row_sorts_last(repo, conn):
    await repo.add_document(make_document())
    await conn.execute(
        "INSERT INTO chunks (document_id, page_number, chunk_index, content, embedding, metadata)"
        " VALUES (?, ?, ?, ?, ?, ?)",
        ("doc-1", 1, 0, "empty vector", sqlite_vec.serialize_float32([0.0] * DIMS), "{}"),
    )
    await conn.commit()
    await repo.add_chunk(_chunk("shipping", index=1))

    results = await repo.search_chunks("doc-1", keyword_vector("warranty"), limit=4)

    assert [r.content for r in results] == ["shipping", "empty vector"]
    assert results[-1].similarity == 0.0


@pytest.mark.asyncio
async def test_delete_document_cascades_chunks(repo):
    await repo.add_document(make_document())
    await repo.add_chunk(_chunk("warranty"))

    await repo.delete_document("doc-1")

    assert await repo.get_document("doc-1") is None
    assert await repo.count_chunks("doc-1") == 0
    assert await repo.search_chunks("doc-1", keyword_vector("warranty")) == []


# ------------------------------------------------------------------
# Sessions + messages
# ------------------------------------------------------------------


def _session(session_id: str = "s-1", user_id: str = "alice", document_id: str | None = None):
    return ChatSession(id=session_id, user_id=user_id, title="Chat", document_id=document_id)


def _message(content: str, role: MessageRole = MessageRole.USER, session_id: str = "s-1", **kw):
    return Message(id=f"m-{content}", session_id=session_id, role=role, content=content, **kw)


@pytest.mark.asyncio
async def test_add_session_returns_timestamps(repo):
    stored = await repo.add_session(_session())
    assert stored.created_at is not None
    assert stored.message_count == 0


@pytest.mark.asyncio
async def test_session_may_reference_missing_document(repo):
    stored = await repo.add_session(_session(document_id="deleted-doc"))
    assert stored.document_id == "deleted-doc"


@pytest.mark.asyncio
async def test_get_session_scoped_to_owner(repo):
    await repo.add_session(_session())
    assert await repo.get_session("s-1", "alice") is not None
    assert await repo.get_session("s-1", "mallory") is None


@pytest.mark.asyncio
async def test_messages_in_creation_order_with_metadata(repo):
    await repo.add_session(_session())
    await repo.add_message(_message("q1"))
    await repo.add_message(
        _message("a1", MessageRole.ASSISTANT, metadata={"sources": [{"page_number": 1}]})
    )
    await repo.add_message(_message("q2"))

    messages = await repo.list_messages("s-1")

    assert [m.content for m in messages] == ["q1", "a1", "q2"]
    assert messages[1].role is MessageRole.ASSISTANT
    assert messages[1].metadata == {"sources": [{"page_number": 1}]}
    assert messages[0].metadata is None
    assert (await repo.get_session("s-1")).message_count == 3


@pytest.mark.asyncio
async def test_add_message_bumps_session_updated_at(repo):
    created = await repo.add_session(_session())
    await asyncio.sleep(0.01)
    await repo.add_message(_message("hello"))

    assert (await repo.get_session("s-1")).updated_at > created.updated_at


@pytest.mark.asyncio
async def test_list_sessions_most_recent_first(repo):
    await repo.add_session(_session("s-1"))
    await repo.add_session(_session("s-2"))
    await asyncio.sleep(0.01)
    await repo.add_message(_message("bump", session_id="s-1"))

    sessions = await repo.list_sessions("alice")

    assert [s.id for s in sessions] == ["s-1", "s-2"]
    assert sessions[0].message_count == 1


@pytest.mark.asyncio
async def test_delete_session_cascades_messages(repo):
    await repo.add_session(_session())
    await repo.add_message(_message("hello"))

    await repo.delete_session("s-1")

    assert await repo.get_session("s-1") is None
    assert await repo.list_messages("s-1") == []
