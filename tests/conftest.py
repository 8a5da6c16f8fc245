"""Shared pytest fixtures and in-process provider doubles."""

from __future__ import annotations

import pytest
import pytest_asyncio

from docqa.db.connection import Database
from docqa.db.models import Document
from docqa.db.repository import Repository
from docqa.db.schema import initialize
from docqa.errors import EmbeddingError
from docqa.rag.llm_client import CompletionProvider, EmbeddingProvider

DIMS = 4
EMBED_MODEL = "fake/embedding"
CHAT_MODEL = "fake/chat"

# One axis per keyword; the constant keeps every vector non-zero.
_KEYWORDS = ("warranty", "battery", "price", "shipping")


def keyword_vector(text: str) -> list[float]:
    lowered = text.lower()
    return [lowered.count(k) + 0.01 for k in _KEYWORDS]


class FakeEmbedder(EmbeddingProvider):
    """Keyword-count embeddings; raises for texts containing *fail_on*."""

    def __init__(self, model: str = EMBED_MODEL, fail_on: str | None = None) -> None:
        self.model = model
        self.dimensions = DIMS
        self.fail_on = fail_on
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.fail_on and self.fail_on in text:
            raise EmbeddingError(f"embedding refused for {self.fail_on!r}")
        return keyword_vector(text)


class FakeCompleter(CompletionProvider):
    """Returns a canned answer and records every prompt."""

    def __init__(self, answer: str = "The warranty lasts 2 years [Page 1].", error: Exception | None = None) -> None:
        self.model = CHAT_MODEL
        self.answer = answer
        self.error = error
        self.prompts: list[str] = []

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.answer


@pytest_asyncio.fixture
async def conn(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / "docqa.db")
    connection = await db.connect()
    await initialize(connection)
    yield connection
    await connection.close()


@pytest_asyncio.fixture
async def repo(conn):
    return Repository(conn, dimensions=DIMS)


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def completer():
    return FakeCompleter()


def make_document(
    document_id: str = "doc-1",
    user_id: str = "alice",
    pages: int = 2,
    embedding_model: str = EMBED_MODEL,
) -> Document:
    return Document(
        id=document_id,
        user_id=user_id,
        filename="manual.txt",
        storage_path=f"{user_id}/{document_id}.txt",
        size_bytes=123,
        embedding_model=embedding_model,
        pages=pages,
    )
