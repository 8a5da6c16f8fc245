"""Component wiring: build every service from a DocQAConfig.

Usage:
    cfg = load_config()
    async with open_app(cfg) as app:
        result = await app.documents.upload_document("alice", data, "report.pdf")
        await app.dispatcher.wait(result.document_id)

Providers default to the LiteLLM implementations; tests pass doubles in.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

import aiosqlite

from docqa.config import DocQAConfig
from docqa.db.connection import Database
from docqa.db.repository import Repository
from docqa.db.schema import initialize
from docqa.ingest.chunker import TextSplitter
from docqa.ingest.dispatcher import IngestionDispatcher
from docqa.ingest.pipeline import IngestionPipeline
from docqa.log import get_logger
from docqa.rag.llm_client import (
    CompletionProvider,
    EmbeddingProvider,
    LiteLLMCompletionProvider,
    LiteLLMEmbeddingProvider,
)
from docqa.rag.retriever import Retriever, RetrieverConfig
from docqa.rag.synthesizer import AnswerSynthesizer
from docqa.services.chat import ChatService
from docqa.services.documents import DocumentService
from docqa.storage import LocalBlobStore

logger = get_logger(__name__)


@dataclass
class DocQAApp:
    config: DocQAConfig
    conn: aiosqlite.Connection
    repo: Repository
    blobs: LocalBlobStore
    dispatcher: IngestionDispatcher
    documents: DocumentService
    chat: ChatService


def build_embedder(cfg: DocQAConfig) -> EmbeddingProvider:
    return LiteLLMEmbeddingProvider(
        model=cfg.embedding.model,
        dimensions=cfg.embedding.dimensions,
        num_retries=cfg.embedding.num_retries,
    )


def build_completer(cfg: DocQAConfig) -> CompletionProvider:
    return LiteLLMCompletionProvider(
        model=cfg.generation.model,
        max_tokens=cfg.generation.max_tokens,
        temperature=cfg.generation.temperature,
        num_retries=cfg.generation.num_retries,
    )


@asynccontextmanager
async def open_app(
    cfg: DocQAConfig,
    *,
    embedder: EmbeddingProvider | None = None,
    completer: CompletionProvider | None = None,
    base_dir: Path | None = None,
) -> AsyncIterator[DocQAApp]:
    """Open the database, wire every component and yield a :class:`DocQAApp`.

    Relative storage paths resolve against *base_dir* (default: CWD). On exit
    all ingestion tasks still in flight are awaited before the database is
    closed.
    """
    root = base_dir if base_dir is not None else Path.cwd()
    embedder = embedder or build_embedder(cfg)
    completer = completer or build_completer(cfg)

    conn = await Database(root / cfg.storage.db_path).connect()
    try:
        await initialize(conn)
        repo = Repository(conn, dimensions=embedder.dimensions)
        blobs = LocalBlobStore(root / cfg.storage.blob_dir)

        pipeline = IngestionPipeline(
            repo,
            embedder,
            splitter=TextSplitter(cfg.chunking.chunk_size, cfg.chunking.overlap),
            chunk_concurrency=cfg.ingestion.chunk_concurrency,
        )
        dispatcher = IngestionDispatcher(pipeline, cfg.ingestion.max_concurrent_documents)
        retriever = Retriever(
            repo,
            RetrieverConfig(
                top_k=cfg.retrieval.top_k, min_similarity=cfg.retrieval.min_similarity
            ),
        )

        app = DocQAApp(
            config=cfg,
            conn=conn,
            repo=repo,
            blobs=blobs,
            dispatcher=dispatcher,
            documents=DocumentService(repo, blobs, dispatcher, embedding_model=embedder.model),
            chat=ChatService(
                repo,
                embedder,
                retriever,
                AnswerSynthesizer(completer),
                preview_chars=cfg.retrieval.preview_chars,
            ),
        )
        logger.debug(
            "app_opened",
            db_path=str(root / cfg.storage.db_path),
            embedding_model=embedder.model,
            generation_model=completer.model,
        )
        try:
            yield app
        finally:
            await dispatcher.wait_all()
    finally:
        await conn.close()
