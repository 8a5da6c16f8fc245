"""Conversation orchestrator: one question in, one grounded answer out.

Per turn:
  1. load the session (owned by the caller)
  2. persist the USER message
  3. no document on the session → fixed clarification reply
  4. otherwise embed → retrieve → assemble → synthesize, persist the
     ASSISTANT message with its citations
  5. on failure in step 4 record an apology message carrying the error,
     then re-raise
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date

from docqa.db.models import ChatSession, DocumentStatus, Message, MessageRole
from docqa.db.repository import Repository
from docqa.errors import InvalidStateError, NotFoundError
from docqa.log import get_logger
from docqa.rag.assembler import SourceCitation, assemble, build_sources
from docqa.rag.llm_client import EmbeddingProvider
from docqa.rag.retriever import Retriever
from docqa.rag.synthesizer import AnswerSynthesizer, is_fallback

logger = get_logger(__name__)

CLARIFICATION_ANSWER = (
    "I can only answer questions about uploaded documents. "
    "Please attach a document to this chat first."
)
ERROR_ANSWER = "Sorry, I encountered an error processing your request."


@dataclass
class ChatReply:
    answer: str
    sources: list[SourceCitation] = field(default_factory=list)
    session_id: str = ""


class ChatService:
    """Chat sessions over a single document each.

    Args:
        repo: Open repository.
        embedder: Must be the provider the documents were indexed with.
        retriever: Top-k chunk lookup.
        synthesizer: Grounded answer generation.
        preview_chars: Length of citation previews.
    """

    def __init__(
        self,
        repo: Repository,
        embedder: EmbeddingProvider,
        retriever: Retriever,
        synthesizer: AnswerSynthesizer,
        preview_chars: int = 200,
    ) -> None:
        self._repo = repo
        self._embedder = embedder
        self._retriever = retriever
        self._synthesizer = synthesizer
        self._preview_chars = preview_chars

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def create_session(
        self, user_id: str, document_id: str | None = None, title: str | None = None
    ) -> ChatSession:
        """Open a new session, optionally bound to one of *user_id*'s documents.

        Raises:
            NotFoundError: If *document_id* is given but not owned by *user_id*.
        """
        if document_id is not None:
            if await self._repo.get_document(document_id, user_id) is None:
                raise NotFoundError("Document", document_id)

        session = await self._repo.add_session(
            ChatSession(
                id=str(uuid.uuid4()),
                user_id=user_id,
                document_id=document_id,
                title=(title or "").strip() or f"Chat {date.today().isoformat()}",
            )
        )
        logger.info(
            "session_created", session_id=session.id, user_id=user_id, document_id=document_id
        )
        return session

    async def list_sessions(self, user_id: str) -> list[ChatSession]:
        return await self._repo.list_sessions(user_id)

    async def get_session(self, user_id: str, session_id: str) -> ChatSession:
        """Return the session with its full message history.

        Raises:
            NotFoundError: If the session does not exist or belongs to another user.
        """
        session = await self._load_session(user_id, session_id)
        session.messages = await self._repo.list_messages(session_id)
        return session

    async def delete_session(self, user_id: str, session_id: str) -> None:
        await self._load_session(user_id, session_id)
        await self._repo.delete_session(session_id)
        logger.info("session_deleted", session_id=session_id, user_id=user_id)

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    async def send_message(self, user_id: str, session_id: str, text: str) -> ChatReply:
        """Answer *text* within *session_id* and persist both sides of the exchange.

        Raises:
            ValueError: If *text* is empty after trimming.
            NotFoundError: If the session or its document is missing.
            InvalidStateError: If the document is not COMPLETED or was indexed
                with a different embedding model.
            EmbeddingError, SynthesisError: If a model call fails.
        """
        question = text.strip()
        if not question:
            raise ValueError("Message content must not be empty")

        session = await self._load_session(user_id, session_id)
        await self._save(session_id, MessageRole.USER, question)

        if session.document_id is None:
            await self._save(session_id, MessageRole.ASSISTANT, CLARIFICATION_ANSWER)
            return ChatReply(answer=CLARIFICATION_ANSWER, sources=[], session_id=session_id)

        log = logger.bind(session_id=session_id, document_id=session.document_id)
        try:
            answer, sources = await self._answer(user_id, session.document_id, question)
            await self._save(
                session_id,
                MessageRole.ASSISTANT,
                answer,
                metadata={"sources": [s.to_dict() for s in sources]},
            )
        except Exception as exc:
            log.error("chat_turn_failed", error=str(exc), error_type=type(exc).__name__)
            await self._save_error_reply(session_id, exc)
            raise

        log.info("chat_turn_answered", sources=len(sources), fallback=not sources)
        return ChatReply(answer=answer, sources=sources, session_id=session_id)

    async def _answer(
        self, user_id: str, document_id: str, question: str
    ) -> tuple[str, list[SourceCitation]]:
        document = await self._repo.get_document(document_id, user_id)
        if document is None:
            raise NotFoundError("Document", document_id)
        if document.status is not DocumentStatus.COMPLETED:
            raise InvalidStateError(
                f"Document '{document_id}' is {document.status.value}; "
                "questions can be asked only after processing completed"
            )
        if document.embedding_model != self._embedder.model:
            raise InvalidStateError(
                f"Document '{document_id}' was indexed with '{document.embedding_model}' "
                f"but the configured embedding model is '{self._embedder.model}'"
            )

        query_vector = await self._embedder.embed(question)
        chunks = await self._retriever.retrieve(document_id, query_vector)
        answer = await self._synthesizer.synthesize(assemble(chunks), question)
        if is_fallback(answer):
            return answer, []
        return answer, build_sources(chunks, self._preview_chars)

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    async def _load_session(self, user_id: str, session_id: str) -> ChatSession:
        session = await self._repo.get_session(session_id, user_id)
        if session is None:
            raise NotFoundError("Chat session", session_id)
        return session

    async def _save(
        self,
        session_id: str,
        role: MessageRole,
        content: str,
        metadata: dict | None = None,
    ) -> Message:
        return await self._repo.add_message(
            Message(
                id=str(uuid.uuid4()),
                session_id=session_id,
                role=role,
                content=content,
                metadata=metadata,
            )
        )

    async def _save_error_reply(self, session_id: str, exc: Exception) -> None:
        try:
            await self._save(
                session_id,
                MessageRole.ASSISTANT,
                ERROR_ANSWER,
                metadata={"error": str(exc), "error_type": type(exc).__name__},
            )
        except Exception as persist_exc:
            logger.error(
                "error_reply_not_saved", session_id=session_id, error=str(persist_exc)
            )
