"""Repository pattern for all docqa database operations.

Single async interface for: documents, chunks (with embeddings), cosine
nearest-neighbour search, chat sessions, and messages.
"""

from __future__ import annotations

import json

import aiosqlite

from docqa.db.models import (
    ChatSession,
    Chunk,
    Document,
    DocumentStatus,
    Message,
    MessageRole,
    RetrievedChunk,
)
from docqa.db.vectors import encode_embedding, similarity_from_distance
from docqa.errors import InvalidStateError, NotFoundError

_NOW = "strftime('%Y-%m-%dT%H:%M:%fZ', 'now')"

_DOCUMENT_COLUMNS = (
    "id, user_id, filename, storage_path, size_bytes, pages, status, embedding_model, "
    "chunk_count, failed_chunks, error, created_at, updated_at"
)


class Repository:
    """Data access layer for all docqa database entities.

    Wraps an open aiosqlite connection. The connection is owned by the caller
    and must be closed after use. Every write commits immediately.
    """

    def __init__(self, conn: aiosqlite.Connection, dimensions: int) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open connection with sqlite-vec loaded and schema
                initialised (see docqa.db.schema.initialize).
            dimensions: Embedding dimensionality every stored chunk must have.
        """
        self._conn = conn
        self.dimensions = dimensions

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def add_document(self, document: Document) -> None:
        """Insert a new document record (status PROCESSING)."""
        await self._conn.execute(
            """
            INSERT INTO documents
                (id, user_id, filename, storage_path, size_bytes, pages, status, embedding_model)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                document.id,
                document.user_id,
                document.filename,
                document.storage_path,
                document.size_bytes,
                document.pages,
                DocumentStatus.PROCESSING.value,
                document.embedding_model,
            ),
        )
        await self._conn.commit()

    async def get_document(self, document_id: str, user_id: str | None = None) -> Document | None:
        """Return a document by ID, or None if missing.

        When *user_id* is given, documents owned by someone else are treated
        as missing.
        """
        sql = f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE id = ?"
        params: tuple = (document_id,)
        if user_id is not None:
            sql += " AND user_id = ?"
            params = (document_id, user_id)
        async with self._conn.execute(sql, params) as cur:
            row = await cur.fetchone()
        return _row_to_document(row) if row else None

    async def list_documents(self, user_id: str) -> list[Document]:
        """Return *user_id*'s documents, newest first."""
        async with self._conn.execute(
            f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE user_id = ? "
            "ORDER BY created_at DESC, rowid DESC",
            (user_id,),
        ) as cur:
            rows = await cur.fetchall()
        return [_row_to_document(r) for r in rows]

    async def set_document_pages(self, document_id: str, pages: int) -> None:
        """Record the extracted page count while the document is still PROCESSING."""
        cur = await self._conn.execute(
            f"UPDATE documents SET pages = ?, updated_at = {_NOW} "
            "WHERE id = ? AND status = 'PROCESSING'",
            (pages, document_id),
        )
        await self._conn.commit()
        if cur.rowcount == 0:
            await self._raise_transition_error(document_id, "update pages of")

    async def finish_document(
        self,
        document_id: str,
        status: DocumentStatus,
        *,
        chunk_count: int = 0,
        failed_chunks: int = 0,
        error: str | None = None,
    ) -> None:
        """Move a PROCESSING document to a terminal *status*.

        Raises:
            InvalidStateError: If *status* is not terminal or the document has
                already left PROCESSING.
            NotFoundError: If the document no longer exists.
        """
        if not DocumentStatus.PROCESSING.can_transition(status):
            raise InvalidStateError(f"Cannot move a document to {status.value}")
        cur = await self._conn.execute(
            f"""
            UPDATE documents
               SET status = ?, chunk_count = ?, failed_chunks = ?, error = ?,
                   updated_at = {_NOW}
             WHERE id = ? AND status = 'PROCESSING'
            """,
            (status.value, chunk_count, failed_chunks, error, document_id),
        )
        await self._conn.commit()
        if cur.rowcount == 0:
            await self._raise_transition_error(document_id, f"mark {status.value}")

    async def delete_document(self, document_id: str) -> None:
        """Delete a document; chunks go with it (ON DELETE CASCADE)."""
        await self._conn.execute("DELETE FROM documents WHERE id = ?", (document_id,))
        await self._conn.commit()

    async def _raise_transition_error(self, document_id: str, action: str) -> None:
        current = await self.get_document(document_id)
        if current is None:
            raise NotFoundError("Document", document_id)
        raise InvalidStateError(
            f"Cannot {action} document '{document_id}': status is already {current.status.value}"
        )

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    async def add_chunk(self, chunk: Chunk) -> int:
        """Insert a chunk together with its embedding. Returns the new chunk id.

        Raises:
            NotFoundError: If the parent document does not exist.
            ValueError: If the page number is outside the document or the
                embedding has the wrong dimensionality.
        """
        blob = encode_embedding(chunk.embedding, self.dimensions)
        async with self._conn.execute(
            "SELECT pages FROM documents WHERE id = ?", (chunk.document_id,)
        ) as cur:
            row = await cur.fetchone()
        if row is None:
            raise NotFoundError("Document", chunk.document_id)
        if not 1 <= chunk.page_number <= row["pages"]:
            raise ValueError(
                f"Page {chunk.page_number} outside document range 1..{row['pages']}"
            )

        cur = await self._conn.execute(
            """
            INSERT INTO chunks (document_id, page_number, chunk_index, content, embedding, metadata)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                chunk.document_id,
                chunk.page_number,
                chunk.chunk_index,
                chunk.content,
                blob,
                chunk.metadata,
            ),
        )
        await self._conn.commit()
        chunk.id = cur.lastrowid
        return cur.lastrowid

    async def count_chunks(self, document_id: str) -> int:
        """Return the number of chunks stored for *document_id*."""
        async with self._conn.execute(
            "SELECT COUNT(*) FROM chunks WHERE document_id = ?", (document_id,)
        ) as cur:
            row = await cur.fetchone()
        return row[0]

    async def search_chunks(
        self,
        document_id: str,
        embedding: list[float],
        limit: int = 4,
        min_similarity: float | None = None,
    ) -> list[RetrievedChunk]:
        """Exact cosine nearest-neighbour search within one document.

        Rows are ordered by ascending cosine distance, ties by ascending chunk
        id, so results are deterministic. Rows with an undefined distance
        (zero-norm stored vector) sort last with similarity 0.0.
        """
        blob = encode_embedding(embedding, self.dimensions)
        async with self._conn.execute(
            """
            SELECT id, document_id, page_number, chunk_index, content, metadata,
                   vec_distance_cosine(embedding, ?) AS distance
              FROM chunks
             WHERE document_id = ?
             ORDER BY distance IS NULL, distance ASC, id ASC
             LIMIT ?
            """,
            (blob, document_id, limit),
        ) as cur:
            rows = await cur.fetchall()

        results = [_row_to_retrieved(r) for r in rows]
        if min_similarity is not None:
            results = [r for r in results if r.similarity >= min_similarity]
        return results

    # ------------------------------------------------------------------
    # Chat sessions
    # ------------------------------------------------------------------

    async def add_session(self, session: ChatSession) -> ChatSession:
        """Insert a chat session and return it with timestamps filled in."""
        await self._conn.execute(
            "INSERT INTO chat_sessions (id, user_id, document_id, title) VALUES (?, ?, ?, ?)",
            (session.id, session.user_id, session.document_id, session.title),
        )
        await self._conn.commit()
        stored = await self.get_session(session.id, session.user_id)
        if stored is None:
            raise NotFoundError("Chat session", session.id)
        return stored

    async def get_session(self, session_id: str, user_id: str | None = None) -> ChatSession | None:
        """Return a session (without messages) or None if missing / foreign."""
        sql = """
            SELECT s.id, s.user_id, s.document_id, s.title, s.created_at, s.updated_at,
                   (SELECT COUNT(*) FROM messages m WHERE m.session_id = s.id) AS message_count
              FROM chat_sessions s
             WHERE s.id = ?
        """
        params: tuple = (session_id,)
        if user_id is not None:
            sql += " AND s.user_id = ?"
            params = (session_id, user_id)
        async with self._conn.execute(sql, params) as cur:
            row = await cur.fetchone()
        return _row_to_session(row) if row else None

    async def list_sessions(self, user_id: str) -> list[ChatSession]:
        """Return *user_id*'s sessions, most recently active first."""
        async with self._conn.execute(
            """
            SELECT s.id, s.user_id, s.document_id, s.title, s.created_at, s.updated_at,
                   (SELECT COUNT(*) FROM messages m WHERE m.session_id = s.id) AS message_count
              FROM chat_sessions s
             WHERE s.user_id = ?
             ORDER BY s.updated_at DESC, s.rowid DESC
            """,
            (user_id,),
        ) as cur:
            rows = await cur.fetchall()
        return [_row_to_session(r) for r in rows]

    async def delete_session(self, session_id: str) -> None:
        """Delete a session; its messages go with it (ON DELETE CASCADE)."""
        await self._conn.execute("DELETE FROM chat_sessions WHERE id = ?", (session_id,))
        await self._conn.commit()

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def add_message(self, message: Message) -> Message:
        """Append a message and bump the session's updated_at."""
        await self._conn.execute(
            "INSERT INTO messages (id, session_id, role, content, metadata) VALUES (?, ?, ?, ?, ?)",
            (
                message.id,
                message.session_id,
                message.role.value,
                message.content,
                json.dumps(message.metadata) if message.metadata is not None else None,
            ),
        )
        await self._conn.execute(
            f"UPDATE chat_sessions SET updated_at = {_NOW} WHERE id = ?",
            (message.session_id,),
        )
        await self._conn.commit()
        async with self._conn.execute(
            "SELECT created_at FROM messages WHERE id = ?", (message.id,)
        ) as cur:
            row = await cur.fetchone()
        message.created_at = row["created_at"]
        return message

    async def list_messages(self, session_id: str) -> list[Message]:
        """Return a session's messages in creation order."""
        async with self._conn.execute(
            """
            SELECT id, session_id, role, content, metadata, created_at
              FROM messages
             WHERE session_id = ?
             ORDER BY created_at ASC, rowid ASC
            """,
            (session_id,),
        ) as cur:
            rows = await cur.fetchall()
        return [_row_to_message(r) for r in rows]


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------


def _row_to_document(row: aiosqlite.Row) -> Document:
    return Document(
        id=row["id"],
        user_id=row["user_id"],
        filename=row["filename"],
        storage_path=row["storage_path"],
        size_bytes=row["size_bytes"],
        pages=row["pages"],
        status=DocumentStatus(row["status"]),
        embedding_model=row["embedding_model"],
        chunk_count=row["chunk_count"],
        failed_chunks=row["failed_chunks"],
        error=row["error"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_retrieved(row: aiosqlite.Row) -> RetrievedChunk:
    return RetrievedChunk(
        id=row["id"],
        document_id=row["document_id"],
        page_number=row["page_number"],
        chunk_index=row["chunk_index"],
        content=row["content"],
        metadata=json.loads(row["metadata"]),
        similarity=similarity_from_distance(row["distance"]),
    )


def _row_to_session(row: aiosqlite.Row) -> ChatSession:
    return ChatSession(
        id=row["id"],
        user_id=row["user_id"],
        document_id=row["document_id"],
        title=row["title"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        message_count=row["message_count"],
    )


def _row_to_message(row: aiosqlite.Row) -> Message:
    return Message(
        id=row["id"],
        session_id=row["session_id"],
        role=MessageRole(row["role"]),
        content=row["content"],
        metadata=json.loads(row["metadata"]) if row["metadata"] else None,
        created_at=row["created_at"],
    )
