"""Forward-only migration runner for the docqa database schema."""

from __future__ import annotations

import aiosqlite

# schema_version is the bootstrap table, created before migrations run.
_CREATE_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER NOT NULL,
    applied_at  DATETIME NOT NULL DEFAULT (datetime('now'))
)
"""

_NOW = "(strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))"

_V1_SQL = f"""
CREATE TABLE IF NOT EXISTS documents (
    id              TEXT PRIMARY KEY,
    user_id         TEXT NOT NULL,
    filename        TEXT NOT NULL,
    storage_path    TEXT NOT NULL,
    size_bytes      INTEGER NOT NULL,
    pages           INTEGER NOT NULL DEFAULT 0,
    status          TEXT NOT NULL DEFAULT 'PROCESSING'
                    CHECK (status IN ('PROCESSING', 'COMPLETED', 'FAILED')),
    embedding_model TEXT NOT NULL,
    chunk_count     INTEGER NOT NULL DEFAULT 0,
    failed_chunks   INTEGER NOT NULL DEFAULT 0,
    error           TEXT,
    created_at      TEXT NOT NULL DEFAULT {_NOW},
    updated_at      TEXT NOT NULL DEFAULT {_NOW}
);

CREATE INDEX IF NOT EXISTS idx_documents_user ON documents(user_id);

CREATE TABLE IF NOT EXISTS chunks (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    document_id     TEXT NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    page_number     INTEGER NOT NULL CHECK (page_number >= 1),
    chunk_index     INTEGER NOT NULL,
    content         TEXT NOT NULL,
    embedding       BLOB NOT NULL,
    metadata        TEXT NOT NULL DEFAULT '{{}}',
    created_at      TEXT NOT NULL DEFAULT {_NOW}
);

CREATE INDEX IF NOT EXISTS idx_chunks_document ON chunks(document_id);

CREATE TABLE IF NOT EXISTS chat_sessions (
    id              TEXT PRIMARY KEY,
    user_id         TEXT NOT NULL,
    document_id     TEXT,
    title           TEXT NOT NULL,
    created_at      TEXT NOT NULL DEFAULT {_NOW},
    updated_at      TEXT NOT NULL DEFAULT {_NOW}
);

CREATE INDEX IF NOT EXISTS idx_sessions_user ON chat_sessions(user_id);

CREATE TABLE IF NOT EXISTS messages (
    id              TEXT PRIMARY KEY,
    session_id      TEXT NOT NULL REFERENCES chat_sessions(id) ON DELETE CASCADE,
    role            TEXT NOT NULL CHECK (role IN ('USER', 'ASSISTANT')),
    content         TEXT NOT NULL,
    metadata        TEXT,
    created_at      TEXT NOT NULL DEFAULT {_NOW}
);

CREATE INDEX IF NOT EXISTS idx_messages_session ON messages(session_id);
"""

# Append-only. Each entry: (version: int, sql: str).
# executescript() issues an implicit COMMIT before running.
MIGRATIONS: list[tuple[int, str]] = [
    (1, _V1_SQL),
]


async def run_migrations(conn: aiosqlite.Connection) -> None:
    """Apply all pending migrations in ascending version order.

    Idempotent: safe to call on a database at any version.
    """
    await conn.execute(_CREATE_SCHEMA_VERSION)
    await conn.commit()

    async with conn.execute("SELECT MAX(version) FROM schema_version") as cur:
        row = await cur.fetchone()
    current = row[0] if row[0] is not None else 0

    for version, sql in MIGRATIONS:
        if version > current:
            await conn.executescript(sql)
            await conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )
            await conn.commit()
