"""Domain models for the docqa database layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class DocumentStatus(str, Enum):
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self is not DocumentStatus.PROCESSING

    def can_transition(self, target: DocumentStatus) -> bool:
        """Only PROCESSING → COMPLETED and PROCESSING → FAILED are legal."""
        return self is DocumentStatus.PROCESSING and target.is_terminal


class MessageRole(str, Enum):
    USER = "USER"
    ASSISTANT = "ASSISTANT"


@dataclass
class Document:
    id: str
    user_id: str
    filename: str
    storage_path: str
    size_bytes: int
    embedding_model: str
    pages: int = 0
    status: DocumentStatus = DocumentStatus.PROCESSING
    chunk_count: int = 0
    failed_chunks: int = 0
    error: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class Chunk:
    document_id: str
    page_number: int
    chunk_index: int
    content: str
    embedding: list[float]
    metadata: str = field(default_factory=lambda: "{}")
    created_at: str | None = None
    id: int | None = None  # set after insert; None for unsaved chunks


@dataclass
class RetrievedChunk:
    """One nearest-neighbour row: chunk fields plus cosine similarity (higher = closer)."""

    id: int
    document_id: str
    page_number: int
    chunk_index: int
    content: str
    metadata: dict[str, Any]
    similarity: float


@dataclass
class ChatSession:
    id: str
    user_id: str
    title: str
    document_id: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    message_count: int = 0
    messages: list[Message] = field(default_factory=list)


@dataclass
class Message:
    id: str
    session_id: str
    role: MessageRole
    content: str
    metadata: dict[str, Any] | None = None
    created_at: str | None = None
