"""Exception hierarchy for the docqa pipeline.

    DocQAError
    +-- ExtractionError     (bytes cannot be read as a supported format)
    +-- EmbeddingError      (embedding service failure or bad vector)
    +-- SynthesisError      (completion service failure)
    +-- NotFoundError       (unknown or foreign document / session)
    +-- InvalidStateError   (document not queryable, illegal status change)

Configuration problems raise :class:`docqa.config.ConfigError` instead.
"""

from __future__ import annotations


class DocQAError(Exception):
    """Base class for every error raised by docqa."""


class ExtractionError(DocQAError):
    """Raised when document bytes cannot be parsed into page text."""


class EmbeddingError(DocQAError):
    """Raised when the embedding service fails or returns an unusable vector."""


class SynthesisError(DocQAError):
    """Raised when the completion service fails to produce an answer."""


class NotFoundError(DocQAError):
    """Raised when a document or session is missing or owned by another user."""

    def __init__(self, kind: str, ident: str) -> None:
        self.kind = kind
        self.ident = ident
        super().__init__(f"{kind} '{ident}' not found")


class InvalidStateError(DocQAError):
    """Raised when an operation is not allowed in the object's current state."""
