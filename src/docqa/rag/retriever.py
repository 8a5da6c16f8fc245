"""Dense retriever: cosine nearest neighbours within a single document.

Similarity is ``1 - cosine distance`` as computed by sqlite-vec's
``vec_distance_cosine``. Results come back most similar first; equal
similarities keep ascending chunk id order.
"""

from __future__ import annotations

from dataclasses import dataclass

from docqa.db.models import RetrievedChunk
from docqa.db.repository import Repository
from docqa.log import get_logger

logger = get_logger(__name__)


@dataclass
class RetrieverConfig:
    """Configuration for the retriever.

    Attributes:
        top_k: Maximum number of chunks to return.
        min_similarity: Discard chunks whose similarity is below this value
            (None keeps every match).
    """

    top_k: int = 4
    min_similarity: float | None = None


class Retriever:
    """Top-k chunk lookup scoped to one document."""

    def __init__(self, repo: Repository, config: RetrieverConfig | None = None) -> None:
        self._repo = repo
        self._config = config or RetrieverConfig()

    async def retrieve(
        self,
        document_id: str,
        query_vector: list[float],
        k: int | None = None,
    ) -> list[RetrievedChunk]:
        """Return at most *k* chunks of *document_id*, most similar first.

        A document without chunks yields an empty list, not an error.

        Raises:
            ValueError: If *k* < 1 or *query_vector* has the wrong dimensionality.
        """
        limit = self._config.top_k if k is None else k
        if limit < 1:
            raise ValueError(f"k must be >= 1, got {limit}")

        results = await self._repo.search_chunks(
            document_id,
            query_vector,
            limit=limit,
            min_similarity=self._config.min_similarity,
        )
        logger.debug(
            "chunks_retrieved",
            document_id=document_id,
            k=limit,
            returned=len(results),
            top_similarity=round(results[0].similarity, 4) if results else None,
        )
        return results
