"""Background ingestion dispatcher.

Each uploaded document gets exactly one tracked asyncio task. The upload path
calls :meth:`IngestionDispatcher.submit` and returns immediately; callers that
need the result (the CLI, tests) await :meth:`IngestionDispatcher.wait`.

Per-document state:
  pending  → queued, waiting for a free ingestion slot
  running  → pipeline executing
  done     → pipeline returned an IngestionReport (COMPLETED or FAILED)
  error    → pipeline raised; the exception is re-raised by wait()

Only the most recent ``history_limit`` finished tasks are kept. Older ones are
forgotten: their state reads ``unknown`` and wait() raises NotFoundError.
The document row keeps the terminal status either way.
"""

from __future__ import annotations

import asyncio
from collections import deque
from enum import Enum

from docqa.errors import InvalidStateError, NotFoundError
from docqa.ingest.pipeline import IngestionPipeline, IngestionReport
from docqa.log import get_logger

logger = get_logger(__name__)


class IngestionState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    ERROR = "error"
    UNKNOWN = "unknown"


class IngestionDispatcher:
    """Run ingestion pipelines as bounded, tracked background tasks.

    Args:
        pipeline: Pipeline executed for every submitted document.
        max_concurrent_documents: Documents ingested at the same time.
        history_limit: Finished tasks kept for state() and wait().
    """

    def __init__(
        self,
        pipeline: IngestionPipeline,
        max_concurrent_documents: int = 4,
        history_limit: int = 256,
    ) -> None:
        if max_concurrent_documents < 1:
            raise ValueError("max_concurrent_documents must be >= 1")
        if history_limit < 0:
            raise ValueError("history_limit must be >= 0")
        self._pipeline = pipeline
        self._semaphore = asyncio.Semaphore(max_concurrent_documents)
        self._history_limit = history_limit
        self._tasks: dict[str, asyncio.Task[IngestionReport]] = {}
        self._states: dict[str, IngestionState] = {}
        self._finished: deque[str] = deque()

    def submit(self, document_id: str, data: bytes, filename: str = "") -> asyncio.Task[IngestionReport]:
        """Schedule ingestion of *document_id* and return its task handle.

        Must be called from within a running event loop.

        Raises:
            InvalidStateError: If *document_id* was already submitted.
        """
        if document_id in self._tasks:
            raise InvalidStateError(f"Ingestion already dispatched for document '{document_id}'")

        self._states[document_id] = IngestionState.PENDING
        task = asyncio.create_task(
            self._run(document_id, data, filename), name=f"ingest-{document_id}"
        )
        self._tasks[document_id] = task
        task.add_done_callback(lambda _task: self._retire(document_id))
        logger.debug("ingestion_dispatched", document_id=document_id)
        return task

    def state(self, document_id: str) -> IngestionState:
        """Return the dispatcher-side state of *document_id*."""
        return self._states.get(document_id, IngestionState.UNKNOWN)

    async def wait(self, document_id: str, timeout: float | None = None) -> IngestionReport:
        """Await the ingestion of *document_id* and return its report.

        Raises:
            NotFoundError: If *document_id* was never submitted.
            TimeoutError: If *timeout* elapses first (the task keeps running).
        """
        task = self._tasks.get(document_id)
        if task is None:
            raise NotFoundError("Ingestion task", document_id)
        return await asyncio.wait_for(asyncio.shield(task), timeout)

    async def wait_all(self) -> list[IngestionReport]:
        """Await every submitted task. Tasks that raised are left out of the result."""
        if not self._tasks:
            return []
        outcomes = await asyncio.gather(*self._tasks.values(), return_exceptions=True)
        return [o for o in outcomes if isinstance(o, IngestionReport)]

    async def _run(self, document_id: str, data: bytes, filename: str) -> IngestionReport:
        async with self._semaphore:
            self._states[document_id] = IngestionState.RUNNING
            try:
                report = await self._pipeline.run(document_id, data, filename)
            except Exception as exc:
                self._states[document_id] = IngestionState.ERROR
                logger.exception("ingestion_task_crashed", document_id=document_id, error=str(exc))
                raise
            self._states[document_id] = IngestionState.DONE
            return report

    def _retire(self, document_id: str) -> None:
        """Record a finished task and forget the oldest beyond ``history_limit``."""
        self._finished.append(document_id)
        while len(self._finished) > self._history_limit:
            old_id = self._finished.popleft()
            task = self._tasks.pop(old_id, None)
            self._states.pop(old_id, None)
            if task is not None and not task.cancelled():
                task.exception()  # already logged by _run
            logger.debug("ingestion_forgotten", document_id=old_id)
