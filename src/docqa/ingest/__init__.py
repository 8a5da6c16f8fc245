"""docqa ingest pipeline: extractor, chunker, per-document pipeline, dispatcher."""

from docqa.ingest.chunker import PageChunk, TextSplitter
from docqa.ingest.dispatcher import IngestionDispatcher, IngestionState
from docqa.ingest.extractor import PageText, TextExtractor
from docqa.ingest.pipeline import IngestionPipeline, IngestionReport, decide_status

__all__ = [
    "PageChunk",
    "TextSplitter",
    "IngestionDispatcher",
    "IngestionState",
    "PageText",
    "TextExtractor",
    "IngestionPipeline",
    "IngestionReport",
    "decide_status",
]
