"""Knowledge-base document chunking and embedding ingestion."""

from app.knowledge.chunking import TextChunk, chunk_text, extract_section_heading
from app.knowledge.ingestion import (
    IngestionError,
    IngestionProgress,
    format_embedding,
    ingest_document,
)

__all__ = [
    "IngestionError",
    "IngestionProgress",
    "TextChunk",
    "chunk_text",
    "extract_section_heading",
    "format_embedding",
    "ingest_document",
]
