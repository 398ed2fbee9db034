"""Chunk a knowledge document, embed each chunk and store it in Supabase.

Chunks are embedded one at a time through the ``generate-embedding`` edge
function so a large document never has to be held as a batch of vectors.
Progress is mirrored to the ``document_ingestion_queue`` row of the
document.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from flask import current_app

from app import db
from app.knowledge.chunking import CHUNK_OVERLAP, CHUNK_SIZE, TextChunk, chunk_text

EMBEDDING_FUNCTION = "generate-embedding"

STATUS_PENDING = "pending"
STATUS_PROCESSING = "processing"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"


class IngestionError(RuntimeError):
    """Raised when a document could not be fully ingested."""


@dataclass(frozen=True)
class IngestionProgress:
    total: int
    processed: int
    status: str
    error: str | None = None


ProgressCallback = Callable[[IngestionProgress], None]


def format_embedding(values) -> str:
    """Return the pgvector text literal for ``values``."""

    return "[" + ",".join(str(value) for value in values) + "]"


def _embed(chunk: TextChunk) -> tuple[str, int]:
    result, error = db.invoke_edge_function(EMBEDDING_FUNCTION, {"text": chunk.content})
    if error:
        raise IngestionError(f"Embedding error: {error}")
    embedding = (result or {}).get("embedding")
    if not embedding:
        raise IngestionError("No embedding returned")
    if not isinstance(embedding, list) or not all(
        isinstance(value, (int, float)) and not isinstance(value, bool) for value in embedding
    ):
        raise IngestionError("Invalid embedding returned")
    try:
        tokens = int(result.get("tokens") or 0)
    except (TypeError, ValueError):
        raise IngestionError(f"Invalid token count returned: {result.get('tokens')!r}")
    return format_embedding(embedding), tokens


def _mark_failed(document_id: str, message: str) -> None:
    current_app.logger.error("Ingestion of document %s failed: %s", document_id, message)
    error = db.update_ingestion_status(
        document_id, {"status": STATUS_FAILED, "error_message": message}
    )
    if error:
        current_app.logger.warning(
            "Could not mark document %s as failed: %s", document_id, error
        )


def ingest_document(
    document_id: str,
    content: str,
    on_progress: ProgressCallback | None = None,
    *,
    chunk_size: int | None = None,
    overlap: int | None = None,
) -> IngestionProgress:
    """Replace the stored chunks of ``document_id`` with fresh embeddings.

    Raises:
        IngestionError: when there is nothing to ingest or any chunk fails.
            The queue row is marked ``failed`` with the message first.
    """

    chunks = chunk_text(
        content or "",
        chunk_size if chunk_size is not None else CHUNK_SIZE,
        overlap if overlap is not None else CHUNK_OVERLAP,
    )
    total = len(chunks)

    def report(progress: IngestionProgress) -> IngestionProgress:
        if on_progress is not None:
            on_progress(progress)
        return progress

    error = db.upsert_ingestion_status(
        document_id,
        {
            "status": STATUS_PROCESSING,
            "started_at": db.utc_now_iso(),
            "total_chunks": total,
            "chunks_processed": 0,
            "error_message": None,
            "completed_at": None,
        },
    )
    if error:
        raise IngestionError(error)

    if not chunks:
        message = "No content available to ingest"
        _mark_failed(document_id, message)
        report(IngestionProgress(total=0, processed=0, status=STATUS_FAILED, error=message))
        raise IngestionError(message)

    report(IngestionProgress(total=total, processed=0, status=STATUS_PROCESSING))

    processed = 0
    try:
        error = db.delete_document_chunks(document_id)
        if error:
            raise IngestionError(error)

        for chunk in chunks:
            embedding, tokens = _embed(chunk)
            error = db.insert_knowledge_chunk(
                {
                    "document_id": document_id,
                    "chunk_index": chunk.index,
                    "content": chunk.content,
                    "tokens_count": tokens,
                    "section_heading": chunk.section_heading,
                    "embedding": embedding,
                }
            )
            if error:
                raise IngestionError(error)

            processed += 1
            error = db.update_ingestion_status(document_id, {"chunks_processed": processed})
            if error:
                current_app.logger.warning(
                    "Progress update failed for document %s: %s", document_id, error
                )
            report(IngestionProgress(total=total, processed=processed, status=STATUS_PROCESSING))
    except Exception as exc:
        message = str(exc) if isinstance(exc, IngestionError) else f"Unexpected error: {exc}"
        _mark_failed(document_id, message)
        report(
            IngestionProgress(
                total=total, processed=processed, status=STATUS_FAILED, error=message
            )
        )
        if isinstance(exc, IngestionError):
            raise
        raise IngestionError(message) from exc

    error = db.update_ingestion_status(
        document_id,
        {
            "status": STATUS_COMPLETED,
            "completed_at": db.utc_now_iso(),
            "chunks_processed": processed,
        },
    )
    if error:
        current_app.logger.warning(
            "Could not mark document %s as completed: %s", document_id, error
        )
    return report(IngestionProgress(total=total, processed=processed, status=STATUS_COMPLETED))
