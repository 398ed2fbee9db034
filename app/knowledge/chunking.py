"""Split knowledge-base documents into overlapping chunks for embedding."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass

CHUNK_SIZE = 1000
CHUNK_OVERLAP = 200

_HEADING_MAX_LENGTH = 100
_CAPITALISED_LINE = re.compile(r"^[A-Z][^.!?]*$")
_MARKDOWN_PREFIX = re.compile(r"^#+\s*")


@dataclass(frozen=True)
class TextChunk:
    content: str
    index: int
    section_heading: str | None = None


def extract_section_heading(text: str) -> str | None:
    """Return the first line of ``text`` that looks like a heading.

    Markdown headings, all-caps lines and capitalised lines without sentence
    punctuation count, provided they are shorter than 100 characters.
    """

    for line in text.split("\n"):
        trimmed = line.strip()
        if not trimmed or len(trimmed) >= _HEADING_MAX_LENGTH:
            continue
        if (
            trimmed.startswith("#")
            or trimmed.upper() == trimmed
            or _CAPITALISED_LINE.match(trimmed)
        ):
            return _MARKDOWN_PREFIX.sub("", trimmed)
    return None


def _break_point(text: str, start: int, end: int, chunk_size: int) -> int:
    threshold = start + chunk_size / 2
    for separator in ("\n\n", ". "):
        position = text.rfind(separator, 0, end + len(separator))
        if position > threshold:
            return position + len(separator)
    return end


def chunk_text(
    text: str, chunk_size: int = CHUNK_SIZE, overlap: int = CHUNK_OVERLAP
) -> list[TextChunk]:
    """Split ``text`` into chunks of at most ``chunk_size`` characters.

    A chunk prefers to end on a paragraph break, then on a sentence break,
    as long as that break lies past the first half of the chunk.  Consecutive
    chunks share ``overlap`` characters.  Whitespace-only slices are dropped
    without consuming an index.
    """

    if chunk_size <= 0:
        raise ValueError("chunk_size must be greater than zero")
    if overlap < 0 or overlap >= chunk_size:
        raise ValueError("overlap must be between 0 and chunk_size")

    chunks: list[TextChunk] = []
    length = len(text)
    max_chunks = math.ceil(length / (chunk_size - overlap)) + 10
    start = 0

    while start < length and len(chunks) < max_chunks:
        end = min(start + chunk_size, length)
        if end < length:
            end = _break_point(text, start, end, chunk_size)

        content = text[start:end].strip()
        if content:
            chunks.append(
                TextChunk(
                    content=content,
                    index=len(chunks),
                    section_heading=extract_section_heading(content),
                )
            )

        if end >= length:
            break

        next_start = end - overlap
        start = next_start if next_start > start else start + 1

    return chunks
