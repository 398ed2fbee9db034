import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from app.knowledge.chunking import chunk_text, extract_section_heading


def test_short_text_is_a_single_chunk():
    chunks = chunk_text("# Cutting SOP\nAlways check the marker before laying.")

    assert len(chunks) == 1
    assert chunks[0].index == 0
    assert chunks[0].section_heading == "Cutting SOP"


def test_empty_or_blank_text_has_no_chunks():
    assert chunk_text("") == []
    assert chunk_text("   \n\n  ") == []


def test_prefers_paragraph_breaks_past_half_a_chunk():
    first = "a" * 70
    second = "b" * 60
    text = f"{first}\n\n{second}"

    chunks = chunk_text(text, chunk_size=100, overlap=10)

    assert chunks[0].content == first
    assert chunks[1].content.endswith(second)


def test_falls_back_to_sentence_breaks():
    text = ("x" * 60) + ". " + ("y" * 80)

    chunks = chunk_text(text, chunk_size=100, overlap=10)

    assert chunks[0].content == ("x" * 60) + "."


def test_ignores_breaks_in_first_half():
    text = "aa\n\n" + ("c" * 200)

    chunks = chunk_text(text, chunk_size=100, overlap=20)

    assert len(chunks[0].content) == 100


def test_chunks_overlap_and_always_advance():
    text = "z" * 2500

    chunks = chunk_text(text)

    assert [chunk.index for chunk in chunks] == [0, 1, 2]
    assert [len(chunk.content) for chunk in chunks] == [1000, 1000, 900]


def test_invalid_sizes_raise():
    with pytest.raises(ValueError):
        chunk_text("text", chunk_size=0)
    with pytest.raises(ValueError):
        chunk_text("text", chunk_size=100, overlap=100)


@pytest.mark.parametrize(
    "text, expected",
    [
        ("## Quality Checks\nbody", "Quality Checks"),
        ("first line is prose.\nSAFETY RULES\nmore", "SAFETY RULES"),
        ("Needle replacement policy\nSteps follow.", "Needle replacement policy"),
        ("all lowercase text. more words.", None),
    ],
)
def test_extract_section_heading(text, expected):
    assert extract_section_heading(text) == expected
