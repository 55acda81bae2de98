import pytest

from semmark.chunking import build_document_text, chunk_text


def test_chunk_text_short_input_is_single_chunk():
    assert list(chunk_text("hello world", 100)) == ["hello world"]


def test_chunk_text_empty_and_whitespace_yield_nothing():
    assert list(chunk_text("", 10)) == []
    assert list(chunk_text("   \n\t ", 10)) == []


def test_chunk_text_cuts_at_last_whitespace():
    chunks = list(chunk_text("alpha beta gamma delta", 11))
    assert chunks == ["alpha beta", "gamma delta"]


def test_chunk_text_hard_cuts_long_words():
    chunks = list(chunk_text("a" * 25, 10))
    assert chunks == ["a" * 10, "a" * 10, "a" * 5]


def test_chunk_text_drops_leading_whitespace():
    assert list(chunk_text("   padded text", 50)) == ["padded text"]


def test_chunk_text_respects_bound_and_preserves_words():
    words = [f"word{idx}" for idx in range(400)]
    text = "  ".join(words) + "\n\nsupercalifragilistic" * 3
    chunks = list(chunk_text(text, 37))
    assert all(1 <= len(chunk) <= 37 for chunk in chunks)
    assert " ".join(chunks).split() == text.split()


def test_chunk_text_is_lazy_generator():
    gen = chunk_text("one two three four", 4)
    assert next(gen) == "one"
    assert next(gen) == "two"


def test_chunk_text_rejects_non_positive_length():
    with pytest.raises(ValueError):
        list(chunk_text("text", 0))


def test_build_document_text_prefixes_title():
    assert build_document_text("Title", "Body") == "Title\n\nBody"
